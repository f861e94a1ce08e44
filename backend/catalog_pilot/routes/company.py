"""
Company routes
Company profile, team members and invitations
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_pilot.config import settings
from catalog_pilot.database import get_db
from catalog_pilot.middleware.auth import get_authenticated_user, get_current_user, require_team_manager
from catalog_pilot.models import Company, CompanyInvitation, User
from catalog_pilot.services.plans import get_plan
from catalog_pilot.services.product_service import ProductService
from catalog_pilot.services.tenant_service import InvitationError, TenantService

logger = logging.getLogger(__name__)

router = APIRouter()


# ============== Request/Response Models ==============


class CompanyUpdateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)


class InvitationRequest(BaseModel):
    email: EmailStr
    role: str = Field("member", pattern="^(admin|member)$")


def _company_dict(company: Company, product_count: Optional[int] = None) -> dict:
    plan = get_plan(company.subscription_plan)
    data = {
        "id": company.id,
        "name": company.name,
        "subscription_plan": plan.id,
        "plan_name": plan.name,
        "product_limit": company.product_limit,
        "subscription_status": company.subscription_status,
        "current_period_end": company.current_period_end.isoformat() if company.current_period_end else None,
        "created_at": company.created_at.isoformat() if company.created_at else None,
    }
    if product_count is not None:
        data["product_count"] = product_count
    return data


def _member_dict(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "display_name": user.display_name,
        "profile_image_url": user.profile_image_url,
        "role": user.role,
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


def _invitation_dict(invitation: CompanyInvitation, include_token: bool = False) -> dict:
    data = {
        "id": invitation.id,
        "email": invitation.email,
        "role": invitation.role,
        "status": "expired" if invitation.status == "pending" and invitation.is_expired() else invitation.status,
        "expires_at": invitation.expires_at.isoformat() if invitation.expires_at else None,
        "created_at": invitation.created_at.isoformat() if invitation.created_at else None,
    }
    if include_token:
        data["token"] = invitation.token
        data["invite_url"] = f"{settings.app_url}/invitations/{invitation.token}"
    return data


async def _require_company(db: AsyncSession, company_id: str) -> Company:
    company = await TenantService(db).get_company(company_id)
    if not company:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Company not found")
    return company


# ============== Company ==============


@router.get("/company")
async def get_company(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    company = await _require_company(db, user.company_id)
    product_count = await ProductService(db).count_products(company.id)
    return _company_dict(company, product_count)


@router.patch("/company")
async def update_company(
    request: CompanyUpdateRequest,
    user: User = Depends(require_team_manager),
    db: AsyncSession = Depends(get_db),
):
    company = await TenantService(db).rename_company(user.company_id, request.name.strip())
    return _company_dict(company)


# ============== Team ==============


@router.get("/team")
async def list_team(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    members = await TenantService(db).get_company_users(user.company_id)
    return [_member_dict(member) for member in members]


@router.get("/team/invitations")
async def list_invitations(
    user: User = Depends(require_team_manager),
    db: AsyncSession = Depends(get_db),
):
    invitations = await TenantService(db).get_company_invitations(user.company_id)
    return [_invitation_dict(invitation) for invitation in invitations]


@router.post("/team/invitations", status_code=status.HTTP_201_CREATED)
async def invite_member(
    request: InvitationRequest,
    user: User = Depends(require_team_manager),
    db: AsyncSession = Depends(get_db),
):
    """Invite someone to the company; the invite URL is returned, not e-mailed."""
    try:
        invitation = await TenantService(db).create_invitation(
            user.company_id,
            invited_by=user,
            email=request.email.lower(),
            role=request.role,
        )
    except InvitationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    data = _invitation_dict(invitation, include_token=True)
    logger.info(f"Invitation URL for {invitation.email}: {data['invite_url']}")
    return data


@router.delete("/team/{user_id}")
async def remove_member(
    user_id: str,
    user: User = Depends(require_team_manager),
    db: AsyncSession = Depends(get_db),
):
    if user_id == user.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You cannot remove yourself")

    try:
        removed = await TenantService(db).remove_member(user.company_id, user_id)
    except InvitationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    if not removed:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Team member not found")
    return {"status": "removed", "id": user_id}


# ============== Invitations ==============


@router.get("/invitations/{token}")
async def get_invitation(token: str, db: AsyncSession = Depends(get_db)):
    """Public details of an invitation, for the accept page."""
    service = TenantService(db)
    invitation = await service.get_invitation(token)
    if not invitation:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invitation not found")

    company = await service.get_company(invitation.company_id)
    data = _invitation_dict(invitation)
    data["company_name"] = company.name if company else None
    return data


@router.post("/invitations/{token}/accept")
async def accept_invitation(
    token: str,
    user: User = Depends(get_authenticated_user),
    db: AsyncSession = Depends(get_db),
):
    """Join the inviting company with the invited role."""
    try:
        member = await TenantService(db).accept_invitation(token, user)
    except InvitationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    company = await _require_company(db, member.company_id)
    return {"user": _member_dict(member), "company": _company_dict(company)}
