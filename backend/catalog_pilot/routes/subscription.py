"""
Subscription routes
Plans, Stripe Checkout and Stripe webhooks
"""

import logging

import stripe
from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_pilot.database import get_db
from catalog_pilot.middleware.auth import get_current_user, require_team_manager
from catalog_pilot.models import User
from catalog_pilot.services.billing_service import BillingError, BillingService
from catalog_pilot.services.plans import SUBSCRIPTION_PLANS, get_plan
from catalog_pilot.services.product_service import ProductService
from catalog_pilot.services.tenant_service import TenantService

logger = logging.getLogger(__name__)

router = APIRouter()


class CheckoutRequest(BaseModel):
    plan: str


@router.get("/plans")
async def list_plans():
    """Available subscription plans."""
    return [plan.to_dict() for plan in SUBSCRIPTION_PLANS.values()]


@router.get("")
async def get_subscription(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Current plan and catalog usage of the caller's company."""
    company = await TenantService(db).get_company(user.company_id)
    if not company:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Company not found")

    plan = get_plan(company.subscription_plan)
    product_count = await ProductService(db).count_products(company.id)
    return {
        "plan": plan.to_dict(),
        "status": company.subscription_status,
        "product_limit": company.product_limit,
        "product_count": product_count,
        "current_period_end": company.current_period_end.isoformat() if company.current_period_end else None,
    }


@router.post("/checkout")
async def create_checkout(
    request: CheckoutRequest,
    user: User = Depends(require_team_manager),
    db: AsyncSession = Depends(get_db),
):
    """Start a Stripe Checkout session for a paid plan."""
    if request.plan not in SUBSCRIPTION_PLANS:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unknown plan: {request.plan}")

    company = await TenantService(db).get_company(user.company_id)
    if not company:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Company not found")

    try:
        return await BillingService(db).create_checkout_session(company, user, request.plan)
    except BillingError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except stripe.StripeError as e:
        logger.error(f"Stripe checkout failed for company {company.id}: {e}")
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Payment provider error")


@router.post("/webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: str = Header("", alias="Stripe-Signature"),
    db: AsyncSession = Depends(get_db),
):
    """Apply Stripe subscription events to the matching company."""
    payload = await request.body()
    try:
        result = await BillingService(db).handle_webhook(payload, stripe_signature)
    except BillingError as e:
        logger.warning(f"Rejected Stripe webhook: {e}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return {"received": True, **result}
