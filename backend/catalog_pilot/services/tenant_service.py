"""
Tenant Service
Manages companies, users, team invitations and BigCommerce API settings
"""

import logging
import secrets
from datetime import timedelta
from typing import List, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_pilot.config import settings
from catalog_pilot.models import ApiSettings, Company, CompanyInvitation, User
from catalog_pilot.services.bigcommerce_client import BigCommerceClient
from catalog_pilot.services.plans import get_plan
from catalog_pilot.utils.clock import utcnow
from catalog_pilot.utils.encryption import decrypt_token, encrypt_token

logger = logging.getLogger(__name__)

TEAM_ROLES = ("owner", "admin", "member")


class ApiSettingsMissingError(Exception):
    """The company has not configured BigCommerce credentials."""

    def __init__(self, message: str = "BigCommerce API settings not configured"):
        super().__init__(message)


class InvitationError(Exception):
    """Invitation cannot be created or accepted."""


class TenantService:
    """Service for company, team and credential management."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ============== Companies ==============

    async def get_company(self, company_id: str) -> Optional[Company]:
        """Get company by ID."""
        result = await self.db.execute(select(Company).where(Company.id == company_id))
        return result.scalar_one_or_none()

    async def create_company(self, name: str, plan_id: str = "trial") -> Company:
        """Create a company on the given plan."""
        plan = get_plan(plan_id)
        company = Company(
            name=name,
            subscription_plan=plan.id,
            product_limit=plan.product_limit,
        )
        self.db.add(company)
        await self.db.commit()
        await self.db.refresh(company)

        logger.info(f"Company created: {company.id} ({plan.id})")
        return company

    async def rename_company(self, company_id: str, name: str) -> Company:
        company = await self.get_company(company_id)
        if not company:
            raise ValueError(f"Company not found: {company_id}")

        company.name = name
        await self.db.commit()
        await self.db.refresh(company)
        return company

    async def update_subscription(
        self,
        company_id: str,
        plan_id: str,
        status: str = "active",
        stripe_customer_id: str = None,
        stripe_subscription_id: str = None,
        current_period_end=None,
    ) -> Company:
        """
        Move a company to a subscription plan.

        Args:
            company_id: Company ID
            plan_id: trial, starter or premium
            status: Subscription status reported by Stripe
            stripe_customer_id: Stripe customer, kept if None
            stripe_subscription_id: Stripe subscription, kept if None
            current_period_end: End of the paid period

        Returns:
            Company: Updated company
        """
        company = await self.get_company(company_id)
        if not company:
            raise ValueError(f"Company not found: {company_id}")

        plan = get_plan(plan_id)
        company.subscription_plan = plan.id
        company.product_limit = plan.product_limit
        company.subscription_status = status
        if stripe_customer_id:
            company.stripe_customer_id = stripe_customer_id
        if stripe_subscription_id:
            company.stripe_subscription_id = stripe_subscription_id
        if current_period_end is not None:
            company.current_period_end = current_period_end

        await self.db.commit()
        await self.db.refresh(company)

        logger.info(f"Company {company_id} moved to plan {plan.id} ({status})")
        return company

    async def get_company_by_subscription(self, stripe_subscription_id: str) -> Optional[Company]:
        result = await self.db.execute(
            select(Company).where(Company.stripe_subscription_id == stripe_subscription_id)
        )
        return result.scalar_one_or_none()

    # ============== Users ==============

    async def get_user(self, user_id: str) -> Optional[User]:
        """Get user by ID."""
        result = await self.db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def get_user_by_email(self, email: str) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.email == email))
        return result.scalar_one_or_none()

    async def ensure_user(self, user_id: str, email: Optional[str] = None, **profile) -> User:
        """
        Get a user, provisioning it on first sight.

        A new user gets a new trial company and becomes its owner.

        Args:
            user_id: Identity-provider uid
            email: Email from the identity token
            **profile: first_name, last_name, profile_image_url

        Returns:
            User: Existing or created user
        """
        user = await self.get_user(user_id)
        if user:
            if email and user.email != email:
                user.email = email
                await self.db.commit()
            return user

        company_name = (email or "").split("@")[0] or "Company"
        company = await self.create_company(company_name)

        user = User(
            id=user_id,
            company_id=company.id,
            email=email,
            role="owner",
            first_name=profile.get("first_name"),
            last_name=profile.get("last_name"),
            profile_image_url=profile.get("profile_image_url"),
        )
        self.db.add(user)
        await self.db.commit()
        await self.db.refresh(user)

        logger.info(f"User provisioned: {user_id} as owner of {company.id}")
        return user

    async def get_company_users(self, company_id: str) -> List[User]:
        """Active members of a company."""
        result = await self.db.execute(
            select(User)
            .where(User.company_id == company_id, User.is_active == True)  # noqa: E712
            .order_by(User.created_at)
        )
        return list(result.scalars().all())

    async def remove_member(self, company_id: str, user_id: str) -> bool:
        """
        Deactivate a member of a company.

        Returns:
            bool: True if the member was found and removed
        """
        user = await self.get_user(user_id)
        if not user or user.company_id != company_id or not user.is_active:
            return False
        if user.role == "owner":
            raise InvitationError("The company owner cannot be removed")

        user.is_active = False
        await self.db.commit()

        logger.info(f"User {user_id} removed from company {company_id}")
        return True

    # ============== Invitations ==============

    async def create_invitation(
        self,
        company_id: str,
        invited_by: User,
        email: str,
        role: str = "member",
    ) -> CompanyInvitation:
        """
        Invite someone to a company.

        Args:
            company_id: Company ID
            invited_by: Inviting user (owner or admin)
            email: Invitee email
            role: admin or member

        Returns:
            CompanyInvitation: Created invitation
        """
        if role not in TEAM_ROLES or role == "owner":
            raise InvitationError(f"Invalid role: {role}")
        if not invited_by.can_manage_team:
            raise InvitationError("Only owners and admins can invite team members")

        existing = await self.get_user_by_email(email)
        if existing and existing.company_id == company_id and existing.is_active:
            raise InvitationError(f"{email} is already a member of this company")

        invitation = CompanyInvitation(
            company_id=company_id,
            email=email,
            role=role,
            invited_by=invited_by.id,
            token=secrets.token_urlsafe(32),
            status="pending",
            expires_at=utcnow() + timedelta(days=settings.invitation_ttl_days),
        )
        self.db.add(invitation)
        await self.db.commit()
        await self.db.refresh(invitation)

        logger.info(f"Invitation created for {email} to company {company_id}")
        return invitation

    async def get_invitation(self, token: str) -> Optional[CompanyInvitation]:
        result = await self.db.execute(
            select(CompanyInvitation).where(CompanyInvitation.token == token)
        )
        return result.scalar_one_or_none()

    async def get_company_invitations(self, company_id: str) -> List[CompanyInvitation]:
        result = await self.db.execute(
            select(CompanyInvitation)
            .where(CompanyInvitation.company_id == company_id)
            .order_by(CompanyInvitation.created_at.desc())
        )
        return list(result.scalars().all())

    async def accept_invitation(self, token: str, user: User) -> User:
        """
        Move a user into the inviting company with the invited role.

        Raises:
            InvitationError: If the invitation is unknown, used or expired
        """
        invitation = await self.get_invitation(token)
        if not invitation:
            raise InvitationError("Invitation not found")

        if invitation.status == "pending" and invitation.is_expired():
            invitation.status = "expired"
            await self.db.commit()
        if not invitation.is_open:
            raise InvitationError(f"Invitation is {invitation.status}")
        if user.email and invitation.email.lower() != user.email.lower():
            raise InvitationError("Invitation was sent to a different email address")

        user.company_id = invitation.company_id
        user.role = invitation.role
        user.is_active = True
        invitation.status = "accepted"
        invitation.accepted_at = utcnow()

        await self.db.commit()
        await self.db.refresh(user)

        logger.info(f"User {user.id} joined company {invitation.company_id} as {invitation.role}")
        return user

    # ============== API Settings ==============

    async def get_api_settings(self, company_id: str) -> Optional[ApiSettings]:
        """Get the company's BigCommerce credentials."""
        result = await self.db.execute(
            select(ApiSettings).where(ApiSettings.company_id == company_id)
        )
        return result.scalar_one_or_none()

    async def save_api_settings(
        self,
        company_id: str,
        store_hash: str,
        access_token: str,
        client_id: str,
        show_stock: bool = False,
        show_stock_status: bool = False,
    ) -> ApiSettings:
        """
        Replace the company's BigCommerce credentials.

        Returns:
            ApiSettings: The new settings row
        """
        await self.db.execute(delete(ApiSettings).where(ApiSettings.company_id == company_id))

        api_settings = ApiSettings(
            company_id=company_id,
            store_hash=store_hash,
            access_token=encrypt_token(access_token),
            client_id=client_id,
            show_stock=show_stock,
            show_stock_status=show_stock_status,
        )
        self.db.add(api_settings)
        await self.db.commit()
        await self.db.refresh(api_settings)

        logger.info(f"API settings saved for company {company_id} (store {store_hash})")
        return api_settings

    async def touch_last_sync(self, company_id: str) -> None:
        api_settings = await self.get_api_settings(company_id)
        if api_settings:
            api_settings.last_sync_at = utcnow()
            await self.db.commit()

    async def get_client(self, company_id: str, client_factory=BigCommerceClient) -> BigCommerceClient:
        """
        Build a BigCommerce client from the company's stored credentials.

        Raises:
            ApiSettingsMissingError: If no credentials are configured
        """
        api_settings = await self.get_api_settings(company_id)
        if not api_settings:
            raise ApiSettingsMissingError()

        return client_factory(
            api_settings.store_hash,
            decrypt_token(api_settings.access_token),
            api_settings.client_id,
        )
