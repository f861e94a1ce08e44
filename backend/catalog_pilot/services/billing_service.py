"""
Billing Service
Stripe Checkout sessions and subscription webhooks
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import stripe
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_pilot.config import settings
from catalog_pilot.models import Company, User
from catalog_pilot.services.plans import DEFAULT_PLAN, SUBSCRIPTION_PLANS, get_plan
from catalog_pilot.services.tenant_service import TenantService

logger = logging.getLogger(__name__)


class BillingError(Exception):
    """Billing request cannot be fulfilled."""


def _period_end(timestamp: Optional[int]) -> Optional[datetime]:
    if not timestamp:
        return None
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).replace(tzinfo=None)


def _plan_from_price(price_id: Optional[str]) -> Optional[str]:
    for plan in SUBSCRIPTION_PLANS.values():
        if price_id and plan.price_id == price_id:
            return plan.id
    return None


class BillingService:
    """Service for Stripe subscription billing."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.tenants = TenantService(db)
        stripe.api_key = settings.stripe_secret_key

    async def create_checkout_session(self, company: Company, user: User, plan_id: str) -> Dict[str, str]:
        """
        Create a Stripe Checkout session for a paid plan.

        Args:
            company: Company being upgraded
            user: User starting the checkout
            plan_id: starter or premium

        Returns:
            Dict with session_id and url
        """
        if not settings.stripe_secret_key:
            raise BillingError("Billing is not configured")

        plan = get_plan(plan_id)
        if not plan.price_id:
            raise BillingError(f"Plan {plan.id} cannot be purchased")

        params: Dict[str, Any] = {
            "mode": "subscription",
            "line_items": [{"price": plan.price_id, "quantity": 1}],
            "success_url": f"{settings.app_url}/subscription?status=success",
            "cancel_url": f"{settings.app_url}/subscription?status=cancelled",
            "client_reference_id": company.id,
            "metadata": {"company_id": company.id, "plan": plan.id},
        }
        if company.stripe_customer_id:
            params["customer"] = company.stripe_customer_id
        elif user.email:
            params["customer_email"] = user.email

        session = await asyncio.to_thread(stripe.checkout.Session.create, **params)

        logger.info(f"Checkout session {session.id} created for company {company.id} ({plan.id})")
        return {"session_id": session.id, "url": session.url}

    async def handle_webhook(self, payload: bytes, sig_header: str) -> Dict[str, Any]:
        """
        Verify and apply a Stripe webhook event.

        Args:
            payload: Raw request body
            sig_header: Stripe-Signature header

        Returns:
            Dict with the event type and whether it was handled

        Raises:
            BillingError: If the signature or payload is invalid
        """
        if not settings.stripe_webhook_secret:
            raise BillingError("Billing webhook is not configured")

        try:
            event = stripe.Webhook.construct_event(payload, sig_header, settings.stripe_webhook_secret)
        except ValueError:
            raise BillingError("Invalid payload")
        except stripe.SignatureVerificationError:
            raise BillingError("Invalid signature")

        event_type = event["type"]
        data = event["data"]["object"]
        logger.info(f"Stripe webhook received: {event_type}")

        if event_type == "checkout.session.completed":
            handled = await self._handle_checkout_completed(data)
        elif event_type == "customer.subscription.updated":
            handled = await self._handle_subscription_updated(data)
        elif event_type == "customer.subscription.deleted":
            handled = await self._handle_subscription_deleted(data)
        else:
            handled = False

        return {"type": event_type, "handled": handled}

    # ============== Event handlers ==============

    async def _handle_checkout_completed(self, session: Dict[str, Any]) -> bool:
        metadata = session.get("metadata") or {}
        company_id = metadata.get("company_id") or session.get("client_reference_id")
        plan_id = metadata.get("plan")
        if not company_id or plan_id not in SUBSCRIPTION_PLANS:
            logger.warning(f"Checkout session {session.get('id')} has no company or plan")
            return False

        try:
            await self.tenants.update_subscription(
                company_id,
                plan_id,
                status="active",
                stripe_customer_id=session.get("customer"),
                stripe_subscription_id=session.get("subscription"),
            )
        except ValueError as e:
            logger.warning(f"Checkout for unknown company: {e}")
            return False
        return True

    async def _handle_subscription_updated(self, subscription: Dict[str, Any]) -> bool:
        company = await self.tenants.get_company_by_subscription(subscription.get("id"))
        if not company:
            logger.warning(f"No company for subscription {subscription.get('id')}")
            return False

        items = (subscription.get("items") or {}).get("data") or []
        price_id = ((items[0].get("price") or {}).get("id")) if items else None
        plan_id = _plan_from_price(price_id) or company.subscription_plan

        await self.tenants.update_subscription(
            company.id,
            plan_id,
            status=subscription.get("status", "active"),
            current_period_end=_period_end(subscription.get("current_period_end")),
        )
        return True

    async def _handle_subscription_deleted(self, subscription: Dict[str, Any]) -> bool:
        company = await self.tenants.get_company_by_subscription(subscription.get("id"))
        if not company:
            logger.warning(f"No company for subscription {subscription.get('id')}")
            return False

        await self.tenants.update_subscription(company.id, DEFAULT_PLAN, status="canceled")
        return True
