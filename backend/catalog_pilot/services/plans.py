"""
Subscription plans and their catalog product ceilings
"""

from dataclasses import dataclass, field
from typing import Dict, List

from catalog_pilot.config import settings

DEFAULT_PLAN = "trial"


@dataclass(frozen=True)
class SubscriptionPlan:
    id: str
    name: str
    product_limit: int
    price: int
    interval: str = "month"
    features: List[str] = field(default_factory=list)

    @property
    def price_id(self) -> str:
        """Stripe price for the plan; the trial has none."""
        return {
            "starter": settings.stripe_price_starter,
            "premium": settings.stripe_price_premium,
        }.get(self.id, "")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "product_limit": self.product_limit,
            "price": self.price,
            "interval": self.interval,
            "features": list(self.features),
        }


SUBSCRIPTION_PLANS: Dict[str, SubscriptionPlan] = {
    "trial": SubscriptionPlan(
        id="trial",
        name="Trial",
        product_limit=5,
        price=0,
        features=["5 products", "Basic sync", "Work orders"],
    ),
    "starter": SubscriptionPlan(
        id="starter",
        name="Starter",
        product_limit=10,
        price=29,
        features=["10 products", "Advanced sync", "Work orders", "Team collaboration"],
    ),
    "premium": SubscriptionPlan(
        id="premium",
        name="Premium",
        product_limit=1000,
        price=99,
        features=[
            "1000 products",
            "Full sync",
            "Advanced work orders",
            "Team collaboration",
            "Priority support",
        ],
    ),
}


def get_plan(plan_id: str) -> SubscriptionPlan:
    """Look up a plan; raises ValueError for unknown ids."""
    try:
        return SUBSCRIPTION_PLANS[plan_id or DEFAULT_PLAN]
    except KeyError:
        raise ValueError(f"Unknown subscription plan: {plan_id}")
