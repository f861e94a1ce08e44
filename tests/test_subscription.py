"""
Unit tests for plans, Stripe Checkout and Stripe webhooks.
"""

from unittest.mock import MagicMock, patch

import pytest
import stripe


def stripe_event(event_type: str, obj: dict) -> dict:
    return {"id": "evt_test", "type": event_type, "data": {"object": obj}}


@pytest.fixture
def company_id(client, auth_headers):
    return client.get("/api/company", headers=auth_headers).json()["id"]


def post_event(client, event):
    with patch("stripe.Webhook.construct_event", return_value=event) as construct:
        response = client.post(
            "/api/subscription/webhook",
            content=b'{"id": "evt_test"}',
            headers={"Stripe-Signature": "t=1,v1=abc"},
        )
    construct.assert_called_once_with(b'{"id": "evt_test"}', "t=1,v1=abc", "whsec_test")
    return response


class TestPlans:
    """Tests for plan listing and the current subscription."""

    def test_list_plans(self, client):
        response = client.get("/api/subscription/plans")
        assert response.status_code == 200
        limits = {plan["id"]: plan["product_limit"] for plan in response.json()}
        assert limits == {"trial": 5, "starter": 10, "premium": 1000}

    def test_current_subscription(self, client, auth_headers):
        response = client.get("/api/subscription", headers=auth_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["plan"]["id"] == "trial"
        assert data["product_limit"] == 5
        assert data["product_count"] == 0
        assert data["current_period_end"] is None


class TestCheckout:
    """Tests for POST /api/subscription/checkout."""

    def test_checkout_session(self, client, auth_headers, company_id):
        session = MagicMock(id="cs_test_1", url="https://checkout.stripe.com/c/cs_test_1")
        with patch("stripe.checkout.Session.create", return_value=session) as create:
            response = client.post("/api/subscription/checkout", json={"plan": "starter"}, headers=auth_headers)

        assert response.status_code == 200
        assert response.json() == {"session_id": "cs_test_1", "url": "https://checkout.stripe.com/c/cs_test_1"}

        kwargs = create.call_args.kwargs
        assert kwargs["mode"] == "subscription"
        assert kwargs["line_items"] == [{"price": "price_starter", "quantity": 1}]
        assert kwargs["customer_email"] == "owner@example.com"
        assert kwargs["metadata"] == {"company_id": company_id, "plan": "starter"}

    def test_unknown_plan(self, client, auth_headers):
        response = client.post("/api/subscription/checkout", json={"plan": "gold"}, headers=auth_headers)
        assert response.status_code == 400

    def test_trial_cannot_be_purchased(self, client, auth_headers):
        response = client.post("/api/subscription/checkout", json={"plan": "trial"}, headers=auth_headers)
        assert response.status_code == 400

    def test_stripe_failure_is_502(self, client, auth_headers):
        with patch("stripe.checkout.Session.create", side_effect=stripe.StripeError("boom")):
            response = client.post("/api/subscription/checkout", json={"plan": "premium"}, headers=auth_headers)
        assert response.status_code == 502


class TestWebhook:
    """Tests for POST /api/subscription/webhook."""

    def test_invalid_signature(self, client):
        error = stripe.SignatureVerificationError("No signatures found", "bad")
        with patch("stripe.Webhook.construct_event", side_effect=error):
            response = client.post(
                "/api/subscription/webhook",
                content=b"{}",
                headers={"Stripe-Signature": "bad"},
            )
        assert response.status_code == 400

    def test_subscription_lifecycle(self, client, auth_headers, company_id):
        completed = post_event(
            client,
            stripe_event(
                "checkout.session.completed",
                {
                    "id": "cs_test_1",
                    "client_reference_id": company_id,
                    "customer": "cus_1",
                    "subscription": "sub_1",
                    "metadata": {"company_id": company_id, "plan": "starter"},
                },
            ),
        )
        assert completed.json() == {"received": True, "type": "checkout.session.completed", "handled": True}
        company = client.get("/api/company", headers=auth_headers).json()
        assert company["subscription_plan"] == "starter"
        assert company["product_limit"] == 10

        updated = post_event(
            client,
            stripe_event(
                "customer.subscription.updated",
                {
                    "id": "sub_1",
                    "status": "active",
                    "current_period_end": 1893456000,
                    "items": {"data": [{"price": {"id": "price_premium"}}]},
                },
            ),
        )
        assert updated.json()["handled"] is True
        subscription = client.get("/api/subscription", headers=auth_headers).json()
        assert subscription["plan"]["id"] == "premium"
        assert subscription["product_limit"] == 1000
        assert subscription["current_period_end"] == "2030-01-01T00:00:00"

        deleted = post_event(client, stripe_event("customer.subscription.deleted", {"id": "sub_1"}))
        assert deleted.json()["handled"] is True
        subscription = client.get("/api/subscription", headers=auth_headers).json()
        assert subscription["plan"]["id"] == "trial"
        assert subscription["status"] == "canceled"
        assert subscription["product_limit"] == 5

    def test_unknown_subscription_not_handled(self, client):
        response = post_event(client, stripe_event("customer.subscription.deleted", {"id": "sub_missing"}))
        assert response.status_code == 200
        assert response.json()["handled"] is False

    def test_other_events_ignored(self, client):
        response = post_event(client, stripe_event("invoice.paid", {"id": "in_1"}))
        assert response.json() == {"received": True, "type": "invoice.paid", "handled": False}
