"""
Unit tests for work order routes.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import pytest

from catalog_pilot.services.scheduler import SchedulerService


def future(hours: int = 2) -> str:
    return (datetime.now(timezone.utc) + timedelta(hours=hours)).isoformat()


def work_order_payload(**overrides):
    payload = {
        "title": "Spring sale",
        "product_updates": [
            {"product_id": "1", "product_name": "Product 1", "new_regular_price": "20.00", "new_sale_price": "18.00"},
            {"product_id": 2, "product_name": "Product 2", "variant_id": 1002, "new_regular_price": 25},
        ],
        "scheduled_at": future(),
        "execute_immediately": False,
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def mock_scheduler():
    with patch("catalog_pilot.routes.work_orders.scheduler") as mock:
        mock.execute_work_order = AsyncMock(return_value=None)
        yield mock


@pytest.fixture
def created(client, auth_headers, mock_scheduler):
    response = client.post("/api/work-orders", json=work_order_payload(), headers=auth_headers)
    assert response.status_code == 201
    return response.json()


class TestCreateWorkOrder:
    """Tests for POST /api/work-orders."""

    def test_create_schedules_order(self, client, auth_headers, mock_scheduler):
        response = client.post("/api/work-orders", json=work_order_payload(), headers=auth_headers)
        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "pending"
        assert data["archived"] is False
        assert data["created_by"] == "user-1"
        assert data["product_updates"][1] == {
            "product_id": "2",
            "product_name": "Product 2",
            "variant_id": "1002",
            "new_regular_price": "25",
        }
        mock_scheduler.schedule_work_order.assert_called_once()
        assert mock_scheduler.schedule_work_order.call_args[0][0].id == data["id"]

    def test_scheduled_at_stored_as_utc(self, client, auth_headers, mock_scheduler):
        payload = work_order_payload(scheduled_at="2030-01-01T12:00:00+02:00")
        data = client.post("/api/work-orders", json=payload, headers=auth_headers).json()
        assert data["scheduled_at"] == "2030-01-01T10:00:00"

    def test_immediate_order_needs_no_schedule(self, client, auth_headers, mock_scheduler):
        payload = work_order_payload(execute_immediately=True, scheduled_at=None)
        response = client.post("/api/work-orders", json=payload, headers=auth_headers)
        assert response.status_code == 201
        assert response.json()["execute_immediately"] is True

    def test_schedule_required_unless_immediate(self, client, auth_headers, mock_scheduler):
        payload = work_order_payload(scheduled_at=None)
        response = client.post("/api/work-orders", json=payload, headers=auth_headers)
        assert response.status_code == 422
        mock_scheduler.schedule_work_order.assert_not_called()

    def test_updates_required(self, client, auth_headers, mock_scheduler):
        response = client.post("/api/work-orders", json=work_order_payload(product_updates=[]), headers=auth_headers)
        assert response.status_code == 422

    @pytest.mark.parametrize(
        "update",
        [
            {"product_id": "1", "new_regular_price": "abc"},
            {"product_id": "1", "new_regular_price": "-5.00"},
            {"product_id": "1", "new_regular_price": ""},
            {"product_id": "1", "new_sale_price": "NaN"},
        ],
    )
    def test_invalid_prices_rejected(self, client, auth_headers, mock_scheduler, update):
        payload = work_order_payload(product_updates=[update])
        response = client.post("/api/work-orders", json=payload, headers=auth_headers)
        assert response.status_code == 422
        mock_scheduler.schedule_work_order.assert_not_called()

    def test_blank_sale_price_clears(self, client, auth_headers, mock_scheduler):
        payload = work_order_payload(product_updates=[{"product_id": "1", "new_sale_price": ""}])
        response = client.post("/api/work-orders", json=payload, headers=auth_headers)
        assert response.status_code == 201
        assert response.json()["product_updates"][0]["new_sale_price"] == ""


class TestWorkOrderLifecycle:
    """Tests for listing, editing, archiving and deleting."""

    def test_list_and_get(self, client, auth_headers, created):
        listing = client.get("/api/work-orders", headers=auth_headers).json()
        assert [w["id"] for w in listing] == [created["id"]]

        response = client.get(f"/api/work-orders/{created['id']}", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["title"] == "Spring sale"

    def test_get_missing(self, client, auth_headers):
        response = client.get("/api/work-orders/does-not-exist", headers=auth_headers)
        assert response.status_code == 404

    def test_other_company_cannot_see_order(self, client, created, token_for):
        other = {"Authorization": f"Bearer {token_for('user-2', 'other@example.com')}"}
        assert client.get(f"/api/work-orders/{created['id']}", headers=other).status_code == 404
        assert client.get("/api/work-orders", headers=other).json() == []

    def test_archive_and_unarchive(self, client, auth_headers, created):
        response = client.post(f"/api/work-orders/{created['id']}/archive", headers=auth_headers)
        assert response.json()["archived"] is True
        assert client.get("/api/work-orders", headers=auth_headers).json() == []
        archived = client.get("/api/work-orders", params={"archived": True}, headers=auth_headers).json()
        assert [w["id"] for w in archived] == [created["id"]]

        response = client.post(f"/api/work-orders/{created['id']}/unarchive", headers=auth_headers)
        assert response.json()["archived"] is False

    def test_edit_pending_reschedules(self, client, auth_headers, created, mock_scheduler):
        mock_scheduler.reset_mock()
        response = client.patch(
            f"/api/work-orders/{created['id']}",
            json={"title": "Summer sale", "scheduled_at": "2031-06-01T08:30:00Z"},
            headers=auth_headers,
        )
        assert response.status_code == 200
        assert response.json()["title"] == "Summer sale"
        assert response.json()["scheduled_at"] == "2031-06-01T08:30:00"
        mock_scheduler.schedule_work_order.assert_called_once()

    def test_delete_cancels_timer(self, client, auth_headers, created, mock_scheduler):
        response = client.delete(f"/api/work-orders/{created['id']}", headers=auth_headers)
        assert response.status_code == 200
        mock_scheduler.cancel_work_order.assert_called_once_with(created["id"])
        assert client.get(f"/api/work-orders/{created['id']}", headers=auth_headers).status_code == 404

    def test_undo_pending_rejected(self, client, auth_headers, created):
        response = client.post(f"/api/work-orders/{created['id']}/undo", headers=auth_headers)
        assert response.status_code == 400

    def test_execute_runs_now(self, client, auth_headers, created, mock_scheduler):
        response = client.post(f"/api/work-orders/{created['id']}/execute", headers=auth_headers)
        assert response.status_code == 200
        mock_scheduler.cancel_work_order.assert_called_with(created["id"])
        mock_scheduler.execute_work_order.assert_awaited_once_with(created["id"])


class TestExecuteAndUndo:
    """End-to-end execution and undo against the fake BigCommerce store."""

    @pytest.fixture
    def live_scheduler(self, fake_bc):
        service = SchedulerService(client_factory=fake_bc)
        with patch("catalog_pilot.routes.work_orders.scheduler", new=service):
            yield service

    @pytest.fixture
    def synced(self, client, auth_headers, configured_company, fake_bc):
        with patch("catalog_pilot.routes.products.BigCommerceClient", new=fake_bc):
            client.post("/api/products/sync", headers=auth_headers)

    def test_execute_then_undo_restores_prices(self, client, auth_headers, synced, fake_bc, live_scheduler):
        work_order = client.post("/api/work-orders", json=work_order_payload(), headers=auth_headers).json()
        assert live_scheduler.has_pending_timer(work_order["id"])

        executed = client.post(f"/api/work-orders/{work_order['id']}/execute", headers=auth_headers).json()
        assert executed["status"] == "completed"
        assert executed["executed_at"] is not None
        assert len(executed["original_prices"]) == 2
        assert not live_scheduler.has_pending_timer(work_order["id"])

        product = client.get("/api/products/1", headers=auth_headers).json()
        assert product["regular_price"] == "20.00"
        assert product["sale_price"] == "18.00"

        second_execute = client.post(f"/api/work-orders/{work_order['id']}/execute", headers=auth_headers)
        assert second_execute.status_code == 400

        fake_bc.updates.clear()
        with patch("catalog_pilot.routes.work_orders.BigCommerceClient", new=fake_bc):
            undone = client.post(f"/api/work-orders/{work_order['id']}/undo", headers=auth_headers)
        assert undone.status_code == 200
        assert undone.json()["status"] == "undone"
        assert undone.json()["undone_at"] is not None
        assert ("1", None, "11.00", "") in fake_bc.updates
        assert ("2", "1002", "12.00", "") in fake_bc.updates

        product = client.get("/api/products/1", headers=auth_headers).json()
        assert product["regular_price"] == "11.00"
        assert product["sale_price"] is None

        history = client.get("/api/products/1/price-history", headers=auth_headers).json()
        assert [h["change_type"] for h in history] == ["undo", "work_order"]

        again = client.post(f"/api/work-orders/{work_order['id']}/undo", headers=auth_headers)
        assert again.status_code == 400

    def test_delete_completed_order(self, client, auth_headers, synced, live_scheduler):
        work_order = client.post("/api/work-orders", json=work_order_payload(), headers=auth_headers).json()
        client.post(f"/api/work-orders/{work_order['id']}/execute", headers=auth_headers)

        edit = client.patch(f"/api/work-orders/{work_order['id']}", json={"title": "x"}, headers=auth_headers)
        assert edit.status_code == 400

        response = client.delete(f"/api/work-orders/{work_order['id']}", headers=auth_headers)
        assert response.status_code == 200

