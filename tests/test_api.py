"""Tests for the checkout requirements API."""

from datetime import timedelta

import pytest
from httpx import ASGITransport, AsyncClient

from checkout_requirements.config import Settings

CART = {
    "customer_id": "cust-1",
    "items": [{"product_id": "SKU-1", "name": "Keyboard", "unit_price": "49.90"}],
}


@pytest.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


async def _start_checkout(client, cart=CART) -> str:
    resp = await client.post("/api/v1/checkout", json=cart)
    assert resp.status_code == 200
    return resp.json()["session_id"]


class TestHealth:
    async def test_health_check(self, client):
        resp = await client.get("/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "healthy"
        assert data["service"] == "checkout-requirements"
        assert data["environment"] == "testing"


class TestPaymentMethods:
    async def test_list_builtin_methods(self, client):
        resp = await client.get("/api/v1/payment-methods")
        assert resp.status_code == 200
        data = resp.json()
        assert data["total"] == 5
        names = [m["system_name"] for m in data["payment_methods"]]
        assert names[0] == "Payments.Invoice"
        assert "Payments.StoredCard" in names

    async def test_deactivate_method(self, client):
        resp = await client.put(
            "/api/v1/payment-methods/payments.creditcard", json={"is_active": False}
        )
        assert resp.status_code == 200
        assert resp.json()["is_active"] is False

        session_id = await _start_checkout(client)
        resp = await client.get(f"/api/v1/checkout/{session_id}/payment-method")
        names = [m["system_name"] for m in resp.json()["payment_methods"]]
        assert "Payments.CreditCard" not in names
        assert len(names) == 4

    async def test_update_unknown_method(self, client):
        resp = await client.put(
            "/api/v1/payment-methods/Payments.Bitcoin", json={"is_active": True}
        )
        assert resp.status_code == 404

    async def test_revoke_token_needs_token_storing_method(self, client):
        resp = await client.post(
            "/api/v1/payment-methods/Payments.Invoice/revoked-tokens",
            json={"token": "tok_1"},
        )
        assert resp.status_code == 400


class TestCheckoutSession:
    async def test_create_checkout(self, client):
        resp = await client.post("/api/v1/checkout", json=CART)
        assert resp.status_code == 200
        data = resp.json()
        assert data["payment_step_url"].endswith("/payment-method")
        assert data["state"]["is_payment_required"] is False

    async def test_get_checkout(self, client):
        session_id = await _start_checkout(client)
        resp = await client.get(f"/api/v1/checkout/{session_id}")
        assert resp.status_code == 200
        assert resp.json()["cart"]["customer_id"] == "cust-1"

    async def test_unknown_checkout(self, client):
        resp = await client.get("/api/v1/checkout/nope/payment-method")
        assert resp.status_code == 404

    async def test_expired_checkout(self, client, app):
        session_id = await _start_checkout(client)
        session = app.state.app_state.sessions.get_session(session_id)
        session.updated_at -= timedelta(days=1)

        resp = await client.get(f"/api/v1/checkout/{session_id}")
        assert resp.status_code == 410

    async def test_abandoned_checkouts_are_purged(self, client, app):
        sessions = app.state.app_state.sessions
        abandoned = [await _start_checkout(client) for _ in range(5)]
        for session_id in abandoned:
            sessions.get_session(session_id).updated_at -= timedelta(days=30)

        for _ in range(5):
            await _start_checkout(client)

        assert len(sessions) == 5
        resp = await client.get(f"/api/v1/checkout/{abandoned[0]}")
        assert resp.status_code == 404


class TestPaymentStep:
    async def test_render_requires_selection(self, client):
        session_id = await _start_checkout(client)
        resp = await client.get(f"/api/v1/checkout/{session_id}/payment-method")
        assert resp.status_code == 200
        data = resp.json()
        assert data["verdict"]["satisfied"] is False
        assert data["verdict"]["skipped"] is False
        assert data["state"]["is_payment_required"] is True
        assert len(data["payment_methods"]) == 5

    async def test_free_cart_skips_step(self, client):
        session_id = await _start_checkout(client, {"customer_id": "cust-1", "items": []})
        resp = await client.get(f"/api/v1/checkout/{session_id}/payment-method")
        data = resp.json()
        assert data["verdict"]["skipped"] is True
        assert data["state"]["is_payment_required"] is False

        resp = await client.post(f"/api/v1/checkout/{session_id}/complete")
        assert resp.status_code == 200

    async def test_invalid_card_submission(self, client):
        session_id = await _start_checkout(client)
        resp = await client.post(
            f"/api/v1/checkout/{session_id}/payment-method",
            data={
                "paymentmethod": "Payments.CreditCard",
                "CardNumber": "1234",
                "SaveCard": ["true", "false"],
            },
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["verdict"]["satisfied"] is False
        fields = {e["field"] for e in data["verdict"]["errors"]}
        assert "CardNumber" in fields
        assert data["selected_payment_method"] == "Payments.CreditCard"
        assert data["state"]["payment_data"]["SaveCard"] == "true"
        assert data["state"]["payment_data"]["CardNumber"] == "1234"
        assert data["state"]["payment_summary"] is None

    async def test_valid_card_submission(self, client):
        session_id = await _start_checkout(client)
        resp = await client.post(
            f"/api/v1/checkout/{session_id}/payment-method",
            data={
                "paymentmethod": "Payments.CreditCard",
                "CardholderName": "Jane Doe",
                "CardNumber": "4111111111111111",
                "ExpireMonth": "12",
                "ExpireYear": "2099",
                "CardCode": "123",
            },
        )
        data = resp.json()
        assert data["verdict"]["satisfied"] is True
        assert data["verdict"]["errors"] is None
        assert data["state"]["payment_summary"] == "Credit card"

        resp = await client.get(f"/api/v1/checkout/{session_id}")
        info = resp.json()["values"]["OrderPaymentInfo"]
        assert info["masked_card_number"] == "************1111"

    async def test_unknown_method_submission(self, client):
        session_id = await _start_checkout(client)
        resp = await client.post(
            f"/api/v1/checkout/{session_id}/payment-method",
            data={"paymentmethod": "Payments.Bitcoin"},
        )
        data = resp.json()
        assert data["verdict"]["satisfied"] is False
        assert data["selected_payment_method"] is None
        assert data["state"]["payment_data"] == {}

    async def test_complete_without_selection_is_rejected(self, client):
        session_id = await _start_checkout(client)
        resp = await client.post(f"/api/v1/checkout/{session_id}/complete")
        assert resp.status_code == 409


class TestSingleOption:
    @pytest.fixture
    def settings(self):
        return Settings(
            environment="testing",
            log_level="WARNING",
            skip_payment_selection_if_single_option=True,
            active_payment_methods=["Payments.Invoice"],
            order_history_url="",
        )

    async def test_single_invoice_is_selected(self, client):
        session_id = await _start_checkout(client)
        resp = await client.get(f"/api/v1/checkout/{session_id}/payment-method")
        data = resp.json()
        assert data["verdict"]["satisfied"] is True
        assert data["verdict"]["skipped"] is True
        assert data["selected_payment_method"] == "Payments.Invoice"
        assert data["state"]["custom_properties"]["HasOnlyOneActivePaymentMethod"] is True

        resp = await client.post(f"/api/v1/checkout/{session_id}/complete")
        assert resp.status_code == 200
        assert resp.json()["order"]["payment_method_system_name"] == "Payments.Invoice"


class TestQuickCheckout:
    async def test_stored_card_is_reused(self, client, app):
        first = await _start_checkout(client)
        resp = await client.post(
            f"/api/v1/checkout/{first}/payment-method",
            data={"paymentmethod": "Payments.StoredCard", "StoredCardToken": "tok_1"},
        )
        assert resp.json()["verdict"]["satisfied"] is True

        resp = await client.post(f"/api/v1/checkout/{first}/complete")
        assert resp.status_code == 200
        placed = resp.json()
        assert placed["status"] == "placed"
        assert "payment_token" not in placed["order"]
        orders = app.state.app_state.orders.list_orders("cust-1")
        assert orders[0].payment_token == "tok_1"

        second = await _start_checkout(client)
        resp = await client.get(f"/api/v1/checkout/{second}/payment-method")
        data = resp.json()
        assert data["verdict"]["satisfied"] is True
        assert data["selected_payment_method"] == "Payments.StoredCard"
        assert data["state"]["is_payment_selection_skipped"] is True
        assert data["state"]["payment_summary"] == "Saved card"

        resp = await client.get(f"/api/v1/checkout/{second}")
        info = resp.json()["values"]["OrderPaymentInfo"]
        assert "payment_token" not in info
        assert info["reference_order_id"] == placed["order_id"]
        session = app.state.app_state.sessions.get_session(second)
        assert session.get("OrderPaymentInfo").payment_token == "tok_1"

    async def test_preferred_method(self, client):
        resp = await client.put(
            "/api/v1/customers/cust-1/payment-preference",
            json={"preferred_payment_method": "Payments.CreditCard"},
        )
        assert resp.status_code == 200
        assert resp.json()["preferred_payment_method"] == "Payments.CreditCard"

        session_id = await _start_checkout(client)
        resp = await client.get(f"/api/v1/checkout/{session_id}/payment-method")
        data = resp.json()
        assert data["verdict"]["satisfied"] is True
        assert data["selected_payment_method"] == "Payments.CreditCard"

    async def test_unknown_preferred_method(self, client):
        resp = await client.put(
            "/api/v1/customers/cust-1/payment-preference",
            json={"preferred_payment_method": "Payments.Bitcoin"},
        )
        assert resp.status_code == 400

    async def test_get_preference(self, client):
        resp = await client.get("/api/v1/customers/cust-9/payment-preference")
        assert resp.status_code == 200
        assert resp.json() == {
            "customer_id": "cust-9",
            "selected_payment_method": None,
            "preferred_payment_method": None,
        }

    async def test_revoked_token_is_not_reused(self, client):
        first = await _start_checkout(client)
        await client.post(
            f"/api/v1/checkout/{first}/payment-method",
            data={"paymentmethod": "Payments.StoredCard", "StoredCardToken": "tok_1"},
        )
        resp = await client.post(f"/api/v1/checkout/{first}/complete")
        assert resp.status_code == 200

        resp = await client.post(
            "/api/v1/payment-methods/Payments.StoredCard/revoked-tokens",
            json={"token": "tok_1"},
        )
        assert resp.status_code == 200
        assert resp.json() == {"system_name": "Payments.StoredCard", "revoked": True}

        second = await _start_checkout(client)
        resp = await client.get(f"/api/v1/checkout/{second}/payment-method")
        data = resp.json()
        assert data["verdict"]["satisfied"] is False
        assert data["selected_payment_method"] is None
        assert data["state"]["is_payment_selection_skipped"] is False
