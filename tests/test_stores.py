"""Tests for in-memory stores and checkout sessions."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from checkout_requirements.models import (
    CartItem,
    CustomerPaymentPreference,
    Order,
    ProcessPaymentRequest,
    ShoppingCart,
)
from checkout_requirements.sessions import (
    CheckoutSessionExpired,
    CheckoutSessionManager,
    CheckoutSessionNotFound,
)
from checkout_requirements.stores import (
    CartTotalCalculator,
    InMemoryCustomerPreferenceStore,
    InMemoryOrderHistory,
)


@pytest.fixture
def cart():
    return ShoppingCart(
        customer_id="cust-1",
        items=[
            CartItem(product_id="A", unit_price=Decimal("19.99"), quantity=2),
            CartItem(product_id="B", unit_price=Decimal("5.00")),
        ],
        reward_points_amount=Decimal("10"),
    )


def _order(order_id, method="Payments.Invoice", minutes_ago=0, **kwargs):
    kwargs.setdefault("customer_id", "cust-1")
    return Order(
        id=order_id,
        payment_method_system_name=method,
        created_at=datetime.now(tz=timezone.utc) - timedelta(minutes=minutes_ago),
        **kwargs,
    )


class TestCartTotal:
    async def test_total_without_reward_points(self, cart):
        assert await CartTotalCalculator().compute_total(cart) == Decimal("44.98")

    async def test_total_with_reward_points(self, cart):
        total = await CartTotalCalculator().compute_total(cart, include_reward_points=True)
        assert total == Decimal("34.98")

    async def test_total_never_negative(self):
        cart = ShoppingCart(
            customer_id="cust-1",
            items=[CartItem(product_id="A", unit_price=Decimal("3"))],
            reward_points_amount=Decimal("5"),
        )
        assert await CartTotalCalculator().compute_total(cart, include_reward_points=True) == 0

    async def test_empty_cart(self):
        assert await CartTotalCalculator().compute_total(ShoppingCart(customer_id="c")) == 0


class TestOrderHistory:
    async def test_latest_matching_order(self):
        history = InMemoryOrderHistory()
        history.add(_order("ORD-1", minutes_ago=30))
        history.add(_order("ORD-2", minutes_ago=10))
        history.add(_order("ORD-3", method="Payments.CreditCard", minutes_ago=1))

        latest = await history.find_latest_order("cust-1", 1, ["payments.invoice"])
        assert latest.id == "ORD-2"

    async def test_deleted_and_foreign_orders_are_ignored(self):
        history = InMemoryOrderHistory()
        history.add(_order("ORD-1", minutes_ago=30))
        history.add(_order("ORD-2", minutes_ago=5, deleted=True))
        history.add(_order("ORD-3", minutes_ago=1, store_id=2))
        history.add(_order("ORD-4", minutes_ago=1, customer_id="cust-2"))

        latest = await history.find_latest_order("cust-1", 1, ["Payments.Invoice"])
        assert latest.id == "ORD-1"

    async def test_same_timestamp_prefers_last_added(self):
        history = InMemoryOrderHistory()
        created = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
        for order_id in ("ORD-1", "ORD-2", "ORD-3"):
            history.add(
                Order(
                    id=order_id,
                    customer_id="cust-1",
                    payment_method_system_name="Payments.Invoice",
                    created_at=created,
                )
            )

        latest = await history.find_latest_order("cust-1", 1, ["Payments.Invoice"])
        assert latest.id == "ORD-3"

    async def test_no_match(self):
        history = InMemoryOrderHistory()
        history.add(_order("ORD-1"))
        assert await history.find_latest_order("cust-1", 1, []) is None
        assert await history.find_latest_order("cust-9", 1, ["Payments.Invoice"]) is None

    def test_list_orders(self):
        history = InMemoryOrderHistory()
        history.add(_order("ORD-1"))
        history.add(_order("ORD-2", customer_id="cust-2"))
        assert len(history.list_orders()) == 2
        assert [o.id for o in history.list_orders("cust-2")] == ["ORD-2"]


class TestPreferenceStore:
    async def test_unknown_customer_gets_empty_preference(self):
        pref = await InMemoryCustomerPreferenceStore().get("cust-1")
        assert pref == CustomerPaymentPreference(customer_id="cust-1")

    async def test_unsaved_changes_do_not_leak(self):
        store = InMemoryCustomerPreferenceStore()
        pref = await store.get("cust-1")
        pref.selected_payment_method = "Payments.Invoice"
        assert (await store.get("cust-1")).selected_payment_method is None

        await store.save(pref)
        assert (await store.get("cust-1")).selected_payment_method == "Payments.Invoice"
        assert store.save_count == 1


class TestCheckoutSessions:
    def test_create_and_get(self, cart):
        manager = CheckoutSessionManager()
        session = manager.create_session(cart)
        assert manager.get_session(session.id) is session
        assert len(manager) == 1

    def test_unknown_session(self):
        with pytest.raises(CheckoutSessionNotFound):
            CheckoutSessionManager().get_session("missing")

    def test_idle_session_expires(self, cart):
        manager = CheckoutSessionManager(ttl_seconds=60)
        session = manager.create_session(cart)
        session.updated_at -= timedelta(minutes=5)

        with pytest.raises(CheckoutSessionExpired):
            manager.get_session(session.id)
        with pytest.raises(CheckoutSessionNotFound):
            manager.get_session(session.id)

    def test_access_refreshes_idle_timer(self, cart):
        manager = CheckoutSessionManager(ttl_seconds=60)
        session = manager.create_session(cart)
        stale = session.updated_at - timedelta(seconds=30)
        session.updated_at = stale

        manager.get_session(session.id)
        assert session.updated_at > stale

    def test_complete_session(self, cart):
        manager = CheckoutSessionManager()
        session = manager.create_session(cart)
        manager.complete_session(session.id)
        assert len(manager) == 0
        with pytest.raises(CheckoutSessionNotFound):
            manager.complete_session(session.id)

    def test_purge_expired(self, cart):
        manager = CheckoutSessionManager(ttl_seconds=60)
        stale = manager.create_session(cart)
        manager.create_session(cart)
        stale.updated_at -= timedelta(minutes=5)

        assert manager.purge_expired() == 1
        assert len(manager) == 1

    def test_create_drops_expired_sessions(self, cart):
        manager = CheckoutSessionManager(ttl_seconds=60)
        stale = manager.create_session(cart)
        stale.updated_at -= timedelta(minutes=5)

        fresh = manager.create_session(cart)

        assert len(manager) == 1
        assert manager.get_session(fresh.id) is fresh
        with pytest.raises(CheckoutSessionNotFound):
            manager.get_session(stale.id)

    def test_value_bag(self, cart):
        session = CheckoutSessionManager().create_session(cart)
        info = ProcessPaymentRequest(payment_method_system_name="Payments.Invoice")
        session.set("OrderPaymentInfo", info)
        session.set("Marker", None)

        assert session.get("OrderPaymentInfo") is info
        assert sorted(session.keys()) == ["Marker", "OrderPaymentInfo"]
        assert session.remove("Marker") is True
        assert session.remove("Marker") is False

        snapshot = session.to_dict()
        assert snapshot["values"]["OrderPaymentInfo"]["payment_method_system_name"] == (
            "Payments.Invoice"
        )
        assert snapshot["cart"]["customer_id"] == "cust-1"

    def test_payment_token_is_not_serialized(self, cart):
        session = CheckoutSessionManager().create_session(cart)
        session.set(
            "OrderPaymentInfo",
            ProcessPaymentRequest(
                payment_method_system_name="Payments.StoredCard", payment_token="tok_1"
            ),
        )

        values = session.to_dict()["values"]
        assert "payment_token" not in values["OrderPaymentInfo"]
        assert session.get("OrderPaymentInfo").payment_token == "tok_1"

        order = Order(
            id="ORD-1",
            customer_id="cust-1",
            payment_method_system_name="Payments.StoredCard",
            payment_token="tok_1",
        )
        assert "payment_token" not in order.model_dump(mode="json")
