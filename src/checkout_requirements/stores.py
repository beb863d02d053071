"""In-memory implementations of the checkout collaborators.

Used by the bundled service and by tests.  Not suitable for running more
than one process: state lives in plain dictionaries.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Collection

import structlog

from checkout_requirements.models import CustomerPaymentPreference, Order, ShoppingCart

logger = structlog.get_logger(__name__)


class CartTotalCalculator:
    """Computes cart totals from line item prices."""

    async def compute_total(
        self, cart: ShoppingCart, include_reward_points: bool = False
    ) -> Decimal | None:
        total = sum(
            (item.unit_price * item.quantity for item in cart.items),
            Decimal("0"),
        )
        if include_reward_points:
            total -= cart.reward_points_amount
        return max(total, Decimal("0"))


class InMemoryOrderHistory:
    """Order history kept in insertion order."""

    def __init__(self) -> None:
        self._orders: list[Order] = []

    def add(self, order: Order) -> Order:
        self._orders.append(order)
        return order

    def list_orders(self, customer_id: str | None = None) -> list[Order]:
        if customer_id is None:
            return list(self._orders)
        return [o for o in self._orders if o.customer_id == customer_id]

    async def find_latest_order(
        self,
        customer_id: str,
        store_id: int,
        method_names: Collection[str],
    ) -> Order | None:
        names = {name.casefold() for name in method_names}
        candidates = [
            order
            for order in self._orders
            if order.customer_id == customer_id
            and order.store_id == store_id
            and not order.deleted
            and order.payment_method_system_name.casefold() in names
        ]
        if not candidates:
            return None
        # Ties on created_at go to the most recently added order.
        return max(reversed(candidates), key=lambda o: o.created_at)


class InMemoryCustomerPreferenceStore:
    """Customer payment preferences keyed by customer ID."""

    def __init__(self) -> None:
        self._preferences: dict[str, CustomerPaymentPreference] = {}
        self.save_count = 0

    async def get(self, customer_id: str) -> CustomerPaymentPreference:
        stored = self._preferences.get(customer_id)
        if stored is None:
            return CustomerPaymentPreference(customer_id=customer_id)
        # Hand out a copy so unsaved changes never leak into the store.
        return stored.model_copy()

    async def save(self, preference: CustomerPaymentPreference) -> None:
        self._preferences[preference.customer_id] = preference.model_copy()
        self.save_count += 1
        logger.debug(
            "payment_preference_saved",
            customer_id=preference.customer_id,
            selected=preference.selected_payment_method,
            preferred=preference.preferred_payment_method,
        )
