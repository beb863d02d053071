"""Interfaces of the collaborators consumed by checkout requirements.

Requirement steps depend only on these protocols.  In-memory
implementations live in :mod:`checkout_requirements.stores` and
:mod:`checkout_requirements.providers`; the order history can also be
served over HTTP by :mod:`checkout_requirements.clients.order_history`.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Any, Collection, Mapping, Protocol, Sequence, runtime_checkable

from checkout_requirements.models import (
    CustomerPaymentPreference,
    Order,
    ProcessPaymentRequest,
    RecurringPaymentType,
    ShoppingCart,
    ValidationResult,
)

if TYPE_CHECKING:
    from checkout_requirements.providers.base import PaymentProviderEntry


@runtime_checkable
class PaymentMethod(Protocol):
    """Capabilities every payment provider exposes to the checkout."""

    @property
    def requires_payment_selection(self) -> bool:
        """Whether the customer must actively pick (and fill in) this method."""
        ...

    @property
    def recurring_payment_type(self) -> RecurringPaymentType: ...

    async def validate(self, form: Mapping[str, Sequence[str]]) -> ValidationResult: ...

    async def build_payment_info(
        self, form: Mapping[str, Sequence[str]]
    ) -> ProcessPaymentRequest: ...

    async def summarize(self) -> str: ...

    async def create_repeat_request(
        self, cart: ShoppingCart, prior_order: Order
    ) -> ProcessPaymentRequest | None:
        """Rebuild payment info from a prior order, or ``None`` to decline."""
        ...


class ProviderCatalog(Protocol):
    """Source of the payment providers available to a store."""

    async def load_active_providers(
        self, cart: ShoppingCart, store_id: int
    ) -> list[PaymentProviderEntry]: ...

    async def load_provider_by_system_name(
        self,
        system_name: str,
        include_inactive: bool = False,
        store_id: int = 0,
    ) -> PaymentProviderEntry | None: ...


class CartTotalOracle(Protocol):
    """Computes the amount a cart will be charged."""

    async def compute_total(
        self, cart: ShoppingCart, include_reward_points: bool = False
    ) -> Decimal | None: ...


class OrderHistory(Protocol):
    """Lookup of a customer's previous orders."""

    async def find_latest_order(
        self,
        customer_id: str,
        store_id: int,
        method_names: Collection[str],
    ) -> Order | None: ...


class CustomerPreferenceStore(Protocol):
    """Durable storage of customer payment preferences."""

    async def get(self, customer_id: str) -> CustomerPaymentPreference: ...

    async def save(self, preference: CustomerPaymentPreference) -> None: ...


class SessionStore(Protocol):
    """Key-value bag scoped to one checkout session."""

    def get(self, key: str, default: Any = None) -> Any: ...

    def set(self, key: str, value: Any) -> None: ...
