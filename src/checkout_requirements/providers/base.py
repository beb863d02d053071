"""Payment provider entries and the shared provider base class."""

from __future__ import annotations

from typing import Mapping, Sequence

from pydantic import BaseModel, ConfigDict

from checkout_requirements.models import (
    Order,
    ProcessPaymentRequest,
    RecurringPaymentType,
    ShoppingCart,
    ValidationResult,
)
from checkout_requirements.ports import PaymentMethod


class PaymentProviderEntry(BaseModel):
    """A payment method registered under its system name."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    system_name: str
    method: PaymentMethod
    is_active: bool = True
    # Empty means the provider is available in every store.
    limited_to_stores: list[int] = []

    @property
    def requires_payment_selection(self) -> bool:
        return self.method.requires_payment_selection

    @property
    def recurring_payment_type(self) -> RecurringPaymentType:
        return self.method.recurring_payment_type

    def is_available_in(self, store_id: int) -> bool:
        return not self.limited_to_stores or store_id in self.limited_to_stores

    def matches(self, system_name: str | None) -> bool:
        """Case-insensitive system name comparison."""
        return bool(system_name) and self.system_name.casefold() == system_name.casefold()


class PaymentMethodBase:
    """Defaults for offline payment methods that collect no form data.

    Such methods can always be repeated: the repeat request just points
    at the prior order.  Subclasses set ``system_name`` and
    ``display_name`` and override the hooks they need.
    """

    system_name: str = ""
    display_name: str = ""
    requires_payment_selection: bool = True
    recurring_payment_type: RecurringPaymentType = RecurringPaymentType.NOT_SUPPORTED

    async def validate(self, form: Mapping[str, Sequence[str]]) -> ValidationResult:
        return ValidationResult()

    async def build_payment_info(
        self, form: Mapping[str, Sequence[str]]
    ) -> ProcessPaymentRequest:
        return ProcessPaymentRequest(payment_method_system_name=self.system_name)

    async def summarize(self) -> str:
        return self.display_name or self.system_name

    async def create_repeat_request(
        self, cart: ShoppingCart, prior_order: Order
    ) -> ProcessPaymentRequest | None:
        return ProcessPaymentRequest(
            payment_method_system_name=self.system_name,
            customer_id=cart.customer_id,
            store_id=cart.store_id,
            is_recurring=cart.contains_recurring_item,
            reference_order_id=prior_order.id,
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}(system_name={self.system_name!r})"


def first_value(form: Mapping[str, Sequence[str]], key: str) -> str:
    """Return the first submitted value of *key*, stripped, or ``""``."""
    values = form.get(key) or []
    return values[0].strip() if values else ""
