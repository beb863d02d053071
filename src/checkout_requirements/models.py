"""Pydantic models for the checkout requirements service.

Covers shopping carts, orders, payment data exchanged with providers,
customer payment preferences, the per-checkout session state, and the
inputs and verdicts of requirement evaluation.
"""

from __future__ import annotations

import enum
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# Session key under which the payment info of the current checkout is stored.
ORDER_PAYMENT_INFO_KEY = "OrderPaymentInfo"

# Custom state property recording whether exactly one payment method is eligible.
HAS_ONLY_ONE_ACTIVE_PAYMENT_METHOD = "HasOnlyOneActivePaymentMethod"


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


# ---------------------------------------------------------------------------
# Shopping cart
# ---------------------------------------------------------------------------


class CartItem(BaseModel):
    """A single line of a shopping cart."""

    product_id: str
    name: str = ""
    quantity: int = Field(default=1, ge=1)
    unit_price: Decimal = Decimal("0")
    is_recurring: bool = False


class ShoppingCart(BaseModel):
    """The cart a customer is checking out."""

    customer_id: str
    store_id: int = 1
    items: list[CartItem] = Field(default_factory=list)
    reward_points_amount: Decimal = Decimal("0")

    @property
    def contains_recurring_item(self) -> bool:
        """Whether any line item is a recurring (subscription) product."""
        return any(item.is_recurring for item in self.items)


# ---------------------------------------------------------------------------
# Payment providers
# ---------------------------------------------------------------------------


class RecurringPaymentType(enum.IntEnum):
    """How a payment method handles recurring orders."""

    NOT_SUPPORTED = 0
    MANUAL = 10
    AUTOMATIC = 20


class ValidationFailure(BaseModel):
    """A single field error reported by a payment provider."""

    property_name: str
    error_message: str


class ValidationResult(BaseModel):
    """Outcome of validating submitted payment form data."""

    errors: list[ValidationFailure] = Field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


class ProcessPaymentRequest(BaseModel):
    """Payment info built by a provider and kept in the checkout session.

    The contents are provider-specific; the requirement step only stores
    the object and never inspects it.
    """

    payment_method_system_name: str
    customer_id: str = ""
    store_id: int = 1
    order_total: Decimal = Decimal("0")
    is_recurring: bool = False
    # Chargeable secret; never serialized into API responses.
    payment_token: str | None = Field(default=None, exclude=True)
    reference_order_id: str | None = None
    card_type: str | None = None
    card_holder: str | None = None
    masked_card_number: str | None = None
    card_expiration_month: int | None = None
    card_expiration_year: int | None = None
    account_holder: str | None = None
    masked_iban: str | None = None
    extra: dict[str, str] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Orders and customers
# ---------------------------------------------------------------------------


class Order(BaseModel):
    """A placed order, as far as payment method reuse is concerned."""

    id: str
    customer_id: str
    store_id: int = 1
    payment_method_system_name: str
    order_total: Decimal = Decimal("0")
    payment_token: str | None = Field(default=None, exclude=True)
    deleted: bool = False
    created_at: datetime = Field(default_factory=_utcnow)


class CustomerPaymentPreference(BaseModel):
    """Payment method choices persisted on the customer record.

    ``selected_payment_method`` is the choice for the current checkout,
    ``preferred_payment_method`` a longer-lived hint used by quick checkout.
    """

    customer_id: str
    selected_payment_method: str | None = None
    preferred_payment_method: str | None = None


# ---------------------------------------------------------------------------
# Checkout session state
# ---------------------------------------------------------------------------


class CheckoutSessionState(BaseModel):
    """Mutable state of one active checkout, shared by all requirement steps."""

    is_payment_required: bool = False
    is_payment_selection_skipped: bool = False
    payment_summary: str | None = None
    # Last submitted payment form, so the customer need not re-enter it.
    payment_data: dict[str, str] = Field(default_factory=dict)
    # Extension map for cross-cutting flags only.
    custom_properties: dict[str, Any] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Requirement evaluation
# ---------------------------------------------------------------------------


class RequirementMode(str, enum.Enum):
    """Whether a requirement is checked to render a step or to accept a submission."""

    RENDER = "render"
    SUBMIT = "submit"


class StepRequest(BaseModel):
    """Input of a requirement check.

    ``form`` holds the raw value set of every submitted field, in the
    order the client sent them.
    """

    mode: RequirementMode = RequirementMode.RENDER
    payment_method: str | None = None
    form: dict[str, list[str]] = Field(default_factory=dict)

    @classmethod
    def render(cls) -> StepRequest:
        return cls(mode=RequirementMode.RENDER)

    @classmethod
    def submit(
        cls,
        payment_method: str | None,
        form: dict[str, list[str]] | None = None,
    ) -> StepRequest:
        return cls(
            mode=RequirementMode.SUBMIT,
            payment_method=payment_method,
            form=form or {},
        )


class CheckoutWorkflowError(BaseModel):
    """A user-facing error attached to a form field."""

    model_config = ConfigDict(frozen=True)

    field: str
    message: str


class EvaluationVerdict(BaseModel):
    """Result of checking a requirement step."""

    model_config = ConfigDict(frozen=True)

    satisfied: bool
    errors: tuple[CheckoutWorkflowError, ...] | None = None
    skipped: bool = False


class SkipDecision(enum.Enum):
    """One-shot skip decision cached by a requirement instance."""

    UNEVALUATED = "unevaluated"
    SKIPPED = "skipped"
    REQUIRED = "required"

    @classmethod
    def from_flag(cls, skipped: bool) -> SkipDecision:
        return cls.SKIPPED if skipped else cls.REQUIRED

    @property
    def skipped(self) -> bool:
        return self is SkipDecision.SKIPPED
