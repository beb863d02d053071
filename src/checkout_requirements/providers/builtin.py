"""Built-in payment methods.

Offline methods (invoice, prepayment) need no input.  Credit card and
direct debit collect form data and validate it locally.  The stored card
method charges a token saved with an earlier order and is the typical
target of quick checkout.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Mapping, Sequence

import structlog

from checkout_requirements.models import (
    Order,
    ProcessPaymentRequest,
    RecurringPaymentType,
    ShoppingCart,
    ValidationFailure,
    ValidationResult,
)
from checkout_requirements.providers.base import PaymentMethodBase, first_value

logger = structlog.get_logger(__name__)

INVOICE = "Payments.Invoice"
PREPAYMENT = "Payments.Prepayment"
CREDIT_CARD = "Payments.CreditCard"
DIRECT_DEBIT = "Payments.DirectDebit"
STORED_CARD = "Payments.StoredCard"


# ---------------------------------------------------------------------------
# Offline methods
# ---------------------------------------------------------------------------


class InvoicePayment(PaymentMethodBase):
    """Pay by invoice after delivery."""

    system_name = INVOICE
    display_name = "Invoice"
    requires_payment_selection = False


class PrepaymentPayment(PaymentMethodBase):
    """Pay by bank transfer before shipping."""

    system_name = PREPAYMENT
    display_name = "Prepayment"
    requires_payment_selection = False


# ---------------------------------------------------------------------------
# Credit card
# ---------------------------------------------------------------------------

_CARD_PREFIXES: list[tuple[str, tuple[str, ...]]] = [
    ("Amex", ("34", "37")),
    ("Visa", ("4",)),
    ("MasterCard", ("51", "52", "53", "54", "55", "22", "23", "24", "25", "26", "27")),
    ("Discover", ("6011", "65")),
]


def _digits(value: str) -> str:
    return re.sub(r"[\s-]", "", value)


def luhn_valid(number: str) -> bool:
    """Check a card number against the Luhn checksum."""
    if not number.isdigit() or not 12 <= len(number) <= 19:
        return False
    total = 0
    for index, char in enumerate(reversed(number)):
        digit = int(char)
        if index % 2 == 1:
            digit *= 2
            if digit > 9:
                digit -= 9
        total += digit
    return total % 10 == 0


def detect_card_type(number: str) -> str | None:
    for card_type, prefixes in _CARD_PREFIXES:
        if number.startswith(prefixes):
            return card_type
    return None


def mask(value: str, visible: int = 4) -> str:
    if len(value) <= visible:
        return value
    return "*" * (len(value) - visible) + value[-visible:]


class CreditCardPayment(PaymentMethodBase):
    """Manually entered credit card."""

    system_name = CREDIT_CARD
    display_name = "Credit card"
    requires_payment_selection = True
    recurring_payment_type = RecurringPaymentType.MANUAL

    def __init__(self, clock: type[datetime] = datetime) -> None:
        self._clock = clock

    async def validate(self, form: Mapping[str, Sequence[str]]) -> ValidationResult:
        errors: list[ValidationFailure] = []

        if not first_value(form, "CardholderName"):
            errors.append(
                ValidationFailure(
                    property_name="CardholderName",
                    error_message="Please enter the card holder name.",
                )
            )

        number = _digits(first_value(form, "CardNumber"))
        if not luhn_valid(number):
            errors.append(
                ValidationFailure(
                    property_name="CardNumber",
                    error_message="The credit card number is invalid.",
                )
            )

        month = first_value(form, "ExpireMonth")
        year = first_value(form, "ExpireYear")
        if not (month.isdigit() and year.isdigit() and 1 <= int(month) <= 12):
            errors.append(
                ValidationFailure(
                    property_name="ExpireMonth",
                    error_message="Please enter a valid expiration date.",
                )
            )
        else:
            now = self._clock.now(tz=timezone.utc)
            if (int(year), int(month)) < (now.year, now.month):
                errors.append(
                    ValidationFailure(
                        property_name="ExpireMonth",
                        error_message="The credit card has expired.",
                    )
                )

        code = first_value(form, "CardCode")
        if not (code.isdigit() and len(code) in (3, 4)):
            errors.append(
                ValidationFailure(
                    property_name="CardCode",
                    error_message="The card security code is invalid.",
                )
            )

        return ValidationResult(errors=errors)

    async def build_payment_info(
        self, form: Mapping[str, Sequence[str]]
    ) -> ProcessPaymentRequest:
        number = _digits(first_value(form, "CardNumber"))
        month = first_value(form, "ExpireMonth")
        year = first_value(form, "ExpireYear")
        return ProcessPaymentRequest(
            payment_method_system_name=self.system_name,
            card_type=first_value(form, "CreditCardType") or detect_card_type(number),
            card_holder=first_value(form, "CardholderName"),
            masked_card_number=mask(number),
            card_expiration_month=int(month) if month.isdigit() else None,
            card_expiration_year=int(year) if year.isdigit() else None,
        )

    async def create_repeat_request(
        self, cart: ShoppingCart, prior_order: Order
    ) -> ProcessPaymentRequest | None:
        # Card data is never stored with the order.
        return None


# ---------------------------------------------------------------------------
# Direct debit
# ---------------------------------------------------------------------------


def iban_valid(iban: str) -> bool:
    """Validate an IBAN with the ISO 13616 mod-97 check."""
    iban = _digits(iban).upper()
    if not re.fullmatch(r"[A-Z]{2}\d{2}[A-Z0-9]{11,30}", iban):
        return False
    rearranged = iban[4:] + iban[:4]
    numeric = "".join(str(int(char, 36)) for char in rearranged)
    return int(numeric) % 97 == 1


class DirectDebitPayment(PaymentMethodBase):
    """SEPA direct debit from a bank account."""

    system_name = DIRECT_DEBIT
    display_name = "Direct debit"
    requires_payment_selection = True
    recurring_payment_type = RecurringPaymentType.MANUAL

    async def validate(self, form: Mapping[str, Sequence[str]]) -> ValidationResult:
        errors: list[ValidationFailure] = []
        if not first_value(form, "DirectDebitAccountHolder"):
            errors.append(
                ValidationFailure(
                    property_name="DirectDebitAccountHolder",
                    error_message="Please enter the account holder.",
                )
            )
        if not iban_valid(first_value(form, "DirectDebitIban")):
            errors.append(
                ValidationFailure(
                    property_name="DirectDebitIban",
                    error_message="The IBAN is invalid.",
                )
            )
        return ValidationResult(errors=errors)

    async def build_payment_info(
        self, form: Mapping[str, Sequence[str]]
    ) -> ProcessPaymentRequest:
        iban = _digits(first_value(form, "DirectDebitIban")).upper()
        return ProcessPaymentRequest(
            payment_method_system_name=self.system_name,
            account_holder=first_value(form, "DirectDebitAccountHolder"),
            masked_iban=mask(iban),
        )

    async def create_repeat_request(
        self, cart: ShoppingCart, prior_order: Order
    ) -> ProcessPaymentRequest | None:
        return None


# ---------------------------------------------------------------------------
# Stored card
# ---------------------------------------------------------------------------


class StoredCardPayment(PaymentMethodBase):
    """Card on file, charged through the token saved with a prior order."""

    system_name = STORED_CARD
    display_name = "Saved card"
    requires_payment_selection = False
    recurring_payment_type = RecurringPaymentType.AUTOMATIC

    def __init__(self) -> None:
        self._revoked_tokens: set[str] = set()

    def revoke_token(self, token: str) -> None:
        """Mark a token as no longer chargeable (expired card, customer request)."""
        self._revoked_tokens.add(token)

    async def build_payment_info(
        self, form: Mapping[str, Sequence[str]]
    ) -> ProcessPaymentRequest:
        return ProcessPaymentRequest(
            payment_method_system_name=self.system_name,
            payment_token=first_value(form, "StoredCardToken") or None,
        )

    async def create_repeat_request(
        self, cart: ShoppingCart, prior_order: Order
    ) -> ProcessPaymentRequest | None:
        token = prior_order.payment_token
        if not token or token in self._revoked_tokens:
            logger.info(
                "stored_card_repeat_declined",
                order_id=prior_order.id,
                customer_id=cart.customer_id,
                has_token=bool(token),
            )
            return None

        return ProcessPaymentRequest(
            payment_method_system_name=self.system_name,
            customer_id=cart.customer_id,
            store_id=cart.store_id,
            is_recurring=cart.contains_recurring_item,
            payment_token=token,
            reference_order_id=prior_order.id,
        )


BUILTIN_PAYMENT_METHODS: dict[str, type[PaymentMethodBase]] = {
    INVOICE: InvoicePayment,
    PREPAYMENT: PrepaymentPayment,
    CREDIT_CARD: CreditCardPayment,
    DIRECT_DEBIT: DirectDebitPayment,
    STORED_CARD: StoredCardPayment,
}
