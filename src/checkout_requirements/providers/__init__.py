"""Payment providers and the provider catalog."""

from checkout_requirements.providers.base import PaymentMethodBase, PaymentProviderEntry
from checkout_requirements.providers.builtin import (
    BUILTIN_PAYMENT_METHODS,
    CreditCardPayment,
    DirectDebitPayment,
    InvoicePayment,
    PrepaymentPayment,
    StoredCardPayment,
)
from checkout_requirements.providers.catalog import InMemoryProviderCatalog, build_default_catalog

__all__ = [
    "BUILTIN_PAYMENT_METHODS",
    "CreditCardPayment",
    "DirectDebitPayment",
    "InMemoryProviderCatalog",
    "InvoicePayment",
    "PaymentMethodBase",
    "PaymentProviderEntry",
    "PrepaymentPayment",
    "StoredCardPayment",
    "build_default_catalog",
]
