"""Checkout requirements: the payment method step of a multi-step checkout.

Decides whether the customer has to choose a payment method, validates the
submitted choice, and pre-selects a method through quick checkout.
"""

from checkout_requirements.models import (
    CheckoutSessionState,
    EvaluationVerdict,
    RequirementMode,
    ShoppingCart,
    StepRequest,
)
from checkout_requirements.requirements import CheckoutRequirement, PaymentMethodRequirement

__all__ = [
    "CheckoutRequirement",
    "CheckoutSessionState",
    "EvaluationVerdict",
    "PaymentMethodRequirement",
    "RequirementMode",
    "ShoppingCart",
    "StepRequest",
]

__version__ = "0.1.0"
