"""Checkout requirement steps."""

from checkout_requirements.requirements.base import CheckoutRequirement
from checkout_requirements.requirements.payment_method import (
    PaymentMethodRequirement,
    echo_form_value,
)

__all__ = ["CheckoutRequirement", "PaymentMethodRequirement", "echo_form_value"]
