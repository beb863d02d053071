"""Configuration management for the checkout requirements service."""

from __future__ import annotations

from common.config import Settings as BaseSettings


class Settings(BaseSettings):
    """Checkout requirements service configuration.

    Inherits logging and environment settings from
    ``common.config.Settings`` and adds payment-step policy options.
    """

    # Service identity
    service_name: str = "checkout-requirements"
    service_version: str = "0.1.0"
    host: str = "0.0.0.0"
    port: int = 8030

    # Payment policy
    skip_payment_selection_if_single_option: bool = False
    quick_checkout_enabled: bool = True
    active_payment_methods: list[str] = [
        "Payments.Invoice",
        "Payments.Prepayment",
        "Payments.CreditCard",
        "Payments.DirectDebit",
        "Payments.StoredCard",
    ]

    # Session management
    session_ttl_seconds: int = 3600

    # Order history service (in-memory history is used when empty)
    order_history_url: str = ""
    order_history_timeout: float = 10.0
    order_history_max_retries: int = 2


def get_settings() -> Settings:
    """Return a settings instance populated from the environment."""
    return Settings()
