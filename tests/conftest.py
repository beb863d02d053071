"""Shared test fixtures for the checkout requirements service."""

import pytest

from checkout_requirements.config import Settings
from checkout_requirements.main import build_app


@pytest.fixture
def settings():
    """Create test settings."""
    return Settings(
        environment="testing",
        log_level="WARNING",
        skip_payment_selection_if_single_option=False,
        quick_checkout_enabled=True,
        order_history_url="",
    )


@pytest.fixture
def app(settings):
    """Create FastAPI app for testing."""
    return build_app(settings)
