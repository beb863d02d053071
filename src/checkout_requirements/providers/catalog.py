"""In-memory payment provider catalog."""

from __future__ import annotations

import structlog

from checkout_requirements.config import Settings
from checkout_requirements.models import ShoppingCart
from checkout_requirements.ports import PaymentMethod
from checkout_requirements.providers.base import PaymentProviderEntry
from checkout_requirements.providers.builtin import BUILTIN_PAYMENT_METHODS

logger = structlog.get_logger(__name__)


class InMemoryProviderCatalog:
    """Ordered registry of payment providers.

    Registration order is the display order and decides which provider is
    the default when only one remains eligible.
    """

    def __init__(self) -> None:
        self._entries: list[PaymentProviderEntry] = []

    def register(
        self,
        method: PaymentMethod,
        system_name: str | None = None,
        is_active: bool = True,
        limited_to_stores: list[int] | None = None,
    ) -> PaymentProviderEntry:
        """Add a provider, replacing any provider with the same system name."""
        name = system_name or getattr(method, "system_name", "")
        if not name:
            raise ValueError("A payment provider needs a system name")

        entry = PaymentProviderEntry(
            system_name=name,
            method=method,
            is_active=is_active,
            limited_to_stores=limited_to_stores or [],
        )
        existing = self._find(name)
        if existing is not None:
            self._entries[self._entries.index(existing)] = entry
        else:
            self._entries.append(entry)

        logger.debug("payment_provider_registered", system_name=name, active=is_active)
        return entry

    def set_active(self, system_name: str, is_active: bool) -> bool:
        """Activate or deactivate a provider.  Returns ``False`` if unknown."""
        entry = self._find(system_name)
        if entry is None:
            return False
        entry.is_active = is_active
        return True

    def list_providers(self) -> list[PaymentProviderEntry]:
        """Return every registered provider, active or not."""
        return list(self._entries)

    async def load_active_providers(
        self, cart: ShoppingCart, store_id: int
    ) -> list[PaymentProviderEntry]:
        return [
            entry
            for entry in self._entries
            if entry.is_active and entry.is_available_in(store_id)
        ]

    async def load_provider_by_system_name(
        self,
        system_name: str,
        include_inactive: bool = False,
        store_id: int = 0,
    ) -> PaymentProviderEntry | None:
        entry = self._find(system_name)
        if entry is None:
            return None
        if not entry.is_active and not include_inactive:
            return None
        if store_id and not entry.is_available_in(store_id):
            return None
        return entry

    def _find(self, system_name: str) -> PaymentProviderEntry | None:
        for entry in self._entries:
            if entry.matches(system_name):
                return entry
        return None


def build_default_catalog(settings: Settings) -> InMemoryProviderCatalog:
    """Register all built-in payment methods.

    Only the methods listed in ``settings.active_payment_methods`` are
    active, in the order they are listed; the rest are registered inactive.
    """
    catalog = InMemoryProviderCatalog()
    active = [name for name in settings.active_payment_methods if name in BUILTIN_PAYMENT_METHODS]
    unknown = [name for name in settings.active_payment_methods if name not in BUILTIN_PAYMENT_METHODS]
    if unknown:
        logger.warning("unknown_payment_methods_configured", names=unknown)

    for name in active:
        catalog.register(BUILTIN_PAYMENT_METHODS[name]())
    for name, method_cls in BUILTIN_PAYMENT_METHODS.items():
        if name not in active:
            catalog.register(method_cls(), is_active=False)
    return catalog
