"""Checkout sessions.

A :class:`CheckoutSession` bundles the cart being checked out, the typed
:class:`CheckoutSessionState` shared by the requirement steps, and a small
key-value bag for opaque per-session objects such as payment info.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

import structlog

from checkout_requirements.models import CheckoutSessionState, ShoppingCart

logger = structlog.get_logger(__name__)


class CheckoutSessionError(Exception):
    """Base exception for checkout session errors."""


class CheckoutSessionNotFound(CheckoutSessionError):
    """Raised when a checkout session ID is unknown."""


class CheckoutSessionExpired(CheckoutSessionError):
    """Raised when a checkout session has been idle longer than its TTL."""


class CheckoutSession:
    """State of one active checkout."""

    def __init__(self, session_id: str, cart: ShoppingCart) -> None:
        now = datetime.now(tz=timezone.utc)
        self.id = session_id
        self.cart = cart
        self.state = CheckoutSessionState()
        self.created_at = now
        self.updated_at = now
        self._values: dict[str, Any] = {}

    # ------------------------------------------------------------------
    # Key-value bag
    # ------------------------------------------------------------------

    def get(self, key: str, default: Any = None) -> Any:
        return self._values.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._values[key] = value

    def remove(self, key: str) -> bool:
        if key not in self._values:
            return False
        del self._values[key]
        return True

    def keys(self) -> list[str]:
        return list(self._values)

    def to_dict(self) -> dict[str, Any]:
        """Serialisable snapshot of the session."""
        values: dict[str, Any] = {}
        for key, value in self._values.items():
            dump = getattr(value, "model_dump", None)
            values[key] = dump(mode="json") if callable(dump) else value
        return {
            "id": self.id,
            "cart": self.cart.model_dump(mode="json"),
            "state": self.state.model_dump(mode="json"),
            "values": values,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


class CheckoutSessionManager:
    """In-memory checkout session store with idle expiry."""

    def __init__(self, ttl_seconds: int = 3600) -> None:
        self._sessions: dict[str, CheckoutSession] = {}
        self._ttl = timedelta(seconds=ttl_seconds)

    def create_session(self, cart: ShoppingCart) -> CheckoutSession:
        """Start a new checkout for *cart*.

        Expired sessions are dropped first, so abandoned checkouts do not
        accumulate.
        """
        self.purge_expired()
        session = CheckoutSession(str(uuid.uuid4()), cart)
        self._sessions[session.id] = session
        logger.info(
            "checkout_session_created",
            session_id=session.id,
            customer_id=cart.customer_id,
            store_id=cart.store_id,
        )
        return session

    def get_session(self, session_id: str) -> CheckoutSession:
        """Return an active session and refresh its idle timer.

        Raises
        ------
        CheckoutSessionNotFound
            If no session with this ID exists.
        CheckoutSessionExpired
            If the session was idle for longer than the TTL.  The session
            is discarded.
        """
        session = self._sessions.get(session_id)
        if session is None:
            raise CheckoutSessionNotFound(f"Checkout session {session_id} not found")

        now = datetime.now(tz=timezone.utc)
        if self._is_expired(session, now):
            del self._sessions[session_id]
            logger.info("checkout_session_expired", session_id=session_id)
            raise CheckoutSessionExpired(f"Checkout session {session_id} has expired")

        session.updated_at = now
        return session

    def complete_session(self, session_id: str) -> CheckoutSession:
        """Finish a checkout and discard its state."""
        session = self.get_session(session_id)
        del self._sessions[session_id]
        logger.info("checkout_session_completed", session_id=session_id)
        return session

    def purge_expired(self) -> int:
        """Drop all expired sessions.  Returns how many were removed."""
        now = datetime.now(tz=timezone.utc)
        expired = [sid for sid, s in self._sessions.items() if self._is_expired(s, now)]
        for sid in expired:
            del self._sessions[sid]
        if expired:
            logger.info("checkout_sessions_purged", count=len(expired))
        return len(expired)

    def __len__(self) -> int:
        return len(self._sessions)

    def _is_expired(self, session: CheckoutSession, now: datetime) -> bool:
        return now - session.updated_at > self._ttl
