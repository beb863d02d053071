"""HTTP client for a remote order history service.

Implements the :class:`~checkout_requirements.ports.OrderHistory` port
against ``GET /api/v1/orders/latest``.
"""

from __future__ import annotations

from typing import Any, Collection

import httpx
import structlog

from checkout_requirements.models import Order

logger = structlog.get_logger(__name__)

_DEFAULT_TIMEOUT = 10.0
_MAX_RETRIES = 2


class OrderHistoryError(Exception):
    """Raised when the order history service cannot be queried."""


class OrderHistoryClient:
    """Async HTTP client for the order history service."""

    def __init__(
        self,
        base_url: str,
        timeout: float = _DEFAULT_TIMEOUT,
        max_retries: int = _MAX_RETRIES,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._max_retries = max_retries
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Lazy-initialise the shared ``httpx.AsyncClient``."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=httpx.Timeout(self._timeout),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Shut down the underlying HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def find_latest_order(
        self,
        customer_id: str,
        store_id: int,
        method_names: Collection[str],
    ) -> Order | None:
        """Return the customer's newest order paid with one of *method_names*.

        Returns ``None`` when the service reports no matching order.
        """
        params: list[tuple[str, Any]] = [
            ("customer_id", customer_id),
            ("store_id", store_id),
        ]
        params.extend(("payment_method", name) for name in method_names)

        data = await self._request("GET", "/api/v1/orders/latest", params=params)
        if data is None:
            return None
        return Order.model_validate(data)

    async def _request(
        self,
        method: str,
        url: str,
        params: list[tuple[str, Any]] | None = None,
    ) -> dict[str, Any] | None:
        """Execute a request with retries.  A 404 yields ``None``."""
        client = await self._get_client()
        last_error: Exception | None = None

        for attempt in range(self._max_retries + 1):
            try:
                response = await client.request(method, url, params=params)
                if response.status_code == 404:
                    return None
                response.raise_for_status()
                return response.json()
            except httpx.TimeoutException as exc:
                last_error = exc
                logger.warning(
                    "order_history_timeout",
                    url=url,
                    attempt=attempt + 1,
                )
            except httpx.HTTPStatusError as exc:
                # Don't retry 4xx errors
                if 400 <= exc.response.status_code < 500:
                    raise OrderHistoryError(
                        f"Order history request failed ({exc.response.status_code}): "
                        f"{exc.response.text}"
                    ) from exc
                last_error = exc
                logger.warning(
                    "order_history_http_error",
                    url=url,
                    status=exc.response.status_code,
                    attempt=attempt + 1,
                )
            except httpx.RequestError as exc:
                last_error = exc
                logger.warning(
                    "order_history_request_error",
                    url=url,
                    error=str(exc),
                    attempt=attempt + 1,
                )

        raise OrderHistoryError(
            f"Order history request to {url} failed after "
            f"{self._max_retries + 1} attempts: {last_error}"
        )
