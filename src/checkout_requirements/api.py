"""FastAPI application for the checkout requirements service.

Exposes REST endpoints for:
- Checkout session management (create, status, complete)
- The payment method step (render and submit)
- Customer payment preferences
- The payment method catalog
"""

from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from decimal import Decimal
from typing import Any, AsyncIterator

import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from common import ErrorResponse, HealthResponse

from checkout_requirements.clients.order_history import OrderHistoryClient
from checkout_requirements.config import Settings
from checkout_requirements.models import (
    ORDER_PAYMENT_INFO_KEY,
    CustomerPaymentPreference,
    EvaluationVerdict,
    Order,
    ProcessPaymentRequest,
    ShoppingCart,
    StepRequest,
)
from checkout_requirements.ports import OrderHistory
from checkout_requirements.providers.base import PaymentProviderEntry
from checkout_requirements.providers.catalog import InMemoryProviderCatalog, build_default_catalog
from checkout_requirements.requirements.payment_method import PaymentMethodRequirement
from checkout_requirements.sessions import (
    CheckoutSession,
    CheckoutSessionExpired,
    CheckoutSessionManager,
    CheckoutSessionNotFound,
)
from checkout_requirements.stores import (
    CartTotalCalculator,
    InMemoryCustomerPreferenceStore,
    InMemoryOrderHistory,
)

logger = structlog.get_logger(__name__)

# Form field carrying the system name of the chosen payment method.
PAYMENT_METHOD_FIELD = "paymentmethod"


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class PreferenceUpdateRequest(BaseModel):
    """Update of a customer's preferred payment method."""

    preferred_payment_method: str | None = None


class ProviderStatusUpdate(BaseModel):
    """Activation switch for a registered payment method."""

    is_active: bool


class TokenRevocationRequest(BaseModel):
    """A stored payment token that may no longer be charged."""

    token: str


# ---------------------------------------------------------------------------
# Application state container
# ---------------------------------------------------------------------------


class AppState:
    """Shared application state accessible from route handlers."""

    def __init__(
        self,
        settings: Settings,
        catalog: InMemoryProviderCatalog | None = None,
        order_history: OrderHistory | None = None,
    ) -> None:
        self.settings = settings
        self.sessions = CheckoutSessionManager(ttl_seconds=settings.session_ttl_seconds)
        self.catalog = catalog or build_default_catalog(settings)
        self.totals = CartTotalCalculator()
        self.preferences = InMemoryCustomerPreferenceStore()
        # Orders placed through this service.
        self.orders = InMemoryOrderHistory()

        if order_history is not None:
            self.order_history: OrderHistory = order_history
        elif settings.order_history_url:
            self.order_history = OrderHistoryClient(
                settings.order_history_url,
                timeout=settings.order_history_timeout,
                max_retries=settings.order_history_max_retries,
            )
        else:
            self.order_history = self.orders

    def payment_requirement(self, session: CheckoutSession) -> PaymentMethodRequirement:
        """Build the payment step for one request against *session*."""
        return PaymentMethodRequirement(
            settings=self.settings,
            catalog=self.catalog,
            totals=self.totals,
            order_history=self.order_history,
            preferences=self.preferences,
            state=session.state,
            session=session,
        )

    async def close(self) -> None:
        if isinstance(self.order_history, OrderHistoryClient):
            await self.order_history.close()


def _describe_provider(entry: PaymentProviderEntry) -> dict[str, Any]:
    return {
        "system_name": entry.system_name,
        "display_name": getattr(entry.method, "display_name", entry.system_name),
        "requires_payment_selection": entry.requires_payment_selection,
        "recurring_payment_type": entry.recurring_payment_type.name.lower(),
        "is_active": entry.is_active,
    }


async def _read_form(request: Request) -> dict[str, list[str]]:
    """Collect every submitted value per field, in submission order."""
    form = await request.form()
    fields: dict[str, list[str]] = {}
    for key, value in form.multi_items():
        if isinstance(value, str):
            fields.setdefault(key, []).append(value)
    return fields


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app(settings: Settings | None = None, state: AppState | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or Settings()
    state = state or AppState(settings)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        yield
        await state.close()

    app = FastAPI(
        title="Checkout Requirements",
        description=(
            "Checkout step service that decides whether a payment method must "
            "be selected and pre-selects one through quick checkout."
        ),
        version=settings.service_version,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.app_state = state
    app.state.settings = settings

    def get_session(session_id: str) -> CheckoutSession:
        try:
            return state.sessions.get_session(session_id)
        except CheckoutSessionNotFound as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except CheckoutSessionExpired as exc:
            raise HTTPException(status_code=410, detail=str(exc)) from exc

    async def payment_step_response(
        session: CheckoutSession,
        requirement: PaymentMethodRequirement,
        verdict: EvaluationVerdict,
    ) -> dict[str, Any]:
        preference = await state.preferences.get(session.cart.customer_id)
        providers = await requirement.load_eligible_providers(session.cart)
        return {
            "session_id": session.id,
            "verdict": verdict.model_dump(),
            "selected_payment_method": preference.selected_payment_method,
            "payment_methods": [_describe_provider(p) for p in providers],
            "state": session.state.model_dump(mode="json"),
        }

    # -------------------------------------------------------------------
    # Health
    # -------------------------------------------------------------------

    @app.get("/health", response_model=HealthResponse, tags=["health"])
    async def health() -> HealthResponse:
        return HealthResponse(
            status="healthy",
            service=settings.service_name,
            version=settings.service_version,
            environment=settings.environment,
        )

    # -------------------------------------------------------------------
    # Payment method catalog
    # -------------------------------------------------------------------

    @app.get("/api/v1/payment-methods", tags=["payment-methods"])
    async def list_payment_methods() -> dict[str, Any]:
        """List all registered payment methods."""
        providers = state.catalog.list_providers()
        return {
            "payment_methods": [_describe_provider(p) for p in providers],
            "total": len(providers),
        }

    @app.put("/api/v1/payment-methods/{system_name}", tags=["payment-methods"])
    async def update_payment_method(
        system_name: str, req: ProviderStatusUpdate
    ) -> dict[str, Any]:
        """Activate or deactivate a payment method."""
        entry = await state.catalog.load_provider_by_system_name(
            system_name, include_inactive=True
        )
        if entry is None:
            raise HTTPException(status_code=404, detail=f"Unknown payment method {system_name}")

        state.catalog.set_active(entry.system_name, req.is_active)
        logger.info(
            "payment_method_status_changed",
            payment_method=entry.system_name,
            active=req.is_active,
        )
        return _describe_provider(entry)

    @app.post(
        "/api/v1/payment-methods/{system_name}/revoked-tokens", tags=["payment-methods"]
    )
    async def revoke_payment_token(
        system_name: str, req: TokenRevocationRequest
    ) -> dict[str, Any]:
        """Stop a stored token from being reused by quick checkout."""
        entry = await state.catalog.load_provider_by_system_name(
            system_name, include_inactive=True
        )
        if entry is None:
            raise HTTPException(status_code=404, detail=f"Unknown payment method {system_name}")

        revoke = getattr(entry.method, "revoke_token", None)
        if not callable(revoke):
            raise HTTPException(
                status_code=400,
                detail=f"Payment method {entry.system_name} does not store tokens",
            )

        revoke(req.token)
        logger.info("payment_token_revoked", payment_method=entry.system_name)
        return {"system_name": entry.system_name, "revoked": True}

    # -------------------------------------------------------------------
    # Checkout session endpoints
    # -------------------------------------------------------------------

    @app.post("/api/v1/checkout", tags=["checkout"])
    async def create_checkout(cart: ShoppingCart) -> dict[str, Any]:
        """Start a checkout for the given cart."""
        session = state.sessions.create_session(cart)
        return {
            "session_id": session.id,
            "payment_step_url": f"/api/v1/checkout/{session.id}/payment-method",
            "state": session.state.model_dump(mode="json"),
        }

    @app.get("/api/v1/checkout/{session_id}", tags=["checkout"])
    async def get_checkout(session_id: str) -> dict[str, Any]:
        """Get the current state of a checkout."""
        return get_session(session_id).to_dict()

    @app.get("/api/v1/checkout/{session_id}/payment-method", tags=["checkout"])
    async def render_payment_step(session_id: str) -> dict[str, Any]:
        """Decide whether the payment method step must be shown."""
        session = get_session(session_id)
        requirement = state.payment_requirement(session)
        verdict = await requirement.check(session.cart, StepRequest.render())
        return await payment_step_response(session, requirement, verdict)

    @app.post("/api/v1/checkout/{session_id}/payment-method", tags=["checkout"])
    async def submit_payment_step(session_id: str, request: Request) -> dict[str, Any]:
        """Accept the payment method form."""
        session = get_session(session_id)
        form = await _read_form(request)
        selected = form.get(PAYMENT_METHOD_FIELD)

        requirement = state.payment_requirement(session)
        verdict = await requirement.check(
            session.cart,
            StepRequest.submit(selected[0] if selected else None, form),
        )
        return await payment_step_response(session, requirement, verdict)

    @app.post("/api/v1/checkout/{session_id}/complete", tags=["checkout"])
    async def complete_checkout(session_id: str) -> dict[str, Any]:
        """Place the order and close the checkout."""
        session = get_session(session_id)
        cart = session.cart

        verdict = await state.payment_requirement(session).check(cart, StepRequest.render())
        if session.state.is_payment_required and not verdict.satisfied:
            raise HTTPException(status_code=409, detail="No payment method selected.")

        preference = await state.preferences.get(cart.customer_id)
        payment_info = session.get(ORDER_PAYMENT_INFO_KEY)
        total = await state.totals.compute_total(cart, include_reward_points=True)
        order = Order(
            id=f"ORD-{uuid.uuid4().hex[:8].upper()}",
            customer_id=cart.customer_id,
            store_id=cart.store_id,
            payment_method_system_name=preference.selected_payment_method or "",
            order_total=total or Decimal("0"),
            payment_token=(
                payment_info.payment_token
                if isinstance(payment_info, ProcessPaymentRequest)
                else None
            ),
        )
        state.orders.add(order)

        # The selection belongs to this checkout only.
        preference.selected_payment_method = None
        await state.preferences.save(preference)
        state.sessions.complete_session(session_id)

        logger.info(
            "order_placed",
            order_id=order.id,
            customer_id=order.customer_id,
            payment_method=order.payment_method_system_name,
        )
        return {
            "order_id": order.id,
            "status": "placed",
            "order": order.model_dump(mode="json"),
        }

    # -------------------------------------------------------------------
    # Customer preference endpoints
    # -------------------------------------------------------------------

    @app.get("/api/v1/customers/{customer_id}/payment-preference", tags=["customers"])
    async def get_payment_preference(customer_id: str) -> CustomerPaymentPreference:
        """Get the stored payment choices of a customer."""
        return await state.preferences.get(customer_id)

    @app.put("/api/v1/customers/{customer_id}/payment-preference", tags=["customers"])
    async def update_payment_preference(
        customer_id: str, req: PreferenceUpdateRequest
    ) -> CustomerPaymentPreference:
        """Set the preferred payment method used by quick checkout."""
        if req.preferred_payment_method:
            entry = await state.catalog.load_provider_by_system_name(
                req.preferred_payment_method, include_inactive=True
            )
            if entry is None:
                raise HTTPException(
                    status_code=400,
                    detail=f"Unknown payment method {req.preferred_payment_method}",
                )

        preference = await state.preferences.get(customer_id)
        preference.preferred_payment_method = req.preferred_payment_method
        await state.preferences.save(preference)
        return preference

    # -------------------------------------------------------------------
    # Error handlers
    # -------------------------------------------------------------------

    @app.exception_handler(Exception)
    async def generic_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        logger.error(
            "unhandled_exception", error=str(exc), path=request.url.path
        )
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(
                error="Internal server error",
                detail=str(exc),
                status_code=500,
                path=request.url.path,
            ).model_dump(),
        )

    return app
