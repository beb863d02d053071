"""Payment method requirement.

Decides whether the customer has to pick a payment method during checkout,
accepts the submitted choice, and pre-selects a method on the customer's
behalf where store policy allows it:

* When the cart total is zero no payment is needed and the step is skipped.
* With ``skip_payment_selection_if_single_option`` a single eligible method
  that needs no input is selected automatically.
* With ``quick_checkout_enabled`` the customer's preferred method, or the
  method of their latest order, is reused when nothing is selected yet.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Sequence

import structlog

from checkout_requirements.config import Settings
from checkout_requirements.models import (
    HAS_ONLY_ONE_ACTIVE_PAYMENT_METHOD,
    ORDER_PAYMENT_INFO_KEY,
    CheckoutSessionState,
    CheckoutWorkflowError,
    CustomerPaymentPreference,
    EvaluationVerdict,
    RecurringPaymentType,
    RequirementMode,
    ShoppingCart,
    SkipDecision,
    StepRequest,
)
from checkout_requirements.ports import (
    CartTotalOracle,
    CustomerPreferenceStore,
    OrderHistory,
    ProviderCatalog,
    SessionStore,
)
from checkout_requirements.providers.base import PaymentProviderEntry
from checkout_requirements.requirements.base import CheckoutRequirement

logger = structlog.get_logger(__name__)


def echo_form_value(values: Sequence[str]) -> str:
    """Flatten a submitted value set for the session's form echo.

    Checkboxes post ``["true", "false"]`` when ticked (the checkbox plus
    its hidden fallback field); those collapse to ``"true"``.
    """
    if len(values) == 2 and values[0] == "true":
        return "true"
    return ",".join(values)


class PaymentMethodRequirement(CheckoutRequirement):
    """Checkout step in which the customer selects a payment method.

    The skip decision is computed on the first check of an instance and
    reused by every later check of the same instance.  Build one instance
    per step visit.
    """

    def __init__(
        self,
        settings: Settings,
        catalog: ProviderCatalog,
        totals: CartTotalOracle,
        order_history: OrderHistory,
        preferences: CustomerPreferenceStore,
        state: CheckoutSessionState,
        session: SessionStore,
    ) -> None:
        self._settings = settings
        self._catalog = catalog
        self._totals = totals
        self._order_history = order_history
        self._preferences = preferences
        self._state = state
        self._session = session
        self._skip = SkipDecision.UNEVALUATED

    @property
    def order(self) -> int:
        return 40

    @property
    def action_name(self) -> str:
        return "PaymentMethod"

    @property
    def skip_decision(self) -> SkipDecision:
        return self._skip

    async def check(self, cart: ShoppingCart, request: StepRequest) -> EvaluationVerdict:
        preference = await self._preferences.get(cart.customer_id)

        if request.mode is RequirementMode.SUBMIT and request.payment_method is not None:
            return await self._accept_submission(cart, request, preference)

        state = self._state
        providers: list[PaymentProviderEntry] | None = None

        if self._skip is SkipDecision.UNEVALUATED:
            total = await self._totals.compute_total(cart, include_reward_points=False)
            state.is_payment_required = (total or Decimal("0")) != Decimal("0")

            if state.is_payment_required:
                if self._settings.skip_payment_selection_if_single_option:
                    providers = await self.load_eligible_providers(cart)
                    only_one = len(providers) == 1

                    state.custom_properties[HAS_ONLY_ONE_ACTIVE_PAYMENT_METHOD] = only_one
                    state.is_payment_selection_skipped = (
                        only_one and not providers[0].requires_payment_selection
                    )

                    if state.is_payment_selection_skipped:
                        await self._select(preference, providers[0].system_name)
            else:
                state.is_payment_selection_skipped = True

            self._skip = SkipDecision.from_flag(state.is_payment_selection_skipped)
            logger.debug(
                "payment_step_decided",
                customer_id=cart.customer_id,
                payment_required=state.is_payment_required,
                skipped=self._skip.skipped,
            )

        if (
            self._settings.quick_checkout_enabled
            and state.is_payment_required
            and not preference.selected_payment_method
        ):
            if providers is None:
                providers = await self.load_eligible_providers(cart)
            await self._apply_quick_checkout(cart, providers, preference)

        return EvaluationVerdict(
            satisfied=bool(preference.selected_payment_method),
            errors=None,
            skipped=self._skip.skipped,
        )

    async def load_eligible_providers(self, cart: ShoppingCart) -> list[PaymentProviderEntry]:
        """Active providers of the cart's store that can pay for this cart.

        Carts with recurring items exclude providers without recurring
        payment support.
        """
        providers = await self._catalog.load_active_providers(cart, cart.store_id)
        if cart.contains_recurring_item:
            providers = [
                p
                for p in providers
                if p.recurring_payment_type > RecurringPaymentType.NOT_SUPPORTED
            ]
        return list(providers)

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def _accept_submission(
        self,
        cart: ShoppingCart,
        request: StepRequest,
        preference: CustomerPaymentPreference,
    ) -> EvaluationVerdict:
        system_name = request.payment_method or ""
        provider = await self._catalog.load_provider_by_system_name(
            system_name, include_inactive=True, store_id=cart.store_id
        )
        if provider is None:
            logger.info(
                "payment_method_unknown",
                customer_id=cart.customer_id,
                payment_method=system_name,
            )
            return EvaluationVerdict(satisfied=False)

        # The selection is stored before the form is validated, so a failed
        # attempt still replaces the previous choice.
        await self._select(preference, system_name)

        for key, values in request.form.items():
            self._state.payment_data[key] = echo_form_value(values)

        result = await provider.method.validate(request.form)
        if not result.is_valid:
            errors = tuple(
                CheckoutWorkflowError(field=e.property_name, message=e.error_message)
                for e in result.errors
            )
            logger.info(
                "payment_data_invalid",
                customer_id=cart.customer_id,
                payment_method=provider.system_name,
                fields=[e.field for e in errors],
            )
            return EvaluationVerdict(satisfied=False, errors=errors)

        payment_info = await provider.method.build_payment_info(request.form)
        self._session.set(ORDER_PAYMENT_INFO_KEY, payment_info)
        self._state.payment_summary = await provider.method.summarize()

        logger.info(
            "payment_method_accepted",
            customer_id=cart.customer_id,
            payment_method=provider.system_name,
        )
        return EvaluationVerdict(satisfied=True)

    # ------------------------------------------------------------------
    # Quick checkout
    # ------------------------------------------------------------------

    async def _apply_quick_checkout(
        self,
        cart: ShoppingCart,
        providers: list[PaymentProviderEntry],
        preference: CustomerPaymentPreference,
    ) -> None:
        preferred = preference.preferred_payment_method
        if preferred and any(p.matches(preferred) for p in providers):
            await self._select(preference, preferred)
            self._state.is_payment_selection_skipped = True
            logger.info(
                "quick_checkout_preferred_method",
                customer_id=cart.customer_id,
                payment_method=preferred,
            )
            return

        # Fall back to the method of the latest order.
        quick_methods = [p.system_name for p in providers if not p.requires_payment_selection]
        if not quick_methods:
            return

        last_order = await self._order_history.find_latest_order(
            cart.customer_id, cart.store_id, quick_methods
        )
        if last_order is None:
            logger.debug("quick_checkout_no_prior_order", customer_id=cart.customer_id)
            return

        provider = next(
            (p for p in providers if p.matches(last_order.payment_method_system_name)),
            None,
        )
        if provider is None:
            return

        payment_request = await provider.method.create_repeat_request(cart, last_order)
        if payment_request is None:
            logger.info(
                "quick_checkout_declined",
                customer_id=cart.customer_id,
                payment_method=provider.system_name,
                order_id=last_order.id,
            )
            return

        await self._select(preference, provider.system_name)
        self._session.set(ORDER_PAYMENT_INFO_KEY, payment_request)
        self._state.payment_summary = await provider.method.summarize()
        self._state.is_payment_selection_skipped = True

        logger.info(
            "quick_checkout_repeated_order",
            customer_id=cart.customer_id,
            payment_method=provider.system_name,
            order_id=last_order.id,
        )

    async def _select(self, preference: CustomerPaymentPreference, system_name: str) -> None:
        preference.selected_payment_method = system_name
        await self._preferences.save(preference)
