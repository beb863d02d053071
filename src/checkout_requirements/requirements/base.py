"""Base class for checkout requirement steps."""

from __future__ import annotations

from abc import ABC, abstractmethod

from checkout_requirements.models import EvaluationVerdict, ShoppingCart, StepRequest


class CheckoutRequirement(ABC):
    """One gated stage of the checkout.

    A requirement reports whether its stage is satisfied.  The surrounding
    checkout pipeline evaluates requirements in ascending ``order`` and
    stops at the first unsatisfied one.
    """

    @property
    @abstractmethod
    def order(self) -> int:
        """Position among the checkout requirements."""

    @property
    @abstractmethod
    def action_name(self) -> str:
        """Name of the checkout action that renders and accepts this step."""

    @abstractmethod
    async def check(self, cart: ShoppingCart, request: StepRequest) -> EvaluationVerdict:
        """Evaluate the requirement for *cart*.

        Parameters
        ----------
        cart:
            The cart being checked out.
        request:
            Whether the step is rendered or a submission is handled, plus
            the submitted data.

        Returns
        -------
        EvaluationVerdict
        """

    def __repr__(self) -> str:
        return f"{type(self).__name__}(order={self.order})"
