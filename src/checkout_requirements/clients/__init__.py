"""Clients for remote checkout collaborators."""

from checkout_requirements.clients.order_history import OrderHistoryClient, OrderHistoryError

__all__ = ["OrderHistoryClient", "OrderHistoryError"]
