"""Order notification port.

Dispatch is fire-and-forget: callers never wait on delivery and a failing
notifier must not fail the order operation that triggered it.
"""

from abc import ABC, abstractmethod


class OrderNotifier(ABC):
    @abstractmethod
    def notify(self, topic: str, order_id: str, recipients: list[str], payload: dict) -> None:
        """Send a notification about an order to the given users."""
        ...
