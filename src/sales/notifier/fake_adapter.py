"""Fake notifier: records notifications instead of sending them."""

from sales.notifier.port import OrderNotifier


class FakeNotifier(OrderNotifier):
    def __init__(self) -> None:
        self.sent: list[dict] = []
        self.should_fail = False

    def configure(self, should_fail: bool) -> None:
        self.should_fail = should_fail

    def notify(self, topic: str, order_id: str, recipients: list[str], payload: dict) -> None:
        if self.should_fail:
            raise RuntimeError("Notification channel unavailable")
        self.sent.append(
            {
                "topic": topic,
                "order_id": order_id,
                "recipients": list(recipients),
                "payload": dict(payload),
            }
        )
