"""Notifier factory: get_notifier() / set_notifier() / reset_notifier()."""

import os

from sales.notifier.port import OrderNotifier

_notifier: OrderNotifier | None = None


def get_notifier() -> OrderNotifier:
    global _notifier
    if _notifier is None:
        adapter = os.environ.get("NOTIFIER_ADAPTER", "fake")
        if adapter == "fake":
            from sales.notifier.fake_adapter import FakeNotifier

            _notifier = FakeNotifier()
        else:
            raise ValueError(f"Unknown notifier adapter: {adapter}")
    return _notifier


def set_notifier(notifier: OrderNotifier) -> None:
    global _notifier
    _notifier = notifier


def reset_notifier() -> None:
    global _notifier
    _notifier = None
