"""Payment gateway port (abstract interface).

The ledger never moves money itself. Refunds created by order cancellation
are executed through this port by the refund dispatcher, always with an
idempotency key so that a redelivered dispatch cannot refund twice.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


class GatewayUnavailable(ConnectionError):
    """Transient gateway failure. Safe to retry with the same idempotency key."""


@dataclass(frozen=True)
class RefundResult:
    """Result of a refund attempt."""

    success: bool
    gateway_refund_id: str | None = None
    gateway_status: str | None = None
    receipt_url: str | None = None
    failure_code: str | None = None
    failure_reason: str | None = None


class PaymentGateway(ABC):
    """Abstract payment gateway interface."""

    name = "other"

    @abstractmethod
    def create_refund(
        self,
        payment_reference: str | None,
        amount: float,
        currency: str,
        reason: str,
        idempotency_key: str,
    ) -> RefundResult:
        """Refund (part of) a previous charge."""
        ...

    @abstractmethod
    def verify_webhook_signature(self, payload: str, signature: str) -> bool:
        """Verify that a webhook payload is authentically from the gateway."""
        ...
