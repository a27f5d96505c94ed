"""Configurable fake payment gateway for development and testing.

Honours idempotency keys like a real provider: repeating a refund with the
same key returns the original result instead of refunding again.
"""

from uuid import uuid4

from sales.gateway.port import GatewayUnavailable, PaymentGateway, RefundResult


class FakeGateway(PaymentGateway):
    """Configurable fake payment gateway."""

    name = "manual"

    def __init__(self) -> None:
        self.should_succeed: bool = True
        self.failure_reason: str = "Refund declined"
        self.transient_failures: int = 0
        self.calls: list[dict] = []
        self._results: dict[str, RefundResult] = {}

    def configure(
        self,
        should_succeed: bool,
        failure_reason: str = "Refund declined",
        transient_failures: int = 0,
    ) -> None:
        """Configure gateway behavior at runtime.

        ``transient_failures`` makes the next N calls raise GatewayUnavailable.
        """
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        self.transient_failures = transient_failures

    def create_refund(
        self,
        payment_reference: str | None,
        amount: float,
        currency: str,
        reason: str,
        idempotency_key: str,
    ) -> RefundResult:
        self.calls.append(
            {
                "method": "create_refund",
                "payment_reference": payment_reference,
                "amount": amount,
                "currency": currency,
                "reason": reason,
                "idempotency_key": idempotency_key,
            }
        )

        if self.transient_failures > 0:
            self.transient_failures -= 1
            raise GatewayUnavailable("Gateway timed out")

        if idempotency_key in self._results:
            return self._results[idempotency_key]

        if self.should_succeed:
            refund_id = f"fake_ref_{uuid4().hex[:12]}"
            result = RefundResult(
                success=True,
                gateway_refund_id=refund_id,
                gateway_status="succeeded",
                receipt_url=f"https://receipts.example.test/{refund_id}",
            )
        else:
            result = RefundResult(
                success=False,
                gateway_status="failed",
                failure_code="refund_declined",
                failure_reason=self.failure_reason,
            )
        self._results[idempotency_key] = result
        return result

    def verify_webhook_signature(self, payload: str, signature: str) -> bool:  # noqa: ARG002
        return signature == "test-signature"
