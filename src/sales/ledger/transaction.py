"""OrderTransaction aggregate: one money movement tied to an order.

State Machine:
    PENDING → PROCESSING → SUCCEEDED → REFUNDED
    PENDING → SUCCEEDED / FAILED / CANCELED
    PROCESSING → FAILED

Transactions reference their order by id only. Refunds created by order
cancellation start PENDING with an ``idempotency_key`` and are moved on by
the refund dispatcher once the gateway has answered.
"""

import json
from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, Identifier, String, Text

from sales.domain import sales
from sales.ledger.events import TransactionRecorded, TransactionStateChanged


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class TransactionType(Enum):
    DEPOSIT = "deposit"
    BALANCE = "balance"
    REFUND = "refund"
    FEE = "fee"
    TAX = "tax"


class TransactionState(Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"
    REFUNDED = "refunded"


class PaymentProvider(Enum):
    STRIPE = "stripe"
    MANUAL = "manual"
    OTHER = "other"


_VALID_TRANSITIONS = {
    TransactionState.PENDING: {
        TransactionState.PROCESSING,
        TransactionState.SUCCEEDED,
        TransactionState.FAILED,
        TransactionState.CANCELED,
    },
    TransactionState.PROCESSING: {TransactionState.SUCCEEDED, TransactionState.FAILED},
    TransactionState.SUCCEEDED: {TransactionState.REFUNDED},
    TransactionState.FAILED: set(),  # Terminal
    TransactionState.CANCELED: set(),  # Terminal
    TransactionState.REFUNDED: set(),  # Terminal
}

# Money flowing from the buyer to the platform
INBOUND_TYPES = frozenset({TransactionType.DEPOSIT, TransactionType.BALANCE})


def refund_idempotency_key(order_id) -> str:
    return f"refund:{order_id}"


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@sales.aggregate
class OrderTransaction:
    order_id = Identifier(required=True)
    transaction_type = String(choices=TransactionType, required=True)
    amount = Float(required=True, min_value=0.0)
    currency = String(max_length=3, default="USD")
    description = String(max_length=500)
    transaction_metadata = Text()  # JSON object

    # Provider details
    provider = String(choices=PaymentProvider, default=PaymentProvider.MANUAL.value)
    payment_intent_id = String(max_length=255)
    charge_id = String(max_length=255)
    payment_method_type = String(max_length=50)
    last4 = String(max_length=4)
    receipt_url = String(max_length=1000)
    idempotency_key = String(max_length=255)

    state = String(choices=TransactionState, default=TransactionState.PENDING.value)
    failure_code = String(max_length=100)
    failure_message = String(max_length=500)
    processed_at = DateTime()

    created_at = DateTime()
    created_by = String(max_length=255)
    updated_at = DateTime()
    updated_by = String(max_length=255)

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def record(
        cls,
        order_id,
        transaction_type,
        amount,
        actor_id,
        currency="USD",
        payment_intent_id=None,
        description=None,
        metadata=None,
        provider=None,
        idempotency_key=None,
    ):
        """Record a new PENDING transaction.

        The provider is ``stripe`` when a payment intent is given, otherwise
        ``manual``, unless stated explicitly.
        """
        try:
            kind = TransactionType(transaction_type)
        except ValueError:
            raise ValidationError({"transaction_type": [f"Unknown transaction type: {transaction_type}"]}) from None
        if amount is None or amount <= 0:
            raise ValidationError({"amount": ["Transaction amount must be positive"]})

        if provider is None:
            provider = PaymentProvider.STRIPE.value if payment_intent_id else PaymentProvider.MANUAL.value

        now = datetime.now(UTC)
        transaction = cls(
            order_id=order_id,
            transaction_type=kind.value,
            amount=round(amount, 2),
            currency=currency,
            description=description,
            transaction_metadata=json.dumps(metadata or {}, default=str),
            provider=provider,
            payment_intent_id=payment_intent_id,
            idempotency_key=idempotency_key,
            state=TransactionState.PENDING.value,
            created_at=now,
            created_by=str(actor_id),
            updated_at=now,
            updated_by=str(actor_id),
        )
        transaction.raise_(
            TransactionRecorded(
                transaction_id=str(transaction.id),
                order_id=str(order_id),
                transaction_type=kind.value,
                amount=transaction.amount,
                currency=currency,
                provider=provider,
                state=transaction.state,
                recorded_at=now,
            )
        )
        return transaction

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------
    @property
    def current_state(self) -> TransactionState:
        return TransactionState(self.state)

    @property
    def parsed_metadata(self) -> dict:
        return json.loads(self.transaction_metadata) if self.transaction_metadata else {}

    @property
    def is_outbox_refund(self) -> bool:
        return (
            self.transaction_type == TransactionType.REFUND.value
            and self.current_state == TransactionState.PENDING
            and bool(self.parsed_metadata.get("outbox"))
        )

    def _assert_can_transition(self, target: TransactionState):
        current = self.current_state
        if target not in _VALID_TRANSITIONS.get(current, set()):
            raise ValidationError({"state": [f"Cannot transition from {current.value} to {target.value}"]})

    def _transition(self, target: TransactionState, actor_id):
        previous = self.current_state
        self._assert_can_transition(target)
        now = datetime.now(UTC)

        self.state = target.value
        self.updated_at = now
        self.updated_by = str(actor_id)
        if target in (TransactionState.SUCCEEDED, TransactionState.FAILED):
            self.processed_at = now

        self.raise_(
            TransactionStateChanged(
                transaction_id=str(self.id),
                order_id=str(self.order_id),
                transaction_type=self.transaction_type,
                previous_state=previous.value,
                new_state=target.value,
                amount=self.amount,
                failure_code=self.failure_code,
                failure_message=self.failure_message,
                changed_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------
    def mark_processing(self, actor_id):
        self._transition(TransactionState.PROCESSING, actor_id)

    def mark_succeeded(
        self,
        actor_id,
        charge_id=None,
        payment_method_type=None,
        last4=None,
        receipt_url=None,
    ):
        self._assert_can_transition(TransactionState.SUCCEEDED)
        self.charge_id = charge_id or self.charge_id
        self.payment_method_type = payment_method_type or self.payment_method_type
        self.last4 = last4 or self.last4
        self.receipt_url = receipt_url or self.receipt_url
        self._transition(TransactionState.SUCCEEDED, actor_id)

    def mark_failed(self, actor_id, failure_code=None, failure_message=None):
        self._assert_can_transition(TransactionState.FAILED)
        self.failure_code = failure_code
        self.failure_message = failure_message
        self._transition(TransactionState.FAILED, actor_id)

    def cancel(self, actor_id):
        self._transition(TransactionState.CANCELED, actor_id)

    def mark_refunded(self, actor_id):
        self._transition(TransactionState.REFUNDED, actor_id)
