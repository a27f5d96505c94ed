"""Tests for the OrderTransaction aggregate: recording and its state machine."""

import pytest
from protean.exceptions import ValidationError
from sales.ledger.events import TransactionRecorded, TransactionStateChanged
from sales.ledger.transaction import (
    OrderTransaction,
    PaymentProvider,
    TransactionState,
    TransactionType,
    refund_idempotency_key,
)


def _record(**overrides):
    params = {
        "order_id": "order-001",
        "transaction_type": TransactionType.DEPOSIT.value,
        "amount": 2000.0,
        "actor_id": "buyer-1",
    }
    params.update(overrides)
    return OrderTransaction.record(**params)


class TestRecord:
    def test_starts_pending(self):
        transaction = _record()
        assert transaction.state == TransactionState.PENDING.value
        assert transaction.amount == 2000.0
        assert transaction.currency == "USD"
        assert transaction.created_by == "buyer-1"

    def test_provider_manual_without_intent(self):
        assert _record().provider == PaymentProvider.MANUAL.value

    def test_provider_stripe_with_intent(self):
        transaction = _record(payment_intent_id="pi_123")
        assert transaction.provider == PaymentProvider.STRIPE.value
        assert transaction.payment_intent_id == "pi_123"

    def test_metadata_round_trips(self):
        transaction = _record(metadata={"source": "checkout"})
        assert transaction.parsed_metadata == {"source": "checkout"}

    def test_raises_recorded_event(self):
        transaction = _record()
        assert isinstance(transaction._events[-1], TransactionRecorded)
        assert transaction._events[-1].amount == 2000.0

    @pytest.mark.parametrize("amount", [0.0, -10.0])
    def test_non_positive_amount_rejected(self, amount):
        with pytest.raises(ValidationError) as exc:
            _record(amount=amount)
        assert "amount" in exc.value.messages

    def test_unknown_type_rejected(self):
        with pytest.raises(ValidationError) as exc:
            _record(transaction_type="tip")
        assert "transaction_type" in exc.value.messages


class TestOutboxRefund:
    def test_flagged_pending_refund(self):
        transaction = _record(
            transaction_type=TransactionType.REFUND.value,
            metadata={"outbox": True},
            idempotency_key=refund_idempotency_key("order-001"),
        )
        assert transaction.is_outbox_refund
        assert transaction.idempotency_key == "refund:order-001"

    def test_unflagged_refund(self):
        assert not _record(transaction_type=TransactionType.REFUND.value).is_outbox_refund

    def test_dispatched_refund_no_longer_outbox(self):
        transaction = _record(transaction_type=TransactionType.REFUND.value, metadata={"outbox": True})
        transaction.mark_succeeded("refund-dispatcher", charge_id="re_1")
        assert not transaction.is_outbox_refund


class TestTransitions:
    def test_pending_to_processing_to_succeeded(self):
        transaction = _record()
        transaction.mark_processing("payment-provider")
        transaction.mark_succeeded("payment-provider", charge_id="ch_1", payment_method_type="card", last4="4242")
        assert transaction.state == TransactionState.SUCCEEDED.value
        assert transaction.charge_id == "ch_1"
        assert transaction.last4 == "4242"
        assert transaction.processed_at is not None

    def test_failure_records_reason(self):
        transaction = _record()
        transaction.mark_failed("payment-provider", failure_code="card_declined", failure_message="Declined")
        assert transaction.state == TransactionState.FAILED.value
        assert transaction.failure_code == "card_declined"
        event = transaction._events[-1]
        assert isinstance(event, TransactionStateChanged)
        assert event.failure_code == "card_declined"

    def test_succeeded_can_be_refunded(self):
        transaction = _record()
        transaction.mark_succeeded("payment-provider")
        transaction.mark_refunded("payment-provider")
        assert transaction.state == TransactionState.REFUNDED.value

    def test_pending_can_be_canceled(self):
        transaction = _record()
        transaction.cancel("buyer-1")
        assert transaction.state == TransactionState.CANCELED.value

    @pytest.mark.parametrize(
        "setup, action",
        [
            (lambda t: t.mark_failed("x"), lambda t: t.mark_succeeded("x")),
            (lambda t: t.cancel("x"), lambda t: t.mark_processing("x")),
            (lambda t: None, lambda t: t.mark_refunded("x")),
            (lambda t: t.mark_processing("x"), lambda t: t.cancel("x")),
        ],
    )
    def test_invalid_transitions_rejected(self, setup, action):
        transaction = _record()
        setup(transaction)
        with pytest.raises(ValidationError):
            action(transaction)

    def test_failed_success_attempt_keeps_fields(self):
        transaction = _record()
        transaction.mark_failed("payment-provider", failure_code="card_declined")
        with pytest.raises(ValidationError):
            transaction.mark_succeeded("payment-provider", charge_id="ch_late")
        assert transaction.charge_id is None
