"""Provider callbacks: command and handler.

Callbacks are delivered at least once. An outcome that is already the
transaction's state is acknowledged without change.
"""

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from sales.domain import sales
from sales.ledger.transaction import OrderTransaction, TransactionState
from sales.ledger.views import build_transaction_view

logger = structlog.get_logger(__name__)

WEBHOOK_ACTOR = "payment-provider"


@sales.command(part_of="OrderTransaction")
class RecordTransactionOutcome:
    """Apply a payment-provider callback to a ledger entry.

    The entry is found by ``transaction_id`` or, failing that, by
    ``payment_intent_id``.
    """

    transaction_id = Identifier()
    payment_intent_id = String(max_length=255)
    outcome = String(required=True, max_length=20)  # processing, succeeded, failed, canceled, refunded
    charge_id = String(max_length=255)
    payment_method_type = String(max_length=50)
    last4 = String(max_length=4)
    receipt_url = String(max_length=1000)
    failure_code = String(max_length=100)
    failure_message = String(max_length=500)


def _find_transaction(command):
    repo = current_domain.repository_for(OrderTransaction)
    if command.transaction_id:
        return repo.get(command.transaction_id)
    if command.payment_intent_id:
        matches = repo._dao.query.filter(payment_intent_id=command.payment_intent_id).all().items
        if matches:
            return matches[0]
        raise ObjectNotFoundError(
            {"payment_intent_id": [f"No transaction for payment intent {command.payment_intent_id}"]}
        )
    raise ValidationError({"transaction_id": ["transaction_id or payment_intent_id is required"]})


@sales.command_handler(part_of=OrderTransaction)
class RecordTransactionOutcomeHandler:
    @handle(RecordTransactionOutcome)
    def record_outcome(self, command):
        try:
            outcome = TransactionState(command.outcome)
        except ValueError:
            raise ValidationError({"outcome": [f"Unknown outcome: {command.outcome}"]}) from None
        if outcome == TransactionState.PENDING:
            raise ValidationError({"outcome": ["A callback cannot move a transaction back to pending"]})

        transaction = _find_transaction(command)
        if transaction.current_state == outcome:
            logger.info(
                "Duplicate transaction outcome ignored",
                transaction_id=str(transaction.id),
                outcome=outcome.value,
            )
            return build_transaction_view(transaction)

        if outcome == TransactionState.PROCESSING:
            transaction.mark_processing(WEBHOOK_ACTOR)
        elif outcome == TransactionState.SUCCEEDED:
            transaction.mark_succeeded(
                WEBHOOK_ACTOR,
                charge_id=command.charge_id,
                payment_method_type=command.payment_method_type,
                last4=command.last4,
                receipt_url=command.receipt_url,
            )
        elif outcome == TransactionState.FAILED:
            transaction.mark_failed(
                WEBHOOK_ACTOR,
                failure_code=command.failure_code,
                failure_message=command.failure_message or "Unknown failure",
            )
        elif outcome == TransactionState.CANCELED:
            transaction.cancel(WEBHOOK_ACTOR)
        else:
            transaction.mark_refunded(WEBHOOK_ACTOR)

        current_domain.repository_for(OrderTransaction).add(transaction)
        logger.info(
            "Transaction outcome recorded",
            transaction_id=str(transaction.id),
            order_id=str(transaction.order_id),
            state=transaction.state,
        )
        return build_transaction_view(transaction)
