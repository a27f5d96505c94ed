"""Refund dispatch: sweep and per-refund commands with their handler.

Cancellation leaves refund entries PENDING and flagged ``outbox``. This
dispatcher hands each one to the payment gateway with the entry's
idempotency key and records the answer. Transient gateway errors are retried
with backoff; a refund that still cannot be sent stays PENDING for the next
run.
"""

import structlog
from protean import handle
from protean.exceptions import InvalidOperationError, ObjectNotFoundError, ValidationError
from protean.fields import Identifier
from protean.utils.globals import current_domain

from sales.domain import sales
from sales.gateway import get_gateway
from sales.ledger.transaction import OrderTransaction, TransactionState, TransactionType
from sales.utils.paging import collect_all
from sales.utils.retry import retry_with_backoff

logger = structlog.get_logger(__name__)

DISPATCH_ACTOR = "refund-dispatcher"


@sales.command(part_of="OrderTransaction")
class DispatchPendingRefunds:
    """Send every pending outbox refund to the payment gateway."""


@sales.command(part_of="OrderTransaction")
class DispatchRefund:
    transaction_id = Identifier(required=True)


def pending_outbox_refunds() -> list:
    query = current_domain.repository_for(OrderTransaction)._dao.query.filter(
        transaction_type=TransactionType.REFUND.value,
        state=TransactionState.PENDING.value,
    )
    return [transaction for transaction in collect_all(query) if transaction.is_outbox_refund]


def _payment_reference(order_id) -> str | None:
    """Charge (or payment intent) of the order's captured deposit, if any."""
    deposits = (
        current_domain.repository_for(OrderTransaction)
        ._dao.query.filter(
            order_id=str(order_id),
            transaction_type=TransactionType.DEPOSIT.value,
            state=TransactionState.SUCCEEDED.value,
        )
        .all()
        .items
    )
    for deposit in deposits:
        if deposit.charge_id or deposit.payment_intent_id:
            return deposit.charge_id or deposit.payment_intent_id
    return None


@sales.command_handler(part_of=OrderTransaction)
class RefundDispatchHandler:
    @handle(DispatchPendingRefunds)
    def dispatch_pending_refunds(self, _command):
        refunds = pending_outbox_refunds()
        if not refunds:
            logger.info("No pending refunds to dispatch")
            return 0

        dispatched = 0
        for refund in refunds:
            try:
                current_domain.process(DispatchRefund(transaction_id=str(refund.id)), asynchronous=False)
                dispatched += 1
            except (ConnectionError, TimeoutError) as exc:
                logger.warning(
                    "Refund left pending, gateway unavailable",
                    transaction_id=str(refund.id),
                    error=str(exc),
                )
            except (ValidationError, InvalidOperationError, ObjectNotFoundError) as exc:
                logger.warning("Failed to dispatch refund", transaction_id=str(refund.id), error=str(exc))

        logger.info("Refund dispatch complete", dispatched=dispatched, pending=len(refunds))
        return dispatched

    @handle(DispatchRefund)
    def dispatch_refund(self, command):
        repo = current_domain.repository_for(OrderTransaction)
        refund = repo.get(command.transaction_id)
        if not refund.is_outbox_refund:
            logger.info("Refund already dispatched", transaction_id=str(refund.id), state=refund.state)
            return refund.state

        gateway = get_gateway()
        result = retry_with_backoff(
            lambda: gateway.create_refund(
                payment_reference=_payment_reference(refund.order_id),
                amount=refund.amount,
                currency=refund.currency,
                reason=refund.description or "Order canceled",
                idempotency_key=refund.idempotency_key,
            )
        )

        if result.success:
            refund.mark_succeeded(
                DISPATCH_ACTOR,
                charge_id=result.gateway_refund_id,
                receipt_url=result.receipt_url,
            )
        else:
            refund.mark_failed(
                DISPATCH_ACTOR,
                failure_code=result.failure_code,
                failure_message=result.failure_reason,
            )
        repo.add(refund)

        logger.info(
            "Refund dispatched",
            transaction_id=str(refund.id),
            order_id=str(refund.order_id),
            state=refund.state,
            gateway=gateway.name,
        )
        return refund.state
