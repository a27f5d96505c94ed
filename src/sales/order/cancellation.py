"""Order cancellation: command and handler.

When a refund is owed, the refund transaction is written in the same unit of
work as the canceled order: both persist or neither does. The transaction is
left PENDING and flagged for the refund dispatcher, which talks to the
payment gateway outside this unit of work.
"""

import structlog
from protean import handle
from protean.fields import Boolean, Float, Identifier, Integer, String
from protean.utils.globals import current_domain

from sales.domain import sales
from sales.ledger.transaction import OrderTransaction, TransactionType, refund_idempotency_key
from sales.order.access import resolve_role
from sales.order.order import Order
from sales.order.views import build_order_view

logger = structlog.get_logger(__name__)


@sales.command(part_of="Order")
class CancelOrder:
    order_id = Identifier(required=True)
    actor_id = Identifier(required=True)
    is_admin = Boolean(default=False)
    reason = String(required=True, max_length=500)
    issue_refund = Boolean(default=False)
    refund_amount = Float()  # Optional: defaults to the deposit
    expected_version = Integer()


@sales.command_handler(part_of=Order)
class CancelOrderHandler:
    @handle(CancelOrder)
    def cancel_order(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        role = resolve_role(order, command.actor_id, command.is_admin)
        order.assert_version(command.expected_version)

        refund = order.cancel(
            actor_id=command.actor_id,
            reason=command.reason,
            issue_refund=command.issue_refund,
            refund_amount=command.refund_amount,
        )
        repo.add(order)

        refund_transaction_id = None
        if refund is not None:
            transaction = OrderTransaction.record(
                order_id=str(order.id),
                transaction_type=TransactionType.REFUND.value,
                amount=refund,
                actor_id=command.actor_id,
                currency=order.pricing.currency,
                description=f"Refund for canceled order: {command.reason}",
                metadata={"outbox": True, "reason": command.reason},
                idempotency_key=refund_idempotency_key(order.id),
            )
            current_domain.repository_for(OrderTransaction).add(transaction)
            refund_transaction_id = str(transaction.id)

        logger.info(
            "Order canceled",
            order_id=str(order.id),
            canceled_by=str(command.actor_id),
            refund_amount=refund,
            refund_transaction_id=refund_transaction_id,
        )
        return build_order_view(order, role)
