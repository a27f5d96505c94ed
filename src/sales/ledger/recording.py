"""Ledger entry creation: command and handler.

Entries are recorded PENDING and never move the order by themselves. A
repeat for the same order and payment intent returns the existing entry,
so payment-provider retries cannot double-book.
"""

import json

import structlog
from protean import handle
from protean.fields import Boolean, Float, Identifier, String, Text
from protean.utils.globals import current_domain

from sales.domain import sales
from sales.ledger.transaction import OrderTransaction
from sales.ledger.views import build_transaction_view
from sales.order.access import resolve_role
from sales.order.order import Order

logger = structlog.get_logger(__name__)


@sales.command(part_of="OrderTransaction")
class CreateTransaction:
    order_id = Identifier(required=True)
    actor_id = Identifier(required=True)
    is_admin = Boolean(default=False)
    transaction_type = String(required=True, max_length=20)
    amount = Float(required=True)
    currency = String(max_length=3)
    payment_intent_id = String(max_length=255)
    description = String(max_length=500)
    transaction_metadata = Text()  # JSON object


def find_by_payment_intent(order_id, payment_intent_id):
    matches = (
        current_domain.repository_for(OrderTransaction)
        ._dao.query.filter(order_id=str(order_id), payment_intent_id=payment_intent_id)
        .all()
        .items
    )
    return matches[0] if matches else None


@sales.command_handler(part_of=OrderTransaction)
class CreateTransactionHandler:
    @handle(CreateTransaction)
    def create_transaction(self, command):
        order = current_domain.repository_for(Order).get(command.order_id)
        resolve_role(order, command.actor_id, command.is_admin)

        if command.payment_intent_id:
            existing = find_by_payment_intent(order.id, command.payment_intent_id)
            if existing is not None:
                logger.info(
                    "Transaction already recorded for payment intent",
                    transaction_id=str(existing.id),
                    order_id=str(order.id),
                    payment_intent_id=command.payment_intent_id,
                )
                return build_transaction_view(existing)

        transaction = OrderTransaction.record(
            order_id=str(order.id),
            transaction_type=command.transaction_type,
            amount=command.amount,
            actor_id=command.actor_id,
            currency=command.currency or order.pricing.currency,
            payment_intent_id=command.payment_intent_id,
            description=command.description,
            metadata=json.loads(command.transaction_metadata) if command.transaction_metadata else None,
        )
        current_domain.repository_for(OrderTransaction).add(transaction)

        logger.info(
            "Transaction recorded",
            transaction_id=str(transaction.id),
            order_id=str(order.id),
            transaction_type=transaction.transaction_type,
            amount=transaction.amount,
            provider=transaction.provider,
        )
        return build_transaction_view(transaction)
