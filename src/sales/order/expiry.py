"""Deposit expiry: sweep and per-order commands with their handler.

Designed to be triggered periodically by an external scheduler (cron, K8s
CronJob) via ``manage.py expire-orders`` or the maintenance API endpoint.
Finds PENDING_DEPOSIT orders whose deposit due date has passed and dispatches
an ExpireOrder command for each, so every order is canceled in its own unit
of work.
"""

from datetime import UTC, datetime

import structlog
from protean import handle
from protean.exceptions import InvalidOperationError, ObjectNotFoundError, ValidationError
from protean.fields import DateTime, Identifier
from protean.utils.globals import current_domain

from sales.domain import sales
from sales.order.order import Order, OrderState
from sales.utils.paging import collect_all

logger = structlog.get_logger(__name__)


@sales.command(part_of="Order")
class ExpireUnpaidOrders:
    """Cancel every order whose deposit was not received by its due date."""

    as_of = DateTime()  # Optional: defaults to now


@sales.command(part_of="Order")
class ExpireOrder:
    order_id = Identifier(required=True)
    as_of = DateTime(required=True)


@sales.command_handler(part_of=Order)
class DepositExpiryHandler:
    @handle(ExpireUnpaidOrders)
    def expire_unpaid_orders(self, command):
        as_of = command.as_of or datetime.now(UTC)
        logger.info("Checking for unpaid orders", as_of=as_of.isoformat())

        pending = collect_all(
            current_domain.repository_for(Order)._dao.query.filter(state=OrderState.PENDING_DEPOSIT.value)
        )
        overdue = [order for order in pending if order.is_deposit_overdue(as_of)]
        if not overdue:
            logger.info("No unpaid orders past their deposit due date")
            return 0

        expired_count = 0
        for order in overdue:
            try:
                current_domain.process(
                    ExpireOrder(order_id=str(order.id), as_of=as_of),
                    asynchronous=False,
                )
                expired_count += 1
                logger.info(
                    "Expired unpaid order",
                    order_id=str(order.id),
                    buyer_id=str(order.buyer_id),
                    deposit_due_at=str(order.deposit_due_at),
                )
            except (ValidationError, InvalidOperationError, ObjectNotFoundError) as exc:
                logger.warning("Failed to expire order", order_id=str(order.id), error=str(exc))

        logger.info("Deposit expiry sweep complete", expired_count=expired_count)
        return expired_count

    @handle(ExpireOrder)
    def expire_order(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.expire(command.as_of)
        repo.add(order)
