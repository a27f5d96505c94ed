"""Generic status transitions: command and handler."""

import structlog
from protean import handle
from protean.fields import Boolean, Identifier, Integer, String
from protean.utils.globals import current_domain

from sales.domain import sales
from sales.order.access import assert_can_manage
from sales.order.order import Order
from sales.order.views import build_order_view

logger = structlog.get_logger(__name__)


@sales.command(part_of="Order")
class UpdateOrderStatus:
    order_id = Identifier(required=True)
    actor_id = Identifier(required=True)
    is_admin = Boolean(default=False)
    state = String(required=True, max_length=50)
    substatus = String(max_length=100)
    reason = String(max_length=500)
    expected_version = Integer()


@sales.command_handler(part_of=Order)
class UpdateOrderStatusHandler:
    @handle(UpdateOrderStatus)
    def update_status(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        role = assert_can_manage(order, command.actor_id, command.is_admin)
        order.assert_version(command.expected_version)

        previous_state = order.state
        order.update_status(
            new_state=command.state,
            actor_id=command.actor_id,
            substatus=command.substatus,
            reason=command.reason,
        )
        repo.add(order)

        logger.info(
            "Order status updated",
            order_id=str(order.id),
            previous_state=previous_state,
            new_state=order.state,
            actor_id=str(command.actor_id),
            version=order.version,
        )
        return build_order_view(order, role)
