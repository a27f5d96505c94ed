"""Delivery details: command and handler.

Any party to the order may update delivery. Only a new scheduled date is
logged on the timeline.
"""

import json

import structlog
from protean import handle
from protean.fields import Boolean, DateTime, Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from sales.domain import sales
from sales.order.access import resolve_role
from sales.order.order import Order
from sales.order.views import build_order_view

logger = structlog.get_logger(__name__)


@sales.command(part_of="Order")
class UpdateDelivery:
    order_id = Identifier(required=True)
    actor_id = Identifier(required=True)
    is_admin = Boolean(default=False)
    delivery_method = String(max_length=20)
    delivery_address = Text()  # JSON: partial address, merged into the current one
    scheduled_date = DateTime()
    estimated_arrival = DateTime()
    tracking_number = String(max_length=255)
    carrier = String(max_length=100)
    special_instructions = String(max_length=1000)
    expected_version = Integer()


@sales.command_handler(part_of=Order)
class UpdateDeliveryHandler:
    @handle(UpdateDelivery)
    def update_delivery(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        role = resolve_role(order, command.actor_id, command.is_admin)
        order.assert_version(command.expected_version)

        order.update_delivery(
            actor_id=command.actor_id,
            method=command.delivery_method,
            address=json.loads(command.delivery_address) if command.delivery_address else None,
            scheduled_date=command.scheduled_date,
            estimated_arrival=command.estimated_arrival,
            tracking_number=command.tracking_number,
            carrier=command.carrier,
            special_instructions=command.special_instructions,
        )
        repo.add(order)

        logger.info(
            "Delivery updated",
            order_id=str(order.id),
            method=order.delivery.method,
            scheduled=command.scheduled_date is not None,
        )
        return build_order_view(order, role)
