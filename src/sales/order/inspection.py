"""Vehicle inspection: schedule and complete, commands and handler."""

import structlog
from protean import handle
from protean.fields import Boolean, DateTime, Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from sales.domain import sales
from sales.order.access import assert_can_manage
from sales.order.order import Order
from sales.order.views import build_order_view

logger = structlog.get_logger(__name__)


@sales.command(part_of="Order")
class ScheduleInspection:
    order_id = Identifier(required=True)
    actor_id = Identifier(required=True)
    is_admin = Boolean(default=False)
    scheduled_at = DateTime(required=True)
    location = String(max_length=255)
    inspector = String(max_length=255)
    expected_version = Integer()


@sales.command(part_of="Order")
class CompleteInspection:
    order_id = Identifier(required=True)
    actor_id = Identifier(required=True)
    is_admin = Boolean(default=False)
    approved = Boolean(required=True)
    findings = Text()
    report_url = String(max_length=1000)
    expected_version = Integer()


@sales.command_handler(part_of=Order)
class InspectionHandler:
    @handle(ScheduleInspection)
    def schedule_inspection(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        role = assert_can_manage(order, command.actor_id, command.is_admin)
        order.assert_version(command.expected_version)

        order.schedule_inspection(
            actor_id=command.actor_id,
            scheduled_at=command.scheduled_at,
            location=command.location,
            inspector=command.inspector,
        )
        repo.add(order)

        logger.info(
            "Inspection scheduled",
            order_id=str(order.id),
            scheduled_at=command.scheduled_at.isoformat(),
        )
        return build_order_view(order, role)

    @handle(CompleteInspection)
    def complete_inspection(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        role = assert_can_manage(order, command.actor_id, command.is_admin)
        order.assert_version(command.expected_version)

        order.complete_inspection(
            actor_id=command.actor_id,
            approved=command.approved,
            findings=command.findings,
            report_url=command.report_url,
        )
        repo.add(order)

        logger.info("Inspection completed", order_id=str(order.id), approved=command.approved)
        return build_order_view(order, role)
