"""Notes and documents: commands and handler."""

import structlog
from protean import handle
from protean.fields import Boolean, Identifier, Integer, String, Text
from protean.utils.globals import current_domain

from sales.domain import sales
from sales.order.access import assert_can_add_note, resolve_role
from sales.order.order import Order
from sales.order.views import build_order_view

logger = structlog.get_logger(__name__)


@sales.command(part_of="Order")
class AddOrderNote:
    order_id = Identifier(required=True)
    actor_id = Identifier(required=True)
    is_admin = Boolean(default=False)
    author_name = String(max_length=255)
    content = Text(required=True)
    is_internal = Boolean(default=False)
    expected_version = Integer()


@sales.command(part_of="Order")
class AddOrderDocument:
    order_id = Identifier(required=True)
    actor_id = Identifier(required=True)
    is_admin = Boolean(default=False)
    document_type = String(required=True, max_length=50)
    name = String(required=True, max_length=255)
    url = String(required=True, max_length=1000)
    expected_version = Integer()


@sales.command_handler(part_of=Order)
class OrderAttachmentsHandler:
    @handle(AddOrderNote)
    def add_note(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        role = assert_can_add_note(order, command.actor_id, command.is_admin, command.is_internal)
        order.assert_version(command.expected_version)

        note = order.add_note(
            actor_id=command.actor_id,
            content=command.content,
            author_name=command.author_name,
            is_internal=command.is_internal,
        )
        repo.add(order)

        logger.info(
            "Note added",
            order_id=str(order.id),
            note_id=str(note.id),
            is_internal=bool(command.is_internal),
        )
        return build_order_view(order, role)

    @handle(AddOrderDocument)
    def add_document(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        role = resolve_role(order, command.actor_id, command.is_admin)
        order.assert_version(command.expected_version)

        document = order.add_document(
            actor_id=command.actor_id,
            document_type=command.document_type,
            name=command.name,
            url=command.url,
        )
        repo.add(order)

        logger.info(
            "Document added",
            order_id=str(order.id),
            document_id=str(document.id),
            document_type=command.document_type,
        )
        return build_order_view(order, role)
