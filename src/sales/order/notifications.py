"""Order event handler: tells buyers and sellers what happened to their order.

Notification is fire-and-forget. A failing notifier is logged and swallowed
here so it can never roll back or block the order change that raised the
event.
"""

import structlog
from protean.utils.mixins import handle

from sales.domain import sales
from sales.notifier import get_notifier
from sales.order.events import DeliveryScheduled, OrderCanceled, OrderCreated, OrderStateChanged
from sales.order.order import Order

logger = structlog.get_logger(__name__)


def _dispatch(topic, order_id, recipients, payload):
    try:
        get_notifier().notify(topic, str(order_id), [str(r) for r in recipients], payload)
    except Exception as exc:  # noqa: BLE001
        logger.warning("Order notification failed", topic=topic, order_id=str(order_id), error=str(exc))


@sales.event_handler(part_of=Order)
class OrderNotificationHandler:
    @handle(OrderCreated)
    def on_order_created(self, event: OrderCreated) -> None:
        _dispatch(
            "order_created",
            event.order_id,
            [event.buyer_id, event.seller_id],
            {
                "listing_id": str(event.listing_id),
                "total_amount": event.total_amount,
                "deposit_amount": event.deposit_amount,
                "currency": event.currency,
                "deposit_due_at": event.deposit_due_at.isoformat(),
            },
        )

    @handle(OrderStateChanged)
    def on_state_changed(self, event: OrderStateChanged) -> None:
        _dispatch(
            "order_state_changed",
            event.order_id,
            [event.buyer_id, event.seller_id],
            {
                "previous_state": event.previous_state,
                "new_state": event.new_state,
                "event_type": event.event_type,
            },
        )

    @handle(OrderCanceled)
    def on_order_canceled(self, event: OrderCanceled) -> None:
        _dispatch(
            "order_canceled",
            event.order_id,
            [event.buyer_id, event.seller_id],
            {
                "reason": event.reason,
                "canceled_by": event.canceled_by,
                "refund_amount": event.refund_amount,
            },
        )

    @handle(DeliveryScheduled)
    def on_delivery_scheduled(self, event: DeliveryScheduled) -> None:
        _dispatch(
            "delivery_scheduled",
            event.order_id,
            [event.buyer_id],
            {"scheduled_date": event.scheduled_date.isoformat(), "method": event.method},
        )
