"""Domain events for the Order aggregate.

These are facts for downstream consumers (notifications, reporting). The
order's own audit trail is the embedded timeline, not this event stream.
"""

from protean.fields import DateTime, Float, Identifier, String, Text

from sales.domain import sales


@sales.event(part_of="Order")
class OrderCreated:
    """A buyer committed to purchase a listing at an agreed price."""

    __version__ = 1

    order_id = Identifier(required=True)
    buyer_id = Identifier(required=True)
    seller_id = Identifier(required=True)
    listing_id = Identifier(required=True)
    agreed_price = Float(required=True)
    deposit_amount = Float(required=True)
    total_amount = Float(required=True)
    currency = String(max_length=3, default="USD")
    deposit_due_at = DateTime(required=True)
    created_at = DateTime(required=True)


@sales.event(part_of="Order")
class OrderStateChanged:
    """The order moved from one lifecycle state to another."""

    __version__ = 1

    order_id = Identifier(required=True)
    previous_state = String(required=True)
    new_state = String(required=True)
    event_type = String(required=True)
    performed_by = String(required=True)
    buyer_id = Identifier(required=True)
    seller_id = Identifier(required=True)
    changed_at = DateTime(required=True)


@sales.event(part_of="Order")
class OrderCanceled:
    """The order was canceled, optionally with a refund owed to the buyer."""

    __version__ = 1

    order_id = Identifier(required=True)
    previous_state = String(required=True)
    canceled_by = String(required=True)
    reason = String(required=True, max_length=500)
    refund_amount = Float()
    buyer_id = Identifier(required=True)
    seller_id = Identifier(required=True)
    canceled_at = DateTime(required=True)


@sales.event(part_of="Order")
class DeliveryScheduled:
    """A delivery date was set or moved."""

    __version__ = 1

    order_id = Identifier(required=True)
    scheduled_date = DateTime(required=True)
    method = String(required=True)
    buyer_id = Identifier(required=True)
    seller_id = Identifier(required=True)
    details = Text()  # JSON: carrier, tracking number, estimated arrival
