"""Domain events for the OrderTransaction aggregate."""

from protean.fields import DateTime, Float, Identifier, String

from sales.domain import sales


@sales.event(part_of="OrderTransaction")
class TransactionRecorded:
    __version__ = 1

    transaction_id = Identifier(required=True)
    order_id = Identifier(required=True)
    transaction_type = String(required=True)
    amount = Float(required=True)
    currency = String(max_length=3, default="USD")
    provider = String(required=True)
    state = String(required=True)
    recorded_at = DateTime(required=True)


@sales.event(part_of="OrderTransaction")
class TransactionStateChanged:
    __version__ = 1

    transaction_id = Identifier(required=True)
    order_id = Identifier(required=True)
    transaction_type = String(required=True)
    previous_state = String(required=True)
    new_state = String(required=True)
    amount = Float(required=True)
    failure_code = String()
    failure_message = String()
    changed_at = DateTime(required=True)
