"""Read side for the ledger."""

from dataclasses import dataclass, field

from protean.exceptions import ValidationError
from protean.utils.globals import current_domain

from sales.ledger.transaction import OrderTransaction, PaymentProvider, TransactionState, TransactionType
from sales.ledger.views import TransactionView, build_transaction_view
from sales.order.access import resolve_role
from sales.order.order import Order
from sales.utils.paging import clamp_page_size, decode_cursor, encode_cursor

SORTABLE_FIELDS = ("created_at", "amount")

_FILTER_CHOICES = {
    "transaction_type": TransactionType,
    "state": TransactionState,
    "provider": PaymentProvider,
}


@dataclass
class TransactionPage:
    items: list[TransactionView] = field(default_factory=list)
    total: int = 0
    next_cursor: str | None = None


def list_transactions(
    order_id=None,
    transaction_type=None,
    state=None,
    provider=None,
    sort_by="created_at",
    sort_order="desc",
    limit=None,
    cursor=None,
) -> TransactionPage:
    if sort_by not in SORTABLE_FIELDS:
        raise ValidationError({"sort_by": [f"Sort field must be one of {', '.join(SORTABLE_FIELDS)}"]})
    if sort_order not in ("asc", "desc"):
        raise ValidationError({"sort_order": ["Sort order must be asc or desc"]})

    filters = {"order_id": str(order_id)} if order_id else {}
    for name, value in (("transaction_type", transaction_type), ("state", state), ("provider", provider)):
        if value:
            try:
                filters[name] = _FILTER_CHOICES[name](value).value
            except ValueError:
                raise ValidationError({name: [f"Unknown {name}: {value}"]}) from None

    page_size = clamp_page_size(limit)
    offset = decode_cursor(cursor)

    query = current_domain.repository_for(OrderTransaction)._dao.query
    if filters:
        query = query.filter(**filters)
    result = (
        query.order_by(sort_by if sort_order == "asc" else f"-{sort_by}").offset(offset).limit(page_size).all()
    )

    next_offset = offset + len(result.items)
    return TransactionPage(
        items=[build_transaction_view(transaction) for transaction in result.items],
        total=result.total,
        next_cursor=encode_cursor(next_offset) if next_offset < result.total else None,
    )


def list_order_transactions(order_id, actor_id, is_admin=False, **filters) -> TransactionPage:
    """Ledger entries of one order, for its parties and admins."""
    order = current_domain.repository_for(Order).get(order_id)
    resolve_role(order, actor_id, is_admin)
    return list_transactions(order_id=str(order.id), **filters)
