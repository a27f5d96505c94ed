"""Read side for orders: fetch one, list many.

Every returned order is shaped for the caller by ``build_order_view``.
Non-admin listings are always scoped to orders the caller is a party to.
"""

from dataclasses import dataclass, field

from protean.exceptions import ValidationError
from protean.utils.globals import current_domain

from sales.order.access import resolve_role
from sales.order.order import Order, OrderState
from sales.order.views import PublicOrderView, build_order_view
from sales.utils.paging import clamp_page_size, collect_all, decode_cursor, encode_cursor

SORTABLE_FIELDS = ("created_at", "updated_at", "total_amount")


@dataclass
class OrderPage:
    items: list[PublicOrderView] = field(default_factory=list)
    total: int = 0
    next_cursor: str | None = None


def get_order(order_id, actor_id, is_admin=False) -> PublicOrderView:
    order = current_domain.repository_for(Order).get(order_id)
    return build_order_view(order, resolve_role(order, actor_id, is_admin))


def _scoped_filters(actor_id, is_admin, buyer_id, seller_id, state) -> dict:
    filters = {}
    if is_admin:
        if buyer_id:
            filters["buyer_id"] = str(buyer_id)
        if seller_id:
            filters["seller_id"] = str(seller_id)
    elif seller_id and str(seller_id) == str(actor_id):
        filters["seller_id"] = str(actor_id)
    else:
        filters["buyer_id"] = str(actor_id)

    if state:
        try:
            filters["state"] = OrderState(state).value
        except ValueError:
            raise ValidationError({"state": [f"Unknown order state: {state}"]}) from None
    return filters


def list_orders(
    actor_id,
    is_admin=False,
    buyer_id=None,
    seller_id=None,
    listing_id=None,
    state=None,
    vin_last_four=None,
    sort_by="created_at",
    sort_order="desc",
    limit=None,
    cursor=None,
) -> OrderPage:
    """List orders visible to the caller, newest first by default.

    A non-admin asking for ``seller_id`` equal to themselves sees their sales;
    anything else a non-admin asks for is narrowed to their purchases.
    """
    if sort_by not in SORTABLE_FIELDS:
        raise ValidationError({"sort_by": [f"Sort field must be one of {', '.join(SORTABLE_FIELDS)}"]})
    if sort_order not in ("asc", "desc"):
        raise ValidationError({"sort_order": ["Sort order must be asc or desc"]})

    page_size = clamp_page_size(limit)
    offset = decode_cursor(cursor)

    query = current_domain.repository_for(Order)._dao.query.filter(
        **_scoped_filters(actor_id, is_admin, buyer_id, seller_id, state)
    )
    if sort_by == "total_amount":
        # Pricing is embedded, so the store cannot order by it
        orders = sorted(
            collect_all(query),
            key=lambda order: order.pricing.total_amount,
            reverse=sort_order == "desc",
        )
    else:
        orders = collect_all(query, order_by=sort_by if sort_order == "asc" else f"-{sort_by}")

    # Listing and VIN live on the embedded snapshot
    if listing_id:
        orders = [order for order in orders if str(order.listing.listing_id) == str(listing_id)]
    if vin_last_four:
        orders = [order for order in orders if order.listing.vin_last_four == vin_last_four]

    window = orders[offset : offset + page_size]
    next_offset = offset + len(window)
    return OrderPage(
        items=[build_order_view(order, resolve_role(order, actor_id, is_admin)) for order in window],
        total=len(orders),
        next_cursor=encode_cursor(next_offset) if next_offset < len(orders) else None,
    )
