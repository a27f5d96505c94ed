"""Who may do what to an order.

Admins can do anything. Otherwise the caller must be the order's buyer or
seller; the seller is checked first, so a user who somehow holds both roles
is treated as the seller.
"""

from enum import Enum

from sales.exceptions import OrderAccessDenied


class ViewerRole(Enum):
    BUYER = "buyer"
    SELLER = "seller"
    ADMIN = "admin"


def resolve_role(order, actor_id, is_admin=False) -> ViewerRole:
    if is_admin:
        return ViewerRole.ADMIN
    if actor_id and str(actor_id) == str(order.seller_id):
        return ViewerRole.SELLER
    if actor_id and str(actor_id) == str(order.buyer_id):
        return ViewerRole.BUYER
    raise OrderAccessDenied()


def assert_can_manage(order, actor_id, is_admin=False) -> ViewerRole:
    """Status changes and inspections belong to the seller (or an admin)."""
    role = resolve_role(order, actor_id, is_admin)
    if role == ViewerRole.BUYER:
        raise OrderAccessDenied("Only the seller or an admin can perform this action")
    return role


def assert_can_add_note(order, actor_id, is_admin=False, is_internal=False) -> ViewerRole:
    role = resolve_role(order, actor_id, is_admin)
    if is_internal and role == ViewerRole.BUYER:
        raise OrderAccessDenied("Buyers cannot add internal notes")
    return role
