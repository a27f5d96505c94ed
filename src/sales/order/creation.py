"""Order creation: command and handler.

The listing is looked up exactly once, through the listing catalog port,
and its vehicle details are frozen onto the order.
"""

import json

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.fields import Float, Identifier, String, Text
from protean.utils.globals import current_domain

from sales.domain import sales
from sales.listing import get_listing_catalog
from sales.order.access import ViewerRole
from sales.order.order import Order
from sales.order.pricing import compute_price_breakdown, get_pricing_rates
from sales.order.views import build_order_view

logger = structlog.get_logger(__name__)


@sales.command(part_of="Order")
class CreateOrder:
    listing_id = Identifier(required=True)
    buyer_id = Identifier(required=True)
    agreed_price = Float(required=True)
    deposit_amount = Float(required=True)
    delivery_method = String(max_length=20)
    delivery_address = Text()  # JSON: street, city, state, postal_code, country
    special_instructions = String(max_length=1000)
    notes = Text()


@sales.command_handler(part_of=Order)
class CreateOrderHandler:
    @handle(CreateOrder)
    def create_order(self, command):
        listing = get_listing_catalog().find_by_id(str(command.listing_id))
        if listing is None:
            raise ObjectNotFoundError({"listing_id": [f"Listing {command.listing_id} not found"]})
        if not listing.is_published:
            raise ValidationError({"listing_id": ["Listing is not available for purchase"]})
        if str(listing.seller_id) == str(command.buyer_id):
            raise ValidationError({"buyer_id": ["Sellers cannot purchase their own listing"]})

        rates = get_pricing_rates()
        breakdown = compute_price_breakdown(
            agreed_price=command.agreed_price,
            deposit_amount=command.deposit_amount,
            list_price=listing.list_price,
            rates=rates,
        )

        order = Order.create(
            buyer_id=command.buyer_id,
            listing=listing,
            breakdown=breakdown,
            deposit_due_days=rates.deposit_due_days,
            delivery_method=command.delivery_method,
            delivery_address=json.loads(command.delivery_address) if command.delivery_address else None,
            special_instructions=command.special_instructions,
            note=command.notes,
        )
        current_domain.repository_for(Order).add(order)

        logger.info(
            "Order created",
            order_id=str(order.id),
            listing_id=str(listing.listing_id),
            buyer_id=str(command.buyer_id),
            seller_id=str(listing.seller_id),
            total_amount=breakdown.total_amount,
        )
        return build_order_view(order, ViewerRole.BUYER)
