"""Role-shaped read models of an Order.

Buyers get ``PublicOrderView``: the VIN is reduced to its last four
characters and internal notes are dropped. Sellers and admins get
``InternalOrderView`` with the full VIN and every note. Both are built by
``build_order_view`` from the aggregate; nothing here touches storage.
"""

import json
from datetime import UTC, datetime

from pydantic import BaseModel

from sales.order.access import ViewerRole


class VehicleView(BaseModel):
    vin_last_four: str
    make: str
    model: str
    year: int
    trim: str | None = None
    mileage: int | None = None
    exterior_color: str | None = None
    interior_color: str | None = None


class InternalVehicleView(VehicleView):
    vin: str


class ListingView(BaseModel):
    listing_id: str
    title: str
    vehicle: VehicleView


class InternalListingView(ListingView):
    vehicle: InternalVehicleView


class PricingView(BaseModel):
    list_price: float
    agreed_price: float
    deposit_amount: float
    deposit_paid_at: datetime | None = None
    balance_amount: float
    balance_paid_at: datetime | None = None
    tax_amount: float
    fee_amount: float
    total_amount: float
    currency: str


class StatusView(BaseModel):
    state: str
    substatus: str | None = None
    canceled_by: str | None = None
    cancel_reason: str | None = None
    refund_amount: float | None = None
    refunded_at: datetime | None = None


class TimelineEventView(BaseModel):
    id: str
    event_type: str
    description: str | None = None
    performed_by: str
    metadata: dict
    occurred_at: datetime


class TimelineView(BaseModel):
    created_at: datetime | None = None
    deposit_due_at: datetime | None = None
    inspection_scheduled_at: datetime | None = None
    inspection_completed_at: datetime | None = None
    payment_due_at: datetime | None = None
    delivery_scheduled_at: datetime | None = None
    delivered_at: datetime | None = None
    completed_at: datetime | None = None
    canceled_at: datetime | None = None
    events: list[TimelineEventView]


class DeliveryAddressView(BaseModel):
    street: str | None = None
    city: str | None = None
    state: str | None = None
    postal_code: str | None = None
    country: str | None = None


class DeliveryView(BaseModel):
    method: str
    address: DeliveryAddressView | None = None
    scheduled_date: datetime | None = None
    estimated_arrival: datetime | None = None
    tracking_number: str | None = None
    carrier: str | None = None
    special_instructions: str | None = None


class DocumentView(BaseModel):
    id: str
    document_type: str
    name: str
    url: str
    uploaded_by: str
    uploaded_at: datetime


class NoteView(BaseModel):
    id: str
    content: str
    author_id: str
    author_name: str | None = None
    is_internal: bool
    created_at: datetime


class AuditView(BaseModel):
    created_at: datetime | None = None
    created_by: str | None = None
    updated_at: datetime | None = None
    updated_by: str | None = None
    version: int


class PublicOrderView(BaseModel):
    id: str
    buyer_id: str
    seller_id: str
    listing: ListingView
    pricing: PricingView
    status: StatusView
    timeline: TimelineView
    delivery: DeliveryView | None = None
    documents: list[DocumentView]
    notes: list[NoteView]
    audit: AuditView


class InternalOrderView(PublicOrderView):
    listing: InternalListingView


def _sort_key(value):
    if value is None:
        return datetime.min.replace(tzinfo=UTC)
    return value if value.tzinfo else value.replace(tzinfo=UTC)


def _vehicle(listing, internal):
    vehicle = {
        "vin_last_four": listing.vin_last_four,
        "make": listing.make,
        "model": listing.model,
        "year": listing.year,
        "trim": listing.trim,
        "mileage": listing.mileage,
        "exterior_color": listing.exterior_color,
        "interior_color": listing.interior_color,
    }
    if internal:
        vehicle["vin"] = listing.vin
    return vehicle


def _timeline_events(order):
    events = sorted(order.timeline_events or [], key=lambda event: _sort_key(event.occurred_at))
    return [
        {
            "id": str(event.id),
            "event_type": event.event_type,
            "description": event.description,
            "performed_by": event.performed_by,
            "metadata": json.loads(event.event_metadata) if event.event_metadata else {},
            "occurred_at": event.occurred_at,
        }
        for event in events
    ]


def _delivery(order):
    if order.delivery is None:
        return None
    delivery = order.delivery
    return {
        "method": delivery.method,
        "address": order.delivery_address.to_dict() if order.delivery_address else None,
        "scheduled_date": delivery.scheduled_date,
        "estimated_arrival": delivery.estimated_arrival,
        "tracking_number": delivery.tracking_number,
        "carrier": delivery.carrier,
        "special_instructions": delivery.special_instructions,
    }


def build_order_view(order, role: ViewerRole) -> PublicOrderView:
    """Project an Order into the view its viewer is entitled to."""
    internal = role in (ViewerRole.SELLER, ViewerRole.ADMIN)
    pricing = order.pricing

    notes = sorted(order.notes or [], key=lambda note: _sort_key(note.created_at))
    if not internal:
        notes = [note for note in notes if not note.is_internal]
    documents = sorted(order.documents or [], key=lambda document: _sort_key(document.uploaded_at))

    data = {
        "id": str(order.id),
        "buyer_id": str(order.buyer_id),
        "seller_id": str(order.seller_id),
        "listing": {
            "listing_id": str(order.listing.listing_id),
            "title": order.listing.title,
            "vehicle": _vehicle(order.listing, internal),
        },
        "pricing": {
            "list_price": pricing.list_price,
            "agreed_price": pricing.agreed_price,
            "deposit_amount": pricing.deposit_amount,
            "deposit_paid_at": order.deposit_paid_at,
            "balance_amount": pricing.balance_amount,
            "balance_paid_at": order.balance_paid_at,
            "tax_amount": pricing.tax_amount,
            "fee_amount": pricing.fee_amount,
            "total_amount": pricing.total_amount,
            "currency": pricing.currency,
        },
        "status": {
            "state": order.state,
            "substatus": order.substatus,
            "canceled_by": order.canceled_by,
            "cancel_reason": order.cancel_reason,
            "refund_amount": order.refund_amount,
            "refunded_at": order.refunded_at,
        },
        "timeline": {
            "created_at": order.created_at,
            "deposit_due_at": order.deposit_due_at,
            "inspection_scheduled_at": order.inspection_scheduled_at,
            "inspection_completed_at": order.inspection_completed_at,
            "payment_due_at": order.payment_due_at,
            "delivery_scheduled_at": order.delivery_scheduled_at,
            "delivered_at": order.delivered_at,
            "completed_at": order.completed_at,
            "canceled_at": order.canceled_at,
            "events": _timeline_events(order),
        },
        "delivery": _delivery(order),
        "documents": [
            {
                "id": str(document.id),
                "document_type": document.document_type,
                "name": document.name,
                "url": document.url,
                "uploaded_by": str(document.uploaded_by),
                "uploaded_at": document.uploaded_at,
            }
            for document in documents
        ],
        "notes": [
            {
                "id": str(note.id),
                "content": note.content,
                "author_id": str(note.author_id),
                "author_name": note.author_name,
                "is_internal": bool(note.is_internal),
                "created_at": note.created_at,
            }
            for note in notes
        ],
        "audit": {
            "created_at": order.created_at,
            "created_by": order.created_by,
            "updated_at": order.updated_at,
            "updated_by": order.updated_by,
            "version": order.version,
        },
    }

    view_cls = InternalOrderView if internal else PublicOrderView
    return view_cls.model_validate(data)
