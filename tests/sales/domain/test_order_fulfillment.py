"""Tests for inspection, delivery, notes and documents on the Order aggregate."""

from datetime import UTC, datetime, timedelta

import pytest
from protean.exceptions import ValidationError
from sales.listing.port import ListingRecord, VehicleRecord
from sales.order.events import DeliveryScheduled, OrderStateChanged
from sales.order.order import (
    DocumentType,
    Order,
    OrderState,
    TimelineEventType,
)
from sales.order.pricing import compute_price_breakdown


def _make_order(**kwargs):
    listing = ListingRecord(
        listing_id="lst-001",
        status="published",
        seller_id="seller-1",
        vehicle=VehicleRecord(vin="1HGCM82633A004352", make="Honda", model="Accord", year=2021, mileage=18500),
        list_price=47000.0,
    )
    order = Order.create(
        buyer_id="buyer-1",
        listing=listing,
        breakdown=compute_price_breakdown(45000.0, 2000.0, 47000.0),
        deposit_due_days=7,
        **kwargs,
    )
    order._events.clear()
    return order


def _event_types(order):
    return [event.event_type for event in order.timeline_events]


class TestInspection:
    def test_schedule_inspection(self):
        order = _make_order()
        order.update_status(OrderState.DEPOSIT_PAID.value, "seller-1")
        when = datetime.now(UTC) + timedelta(days=2)
        order.schedule_inspection("seller-1", when, location="Dealer lot", inspector="ACME Inspections")

        assert order.state == OrderState.INSPECTION_SCHEDULED.value
        assert order.inspection_scheduled_at == when
        assert _event_types(order)[-1] == TimelineEventType.INSPECTION_SCHEDULED.value

    def test_reschedule_inspection(self):
        order = _make_order()
        order.update_status(OrderState.DEPOSIT_PAID.value, "seller-1")
        first = datetime.now(UTC) + timedelta(days=2)
        second = first + timedelta(days=1)
        order.schedule_inspection("seller-1", first)
        order.schedule_inspection("seller-1", second)
        assert order.inspection_scheduled_at == second
        assert _event_types(order).count(TimelineEventType.INSPECTION_SCHEDULED.value) == 2

    def test_schedule_requires_deposit(self):
        order = _make_order()
        with pytest.raises(ValidationError):
            order.schedule_inspection("seller-1", datetime.now(UTC))

    def test_complete_inspection_approved_with_report(self):
        order = _make_order()
        order.update_status(OrderState.DEPOSIT_PAID.value, "seller-1")
        order.schedule_inspection("seller-1", datetime.now(UTC))
        order._events.clear()
        order.complete_inspection("seller-1", approved=True, findings="Clean", report_url="https://files/report.pdf")

        assert order.state == OrderState.INSPECTION_COMPLETED.value
        assert order.inspection_completed_at is not None
        assert _event_types(order)[-1] == TimelineEventType.INSPECTION_APPROVED.value
        assert len(order.documents) == 1
        assert order.documents[0].document_type == DocumentType.INSPECTION_REPORT.value
        assert isinstance(order._events[-1], OrderStateChanged)

    def test_complete_inspection_rejected(self):
        order = _make_order()
        order.update_status(OrderState.DEPOSIT_PAID.value, "seller-1")
        order.schedule_inspection("seller-1", datetime.now(UTC))
        order.complete_inspection("seller-1", approved=False, findings="Frame damage")
        assert _event_types(order)[-1] == TimelineEventType.INSPECTION_REJECTED.value
        assert not order.documents


class TestDelivery:
    def test_method_required_on_first_update(self):
        order = _make_order()
        with pytest.raises(ValidationError) as exc:
            order.update_delivery("buyer-1", carrier="UPS")
        assert "delivery_method" in exc.value.messages

    def test_update_without_schedule_adds_no_event(self):
        order = _make_order()
        order.update_delivery("buyer-1", method="delivery", address={"city": "Austin"})
        assert order.delivery.method == "delivery"
        assert order.delivery_address.city == "Austin"
        assert len(order.timeline_events) == 1
        assert order.version == 2
        assert order._events == []

    def test_partial_update_keeps_other_fields(self):
        order = _make_order(delivery_method="shipping", special_instructions="Leave keys with front desk")
        order.update_delivery("seller-1", carrier="UPS")
        order.update_delivery("seller-1", tracking_number="1Z999")
        assert order.delivery.method == "shipping"
        assert order.delivery.carrier == "UPS"
        assert order.delivery.tracking_number == "1Z999"
        assert order.delivery.special_instructions == "Leave keys with front desk"

    def test_address_merges(self):
        order = _make_order()
        order.update_delivery("buyer-1", method="delivery", address={"street": "1 Main St", "city": "Austin"})
        order.update_delivery("buyer-1", address={"postal_code": "73301", "city": None})
        assert order.delivery_address.street == "1 Main St"
        assert order.delivery_address.city == "Austin"
        assert order.delivery_address.postal_code == "73301"

    def test_scheduled_date_logged_and_raised(self):
        order = _make_order()
        when = datetime.now(UTC) + timedelta(days=10)
        order.update_delivery("seller-1", method="delivery", scheduled_date=when, carrier="Carvana")

        assert order.delivery_scheduled_at == when
        assert _event_types(order)[-1] == TimelineEventType.DELIVERY_SCHEDULED.value
        assert len(order._events) == 1
        event = order._events[0]
        assert isinstance(event, DeliveryScheduled)
        assert event.method == "delivery"

    def test_same_update_twice_changes_fields_once(self):
        order = _make_order()
        order.update_delivery("buyer-1", method="pickup", carrier="Self")
        snapshot = order.delivery.to_dict()
        order.update_delivery("buyer-1", method="pickup", carrier="Self")
        assert order.delivery.to_dict() == snapshot
        assert len(order.timeline_events) == 1

    def test_terminal_order_rejects_delivery_changes(self):
        order = _make_order()
        order.cancel("buyer-1", "Changed my mind")
        with pytest.raises(ValidationError):
            order.update_delivery("buyer-1", method="pickup")


class TestNotesAndDocuments:
    def test_add_note(self):
        order = _make_order()
        note = order.add_note("seller-1", "Title is in the mail", author_name="Dealer", is_internal=True)
        assert note.is_internal is True
        assert len(order.notes) == 1
        assert order.version == 2
        assert len(order.timeline_events) == 1

    def test_empty_note_rejected(self):
        order = _make_order()
        with pytest.raises(ValidationError) as exc:
            order.add_note("seller-1", "   ")
        assert "content" in exc.value.messages
        assert order.version == 1

    def test_add_document(self):
        order = _make_order()
        document = order.add_document("seller-1", "bill_of_sale", "Bill of sale", "https://files/bos.pdf")
        assert document.document_type == DocumentType.BILL_OF_SALE.value
        assert document.uploaded_by == "seller-1"
        assert len(order.documents) == 1
        assert order.version == 2

    def test_unknown_document_type_rejected(self):
        order = _make_order()
        with pytest.raises(ValidationError) as exc:
            order.add_document("seller-1", "photo", "Photo", "https://files/photo.jpg")
        assert "document_type" in exc.value.messages
