"""Tests for Order cancellation, refunds and deposit expiry."""

from datetime import UTC, datetime, timedelta

import pytest
from protean.exceptions import ValidationError
from sales.listing.port import ListingRecord, VehicleRecord
from sales.order.events import OrderCanceled
from sales.order.order import (
    DEPOSIT_EXPIRED_REASON,
    SYSTEM_ACTOR,
    Order,
    OrderState,
    TimelineEventType,
)
from sales.order.pricing import compute_price_breakdown


def _make_order():
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
    )
    order._events.clear()
    return order


def _paid_deposit_order():
    order = _make_order()
    order.update_status(OrderState.DEPOSIT_PAID.value, "seller-1")
    order._events.clear()
    return order


class TestCancel:
    def test_cancel_pending_order(self):
        order = _make_order()
        refund = order.cancel("buyer-1", "Changed my mind")
        assert refund is None
        assert order.state == OrderState.CANCELED.value
        assert order.canceled_by == "buyer-1"
        assert order.cancel_reason == "Changed my mind"
        assert order.canceled_at is not None
        assert order.version == 2

    def test_cancel_appends_canceled_event(self):
        order = _make_order()
        order.cancel("buyer-1", "Changed my mind")
        event = order.timeline_events[-1]
        assert event.event_type == TimelineEventType.CANCELED.value
        assert len(order.timeline_events) == 2

    def test_cancel_raises_order_canceled(self):
        order = _make_order()
        order.cancel("seller-1", "Vehicle sold elsewhere")
        assert isinstance(order._events[-1], OrderCanceled)
        assert order._events[-1].previous_state == OrderState.PENDING_DEPOSIT.value

    def test_refund_ignored_before_deposit(self):
        order = _make_order()
        refund = order.cancel("buyer-1", "Changed my mind", issue_refund=True)
        assert refund is None
        assert order.refund_amount is None
        assert order.refunded_at is None

    def test_refund_defaults_to_deposit(self):
        order = _paid_deposit_order()
        refund = order.cancel("seller-1", "Title issue", issue_refund=True)
        assert refund == 2000.0
        assert order.refund_amount == 2000.0
        assert order.refunded_at is not None

    def test_explicit_partial_refund(self):
        order = _paid_deposit_order()
        refund = order.cancel("seller-1", "Title issue", issue_refund=True, refund_amount=1500.0)
        assert refund == 1500.0

    def test_refund_cannot_exceed_collected(self):
        order = _paid_deposit_order()
        with pytest.raises(ValidationError) as exc:
            order.cancel("seller-1", "Title issue", issue_refund=True, refund_amount=2500.0)
        assert "refund_amount" in exc.value.messages
        assert order.state == OrderState.DEPOSIT_PAID.value

    def test_refund_up_to_full_payment(self):
        order = _paid_deposit_order()
        for state in ("pending_payment", "payment_completed"):
            order.update_status(state, "seller-1")
        refund = order.cancel("admin-1", "Dispute settled", issue_refund=True, refund_amount=49725.0)
        assert refund == 49725.0

    def test_refund_not_flagged_without_issue_refund(self):
        order = _paid_deposit_order()
        assert order.cancel("buyer-1", "Changed my mind") is None
        assert order.refund_amount is None

    def test_cannot_cancel_twice(self):
        order = _make_order()
        order.cancel("buyer-1", "Changed my mind")
        with pytest.raises(ValidationError) as exc:
            order.cancel("buyer-1", "Again")
        assert exc.value.messages["state"] == ["Order is already canceled"]

    def test_cannot_cancel_completed(self):
        order = _paid_deposit_order()
        for state in (
            "pending_payment",
            "payment_completed",
            "ready_for_delivery",
            "delivered",
            "completed",
        ):
            order.update_status(state, "seller-1")
        with pytest.raises(ValidationError) as exc:
            order.cancel("seller-1", "Too late")
        assert exc.value.messages["state"] == ["Cannot cancel a completed order"]


class TestDepositExpiry:
    def test_not_overdue_before_due_date(self):
        order = _make_order()
        assert not order.is_deposit_overdue(datetime.now(UTC))

    def test_overdue_after_due_date(self):
        order = _make_order()
        assert order.is_deposit_overdue(datetime.now(UTC) + timedelta(days=8))

    def test_paid_orders_never_overdue(self):
        order = _paid_deposit_order()
        assert not order.is_deposit_overdue(datetime.now(UTC) + timedelta(days=30))

    def test_naive_as_of_treated_as_utc(self):
        order = _make_order()
        assert order.is_deposit_overdue(datetime.now(UTC).replace(tzinfo=None) + timedelta(days=8))

    def test_expire_cancels_as_system(self):
        order = _make_order()
        order.expire(datetime.now(UTC) + timedelta(days=8))
        assert order.state == OrderState.CANCELED.value
        assert order.canceled_by == SYSTEM_ACTOR
        assert order.cancel_reason == DEPOSIT_EXPIRED_REASON
        assert order.timeline_events[-1].event_type == TimelineEventType.ORDER_EXPIRED.value
        assert order.version == 2

    def test_expire_raises_order_canceled(self):
        order = _make_order()
        order.expire(datetime.now(UTC) + timedelta(days=8))
        event = order._events[-1]
        assert isinstance(event, OrderCanceled)
        assert event.canceled_by == SYSTEM_ACTOR

    def test_expire_before_due_rejected(self):
        order = _make_order()
        with pytest.raises(ValidationError):
            order.expire(datetime.now(UTC))
        assert order.state == OrderState.PENDING_DEPOSIT.value
