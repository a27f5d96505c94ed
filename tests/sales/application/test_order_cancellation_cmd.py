"""Application tests for CancelOrder and the refund it leaves for the dispatcher."""

import pytest
from protean import current_domain
from protean.exceptions import ValidationError
from sales.exceptions import OrderAccessDenied, VersionConflict
from sales.ledger.refunds import pending_outbox_refunds
from sales.ledger.transaction import OrderTransaction, TransactionState, TransactionType
from sales.order.cancellation import CancelOrder
from sales.order.creation import CreateOrder
from sales.order.order import Order, OrderState, TimelineEventType
from sales.order.status import UpdateOrderStatus


def _create_order(deposit_paid=False):
    order_id = current_domain.process(
        CreateOrder(listing_id="lst-001", buyer_id="buyer-1", agreed_price=45000.0, deposit_amount=2000.0),
        asynchronous=False,
    ).id
    if deposit_paid:
        current_domain.process(
            UpdateOrderStatus(order_id=order_id, actor_id="seller-1", state=OrderState.DEPOSIT_PAID.value),
            asynchronous=False,
        )
    return order_id


def _cancel(order_id, actor_id="buyer-1", **kwargs):
    kwargs.setdefault("reason", "Changed my mind")
    return current_domain.process(CancelOrder(order_id=order_id, actor_id=actor_id, **kwargs), asynchronous=False)


def _refunds(order_id):
    return (
        current_domain.repository_for(OrderTransaction)
        ._dao.query.filter(order_id=str(order_id), transaction_type=TransactionType.REFUND.value)
        .all()
        .items
    )


class TestCancelOrder:
    def test_buyer_cancels_pending_order(self):
        order_id = _create_order()
        view = _cancel(order_id)
        assert view.status.state == OrderState.CANCELED.value
        assert view.status.canceled_by == "buyer-1"

        order = current_domain.repository_for(Order).get(order_id)
        assert order.state == OrderState.CANCELED.value
        assert order.canceled_at is not None
        assert TimelineEventType.CANCELED.value in [event.event_type for event in order.timeline_events]
        assert _refunds(order_id) == []

    def test_seller_cancels(self):
        order_id = _create_order()
        _cancel(order_id, actor_id="seller-1", reason="Sold elsewhere")
        assert current_domain.repository_for(Order).get(order_id).canceled_by == "seller-1"

    def test_admin_cancels(self):
        order_id = _create_order()
        _cancel(order_id, actor_id="admin-1", is_admin=True, reason="Fraud review")
        assert current_domain.repository_for(Order).get(order_id).state == OrderState.CANCELED.value

    def test_stranger_denied(self):
        order_id = _create_order()
        with pytest.raises(OrderAccessDenied):
            _cancel(order_id, actor_id="stranger-1")

    def test_cancel_twice_rejected(self):
        order_id = _create_order()
        _cancel(order_id)
        with pytest.raises(ValidationError):
            _cancel(order_id)

    def test_stale_version_rejected(self):
        order_id = _create_order(deposit_paid=True)
        with pytest.raises(VersionConflict):
            _cancel(order_id, expected_version=1)
        assert current_domain.repository_for(Order).get(order_id).state == OrderState.DEPOSIT_PAID.value


class TestCancelWithRefund:
    def test_refund_recorded_with_order(self):
        order_id = _create_order(deposit_paid=True)
        view = _cancel(order_id, actor_id="seller-1", reason="Title problem", issue_refund=True)
        assert view.status.refund_amount == 2000.0
        assert view.status.refunded_at is not None

        refunds = _refunds(order_id)
        assert len(refunds) == 1
        refund = refunds[0]
        assert refund.amount == 2000.0
        assert refund.state == TransactionState.PENDING.value
        assert refund.idempotency_key == f"refund:{order_id}"
        assert refund.is_outbox_refund

    def test_refund_waits_for_dispatcher(self):
        order_id = _create_order(deposit_paid=True)
        _cancel(order_id, issue_refund=True)
        assert [str(refund.order_id) for refund in pending_outbox_refunds()] == [str(order_id)]

    def test_second_cancel_writes_no_second_refund(self):
        order_id = _create_order(deposit_paid=True)
        _cancel(order_id, actor_id="seller-1", reason="Title problem", issue_refund=True)
        with pytest.raises(ValidationError):
            _cancel(order_id, actor_id="admin-1", is_admin=True, reason="Again", issue_refund=True)

        assert len(_refunds(order_id)) == 1
        order = current_domain.repository_for(Order).get(order_id)
        assert order.cancel_reason == "Title problem"
        assert order.canceled_by == "seller-1"

    def test_no_refund_before_deposit(self):
        order_id = _create_order()
        view = _cancel(order_id, issue_refund=True)
        assert view.status.refund_amount is None
        assert _refunds(order_id) == []

    def test_excessive_refund_rejected_atomically(self):
        order_id = _create_order(deposit_paid=True)
        with pytest.raises(ValidationError):
            _cancel(order_id, issue_refund=True, refund_amount=5000.0)
        assert current_domain.repository_for(Order).get(order_id).state == OrderState.DEPOSIT_PAID.value
        assert _refunds(order_id) == []
