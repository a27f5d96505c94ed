"""Shared BDD fixtures and step definitions for the order lifecycle."""

import pytest
from protean.exceptions import ValidationError
from pytest_bdd import given, parsers, then
from sales.listing.port import ListingRecord, VehicleRecord
from sales.order.order import Order
from sales.order.pricing import compute_price_breakdown

_TO_COMPLETED = [
    "deposit_paid",
    "pending_payment",
    "payment_completed",
    "ready_for_delivery",
    "delivered",
    "completed",
]


def _new_order(agreed_price=45000.0, deposit_amount=2000.0):
    listing = ListingRecord(
        listing_id="lst-bdd",
        status="published",
        seller_id="seller-1",
        vehicle=VehicleRecord(vin="1HGCM82633A004352", make="Honda", model="Accord", year=2021, mileage=18500),
        list_price=47000.0,
    )
    order = Order.create(
        buyer_id="buyer-1",
        listing=listing,
        breakdown=compute_price_breakdown(agreed_price, deposit_amount, 47000.0),
        deposit_due_days=7,
    )
    order._events.clear()
    return order


@pytest.fixture()
def error():
    """Container for captured validation errors."""
    return {"exc": None}


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(
    parsers.cfparse("a new order for an agreed price of {agreed_price:g} with a {deposit_amount:g} deposit"),
    target_fixture="order",
)
def new_order(agreed_price, deposit_amount):
    return _new_order(float(agreed_price), float(deposit_amount))


@given("an order whose deposit is paid", target_fixture="order")
def order_with_paid_deposit():
    order = _new_order()
    order.update_status("deposit_paid", "seller-1")
    order._events.clear()
    return order


@given("a completed order", target_fixture="order")
def completed_order():
    order = _new_order()
    for state in _TO_COMPLETED:
        order.update_status(state, "seller-1")
    order._events.clear()
    return order


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the order state is "{state}"'))
def order_state_is(order, state):
    assert order.state == state


@then(parsers.cfparse("the order total is {amount:g}"))
def order_total_is(order, amount):
    assert order.pricing.total_amount == pytest.approx(amount)


@then(parsers.cfparse("the order balance is {amount:g}"))
def order_balance_is(order, amount):
    assert order.pricing.balance_amount == pytest.approx(amount)


@then(parsers.cfparse("the order version is {version:d}"))
def order_version_is(order, version):
    assert order.version == version


@then(parsers.cfparse("the timeline holds {count:d} event"))
def timeline_holds(order, count):
    assert len(order.timeline_events) == count


@then(parsers.cfparse('the last timeline event is "{event_type}"'))
def last_timeline_event_is(order, event_type):
    assert order.timeline_events[-1].event_type == event_type


@then(parsers.cfparse('the action fails with "{message}"'))
def action_fails_with(error, message):
    assert isinstance(error["exc"], ValidationError)
    assert message in str(error["exc"].messages)
