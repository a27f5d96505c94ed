"""Application tests for CreateOrder."""

import json

import pytest
from protean import current_domain
from protean.exceptions import ObjectNotFoundError, ValidationError
from sales.order.creation import CreateOrder
from sales.order.order import Order, OrderState
from sales.order.pricing import PricingRates, set_pricing_rates
from sales.order.views import PublicOrderView


def _create_order(**overrides):
    params = {
        "listing_id": "lst-001",
        "buyer_id": "buyer-1",
        "agreed_price": 45000.0,
        "deposit_amount": 2000.0,
    }
    params.update(overrides)
    return current_domain.process(CreateOrder(**params), asynchronous=False)


class TestCreateOrder:
    def test_persists_pending_order(self):
        view = _create_order()
        order = current_domain.repository_for(Order).get(view.id)
        assert order.state == OrderState.PENDING_DEPOSIT.value
        assert order.buyer_id == "buyer-1"
        assert order.seller_id == "seller-1"
        assert order.version == 1

    def test_returns_buyer_view(self):
        view = _create_order()
        assert type(view) is PublicOrderView
        assert view.listing.vehicle.vin_last_four == "4352"
        assert view.pricing.total_amount == 49725.0
        assert view.pricing.balance_amount == 47725.0
        assert len(view.timeline.events) == 1

    def test_snapshot_taken_once(self, catalog):
        view = _create_order()
        assert catalog.lookups == ["lst-001"]
        current_domain.repository_for(Order).get(view.id)
        assert catalog.lookups == ["lst-001"]

    def test_snapshot_survives_listing_changes(self, catalog, publish_listing):
        view = _create_order()
        publish_listing("lst-001", vin="5YJSA1E26HF000001", list_price=1.0)
        order = current_domain.repository_for(Order).get(view.id)
        assert order.listing.vin == "1HGCM82633A004352"
        assert order.pricing.list_price == 47000.0

    def test_with_delivery_and_note(self):
        view = _create_order(
            delivery_method="delivery",
            delivery_address=json.dumps({"street": "1 Main St", "city": "Austin", "state": "TX"}),
            special_instructions="Gate code 1234",
            notes="Please detail the car",
        )
        order = current_domain.repository_for(Order).get(view.id)
        assert order.delivery.method == "delivery"
        assert order.delivery_address.city == "Austin"
        assert len(order.notes) == 1
        assert view.notes[0].content == "Please detail the car"

    def test_uses_configured_rates(self):
        set_pricing_rates(PricingRates(tax_rate=0.0, platform_fee_rate=0.0, deposit_due_days=3))
        view = _create_order()
        assert view.pricing.total_amount == 45000.0
        assert view.pricing.balance_amount == 43000.0


class TestCreateOrderRejections:
    def test_unknown_listing(self):
        with pytest.raises(ObjectNotFoundError):
            _create_order(listing_id="lst-missing")

    def test_unpublished_listing(self, publish_listing):
        publish_listing("lst-draft", status="draft")
        with pytest.raises(ValidationError) as exc:
            _create_order(listing_id="lst-draft")
        assert "listing_id" in exc.value.messages

    def test_seller_cannot_buy_own_listing(self):
        with pytest.raises(ValidationError) as exc:
            _create_order(buyer_id="seller-1")
        assert "buyer_id" in exc.value.messages

    def test_deposit_above_total(self):
        with pytest.raises(ValidationError):
            _create_order(deposit_amount=60000.0)

    def test_nothing_persisted_on_rejection(self):
        with pytest.raises(ValidationError):
            _create_order(agreed_price=0.0)
        assert current_domain.repository_for(Order)._dao.query.all().total == 0
