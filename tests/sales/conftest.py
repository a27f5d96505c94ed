import pytest
from protean.integrations.pytest import DomainFixture
from sales.gateway import set_gateway
from sales.gateway.fake_adapter import FakeGateway
from sales.listing import set_listing_catalog
from sales.listing.fake_adapter import FakeListingCatalog
from sales.listing.port import PUBLISHED, ListingRecord, VehicleRecord
from sales.notifier import set_notifier
from sales.notifier.fake_adapter import FakeNotifier
from sales.order.pricing import reset_pricing_rates

SELLER = "seller-1"
LISTING_ID = "lst-001"
VIN = "1HGCM82633A004352"


@pytest.fixture(scope="session")
def sales_bed():
    from sales.domain import sales

    bed = DomainFixture(sales)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(sales_bed):
    with sales_bed.domain_context():
        yield


@pytest.fixture(autouse=True)
def catalog():
    """Fresh listing catalog holding one published listing."""
    catalog = FakeListingCatalog()
    catalog.add(make_listing())
    set_listing_catalog(catalog)
    return catalog


@pytest.fixture(autouse=True)
def gateway():
    gateway = FakeGateway()
    set_gateway(gateway)
    return gateway


@pytest.fixture(autouse=True)
def notifier():
    notifier = FakeNotifier()
    set_notifier(notifier)
    return notifier


@pytest.fixture(autouse=True)
def _pricing_rates():
    reset_pricing_rates()
    yield
    reset_pricing_rates()


def make_listing(listing_id=LISTING_ID, seller_id=SELLER, status=PUBLISHED, vin=VIN, list_price=47000.0):
    return ListingRecord(
        listing_id=listing_id,
        status=status,
        seller_id=seller_id,
        vehicle=VehicleRecord(
            vin=vin,
            make="Honda",
            model="Accord",
            year=2021,
            mileage=18500,
            exterior_color="Blue",
            interior_color="Black",
            trim="EX-L",
        ),
        list_price=list_price,
    )


@pytest.fixture()
def publish_listing(catalog):
    """Register another listing: ``publish_listing("lst-002", seller_id="seller-2")``."""

    def _publish(listing_id, **overrides):
        listing = make_listing(listing_id=listing_id, **overrides)
        catalog.add(listing)
        return listing

    return _publish
