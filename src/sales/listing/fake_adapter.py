"""In-memory listing catalog for development and testing."""

from sales.listing.port import ListingCatalog, ListingRecord


class FakeListingCatalog(ListingCatalog):
    """Dictionary-backed catalog. Tests register listings with ``add()``."""

    def __init__(self) -> None:
        self.listings: dict[str, ListingRecord] = {}
        self.lookups: list[str] = []

    def add(self, listing: ListingRecord) -> None:
        self.listings[listing.listing_id] = listing

    def clear(self) -> None:
        self.listings.clear()
        self.lookups.clear()

    def find_by_id(self, listing_id: str) -> ListingRecord | None:
        self.lookups.append(listing_id)
        return self.listings.get(listing_id)
