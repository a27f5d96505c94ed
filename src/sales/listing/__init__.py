"""Listing catalog factory.

Provides get_listing_catalog() / set_listing_catalog() to swap implementations.
The adapter is chosen by the LISTING_ADAPTER environment variable.
"""

import os

from sales.listing.port import ListingCatalog

_current_catalog: ListingCatalog | None = None


def get_listing_catalog() -> ListingCatalog:
    """Return the configured listing catalog (singleton). Defaults to the fake."""
    global _current_catalog
    if _current_catalog is None:
        adapter = os.environ.get("LISTING_ADAPTER", "fake")
        if adapter == "fake":
            from sales.listing.fake_adapter import FakeListingCatalog

            _current_catalog = FakeListingCatalog()
        else:
            raise ValueError(f"Unknown listing adapter: {adapter}")
    return _current_catalog


def set_listing_catalog(catalog: ListingCatalog) -> None:
    """Override the active listing catalog (useful for tests)."""
    global _current_catalog
    _current_catalog = catalog


def reset_listing_catalog() -> None:
    global _current_catalog
    _current_catalog = None
