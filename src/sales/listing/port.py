"""Listing lookup port (abstract interface).

Orders snapshot a listing exactly once, at creation time. The live listing
belongs to the Listings collaborator; this port is the only way the Sales
domain reads it.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

PUBLISHED = "published"


@dataclass(frozen=True)
class VehicleRecord:
    """Vehicle identity as published on the listing."""

    vin: str
    make: str
    model: str
    year: int
    mileage: int
    exterior_color: str | None = None
    interior_color: str | None = None
    trim: str | None = None


@dataclass(frozen=True)
class ListingRecord:
    """The subset of a listing an order needs."""

    listing_id: str
    status: str
    seller_id: str
    vehicle: VehicleRecord
    list_price: float

    @property
    def is_published(self) -> bool:
        return self.status == PUBLISHED

    @property
    def title(self) -> str:
        title = f"{self.vehicle.year} {self.vehicle.make} {self.vehicle.model}"
        if self.vehicle.trim:
            title = f"{title} {self.vehicle.trim}"
        return title


class ListingCatalog(ABC):
    """Abstract listing lookup."""

    @abstractmethod
    def find_by_id(self, listing_id: str) -> ListingRecord | None:
        """Return the listing, or None when it does not exist."""
        ...
