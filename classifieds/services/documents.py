from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from classifieds.models.listing import Listing


@dataclass(frozen=True)
class ListingDoc:
    """Detached, read-only snapshot of a stored listing."""

    id: str
    title: str
    description: str
    price: int
    category: str
    location: str
    image_url: str
    owner_id: str
    created_at: datetime

    @classmethod
    def from_row(cls, row: Listing) -> "ListingDoc":
        return cls(
            id=row.id,
            title=row.title,
            description=row.description,
            price=int(row.price),
            category=row.category,
            location=row.location,
            image_url=row.image_url,
            owner_id=row.owner_id,
            created_at=row.created_at,
        )
