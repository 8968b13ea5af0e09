from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from classifieds.services.documents import ListingDoc


@dataclass(frozen=True)
class AnnotatedListing:
    listing: ListingDoc
    is_saved: bool
    is_owner: bool


@dataclass(frozen=True)
class Dashboard:
    my_ads: list[AnnotatedListing] = field(default_factory=list)
    favorites: list[AnnotatedListing] = field(default_factory=list)


def is_owner(listing: ListingDoc, identity_id: str | None) -> bool:
    return identity_id is not None and listing.owner_id == identity_id


def annotate(
    listings: Iterable[ListingDoc],
    favorites: frozenset[str] | set[str],
    identity_id: str | None,
) -> list[AnnotatedListing]:
    # driven by listings: favorite ids without a listing simply produce nothing
    return [
        AnnotatedListing(listing=item, is_saved=item.id in favorites, is_owner=is_owner(item, identity_id))
        for item in listings
    ]


def build_dashboard(view: Iterable[AnnotatedListing]) -> Dashboard:
    items = list(view)
    return Dashboard(
        my_ads=[a for a in items if a.is_owner],
        favorites=[a for a in items if a.is_saved],
    )
