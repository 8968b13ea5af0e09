"""
Listing Query Engine.

Filtering happens in two named stages. The coarse stage (category equality and a
single price lower bound) is what the store can evaluate and watch. The fine stage
(free-text search and the price upper bound) cannot be pushed to the store alongside
the first range predicate, so it runs here over every coarse snapshot, followed by a
full re-sort newest first.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Callable, Iterable

from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from classifieds.core.constants import ALL_CATEGORIES, MAX_PRICE
from classifieds.models.listing import Listing
from classifieds.services.documents import ListingDoc
from classifieds.store.base import Store
from classifieds.store.changes import LISTINGS_TOPIC
from classifieds.store.live import LiveQuery


log = logging.getLogger(__name__)


class FilterSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    search: str | None = None
    category: str | None = None
    min_price: int | None = Field(default=None, ge=0, le=MAX_PRICE)
    max_price: int | None = Field(default=None, ge=0, le=MAX_PRICE)

    @field_validator("search", "category", mode="before")
    @classmethod
    def blank_is_absent(cls, v):
        if isinstance(v, str) and v == "":
            return None
        return v

    @field_validator("category")
    @classmethod
    def sentinel_is_absent(cls, v: str | None) -> str | None:
        if v == ALL_CATEGORIES:
            return None
        return v

    @field_validator("min_price", "max_price", mode="before")
    @classmethod
    def parse_form_number(cls, v):
        # renderers send raw form values; "1500" and "1500.75" both mean 1500
        if isinstance(v, str):
            v = v.strip()
            if not v:
                return None
            try:
                return int(v)
            except ValueError:
                f = float(v)
            # "inf" and "1e400" parse as floats but have no integer value
            if not math.isfinite(f):
                raise ValueError("price bound must be a finite number")
            return int(f)
        return v

    def coarse(self) -> "CoarsePredicate":
        return CoarsePredicate(category=self.category, min_price=self.min_price)

    def fine(self) -> "FinePredicate":
        return FinePredicate(search=self.search, max_price=self.max_price)


@dataclass(frozen=True)
class CoarsePredicate:
    category: str | None = None
    min_price: int | None = None

    def statement(self, app_id: str) -> Select:
        stmt = select(Listing).where(Listing.app_id == app_id)
        if self.category is not None:
            stmt = stmt.where(Listing.category == self.category)
        if self.min_price is not None:
            stmt = stmt.where(Listing.price >= self.min_price)
        return stmt

    async def fetch(self, db: AsyncSession, app_id: str) -> list[ListingDoc]:
        rows = (await db.execute(self.statement(app_id))).scalars().all()
        return [ListingDoc.from_row(r) for r in rows]


@dataclass(frozen=True)
class FinePredicate:
    search: str | None = None
    max_price: int | None = None

    def matches(self, listing: ListingDoc) -> bool:
        if self.max_price is not None and listing.price > self.max_price:
            return False
        if not self.search:
            return True
        needle = self.search.lower()
        return any(needle in text.lower() for text in (listing.title, listing.description, listing.location))


def dedupe(listings: Iterable[ListingDoc]) -> list[ListingDoc]:
    seen: set[str] = set()
    out: list[ListingDoc] = []
    for listing in listings:
        if listing.id in seen:
            continue
        seen.add(listing.id)
        out.append(listing)
    return out


def sort_by_recency(listings: Iterable[ListingDoc]) -> list[ListingDoc]:
    # newest first; equal timestamps keep identifier order (sorted() is stable)
    by_id = sorted(listings, key=lambda item: item.id)
    return sorted(by_id, key=lambda item: item.created_at, reverse=True)


def refine(snapshot: Iterable[ListingDoc], fine: FinePredicate) -> list[ListingDoc]:
    return sort_by_recency(item for item in dedupe(snapshot) if fine.matches(item))


async def query_listings(store: Store, spec: FilterSpec) -> list[ListingDoc]:
    """One-shot read through both stages."""
    async with store.session() as db:
        snapshot = await spec.coarse().fetch(db, store.app_id)
    return refine(snapshot, spec.fine())


class ListingFeed:
    """
    Live, filtered, sorted listing sequence.

    set_filter() with an unchanged coarse stage re-runs only the fine stage over the
    cached snapshot; a changed coarse stage replaces the store subscription.
    """

    def __init__(
        self,
        store: Store,
        spec: FilterSpec,
        on_listings: Callable[[list[ListingDoc]], None],
        on_error: Callable[[Exception], None] | None = None,
    ):
        self.listings: list[ListingDoc] = []
        self._store = store
        self._spec = spec
        self._on_listings = on_listings
        self._on_error = on_error
        self._snapshot: list[ListingDoc] | None = None
        self._query: LiveQuery[list[ListingDoc]] | None = None
        self._retired: list[LiveQuery[list[ListingDoc]]] = []
        self._retired_fetches = 0
        self._cancelled = False

    @property
    def spec(self) -> FilterSpec:
        return self._spec

    @property
    def active(self) -> bool:
        return self._query is not None and self._query.active

    @property
    def store_queries(self) -> int:
        return self._retired_fetches + sum(q.fetch_count for q in self._queries())

    def start(self) -> "ListingFeed":
        if self._query is None and not self._cancelled:
            coarse = self._spec.coarse()
            app_id = self._store.app_id
            self._query = self._store.watch(
                LISTINGS_TOPIC,
                lambda db: coarse.fetch(db, app_id),
                self._on_snapshot,
                self._on_error,
            )
        return self

    def set_filter(self, spec: FilterSpec) -> None:
        if self._cancelled:
            return
        previous, self._spec = self._spec, spec
        if spec.coarse() == previous.coarse():
            if self._snapshot is not None:
                self._emit()
            return

        log.debug("coarse filter changed: %s -> %s", previous.coarse(), spec.coarse())
        self._retire_query()
        self._snapshot = None
        self.start()

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        self._retire_query()

    async def wait_closed(self) -> None:
        for query in self._queries():
            await query.wait_closed()

    def _queries(self) -> list[LiveQuery[list[ListingDoc]]]:
        if self._query is None:
            return list(self._retired)
        return [*self._retired, self._query]

    def _retire_query(self) -> None:
        if self._query is None:
            return
        query, self._query = self._query, None
        query.cancel()
        self._retired.append(query)
        query.add_done_callback(self._forget_query)

    def _forget_query(self, query: LiveQuery[list[ListingDoc]]) -> None:
        # finished queries keep only their fetch count
        if query in self._retired:
            self._retired.remove(query)
            self._retired_fetches += query.fetch_count

    def _on_snapshot(self, snapshot: list[ListingDoc]) -> None:
        self._snapshot = snapshot
        self._emit()

    def _emit(self) -> None:
        self.listings = refine(self._snapshot or [], self._spec.fine())
        self._on_listings(self.listings)


class ListingQueryEngine:
    def __init__(self, store: Store):
        self.store = store

    def subscribe(
        self,
        spec: FilterSpec,
        on_listings: Callable[[list[ListingDoc]], None],
        on_error: Callable[[Exception], None] | None = None,
    ) -> ListingFeed:
        return ListingFeed(self.store, spec, on_listings, on_error).start()
