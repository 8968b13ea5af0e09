"""
Application state and command dispatch for one browsing session.

A renderer owns one MarketplaceSession: it issues commands (set_filter, post_listing,
delete_listing, toggle_favorite, ...) and reads two feeds, the annotated listing view
and the auth-ready flag. The view is recomputed from the latest listing snapshot and
the latest favorites set whenever either one changes; nothing else is cached, so a
toggle shows up once the favorites subscription echoes it back.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Generic, TypeVar

from pydantic import ValidationError

from classifieds.schemas.listing import ListingCreate
from classifieds.services import listings as listing_commands
from classifieds.services.documents import ListingDoc
from classifieds.services.favorites import FavoritesLedger
from classifieds.services.query_engine import FilterSpec, ListingFeed, ListingQueryEngine
from classifieds.services.results import CommandResult
from classifieds.services.view import AnnotatedListing, Dashboard, annotate, build_dashboard
from classifieds.store.base import Store
from classifieds.store.live import LiveQuery


log = logging.getLogger(__name__)

T = TypeVar("T")

PAGES = ("home", "details", "post", "dashboard")


class Feed(Generic[T]):
    """Holds the latest value and pushes each new one to callbacks and streams."""

    def __init__(self, initial: T):
        self.value = initial
        self.published = False
        self._callbacks: list[Callable[[T], None]] = []
        self._queues: set[asyncio.Queue] = set()

    def publish(self, value: T) -> None:
        self.value = value
        self.published = True
        for callback in list(self._callbacks):
            callback(value)
        for queue in self._queues:
            queue.put_nowait(value)

    def subscribe(self, callback: Callable[[T], None]) -> Callable[[], None]:
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    async def stream(self) -> AsyncIterator[T]:
        """Latest published value first, then every later one; a slow reader skips to the newest."""
        queue: asyncio.Queue = asyncio.Queue()
        self._queues.add(queue)
        try:
            if self.published:
                yield self.value
            while True:
                value = await queue.get()
                while not queue.empty():
                    value = queue.get_nowait()
                yield value
        finally:
            self._queues.discard(queue)


@dataclass
class AppState:
    identity_id: str | None = None
    auth_ready: bool = False
    filter: FilterSpec = field(default_factory=FilterSpec)
    page: str = "home"
    selected_listing_id: str | None = None


class MarketplaceSession:
    def __init__(self, store: Store, state: AppState | None = None):
        self.store = store
        self.state = state or AppState()
        self.engine = ListingQueryEngine(store)
        self.ledger = FavoritesLedger(store)

        self.view: Feed[list[AnnotatedListing]] = Feed([])
        self.auth_ready: Feed[bool] = Feed(self.state.auth_ready)

        # None until the listing feed delivers its first snapshot
        self._listings: list[ListingDoc] | None = None
        self._favorites: frozenset[str] = frozenset()
        self._listing_feed: ListingFeed | None = None
        self._favorites_query: LiveQuery[frozenset[str]] | None = None
        self._retired_favorites: list[LiveQuery[frozenset[str]]] = []
        self._closed = False

    # identity lifecycle

    def identity_established(self, identity_id: str) -> None:
        if self._closed:
            return
        if identity_id == self.state.identity_id and self._favorites_query is not None:
            return

        log.info("session identity established: %s", identity_id)
        self._detach_favorites()
        self.state.identity_id = identity_id
        self._favorites_query = self.ledger.subscribe(identity_id, self._on_favorites)
        self._ensure_listing_feed()
        self._mark_auth_ready()
        self._publish_view()

    def identity_cleared(self) -> None:
        if self._closed:
            return
        self._detach_favorites()
        self.state.identity_id = None
        self._ensure_listing_feed()
        self._mark_auth_ready()
        self._publish_view()

    # commands

    def set_filter(self, spec: FilterSpec | None = None, **fields: Any) -> FilterSpec:
        spec = spec if spec is not None else FilterSpec(**fields)
        self.state.filter = spec
        if self._listing_feed is not None:
            self._listing_feed.set_filter(spec)
        return spec

    def reset_filters(self) -> FilterSpec:
        return self.set_filter(FilterSpec())

    async def post_listing(self, data: ListingCreate | dict[str, Any]) -> CommandResult:
        if not self.state.identity_id:
            return CommandResult.failure("unauthenticated", "You must be signed in to post an ad.")
        if not isinstance(data, ListingCreate):
            try:
                data = ListingCreate.model_validate(data)
            except ValidationError as e:
                first = e.errors()[0]
                field_name = ".".join(str(p) for p in first.get("loc", ()))
                return CommandResult.failure("invalid", f"{field_name}: {first.get('msg')}")

        result = await listing_commands.post_listing(self.store, self.state.identity_id, data)
        if result.ok:
            self.navigate("home")
        return result

    async def delete_listing(self, listing_id: str) -> CommandResult:
        result = await listing_commands.delete_listing(self.store, self.state.identity_id, listing_id)
        if result.ok and self.state.selected_listing_id == listing_id:
            self.state.selected_listing_id = None
            self.navigate("home")
        return result

    async def toggle_favorite(self, listing_id: str) -> CommandResult:
        return await self.ledger.toggle(self.state.identity_id, listing_id)

    def select_listing(self, listing_id: str) -> AnnotatedListing | None:
        self.state.selected_listing_id = listing_id
        self.navigate("details")
        return self.selected

    def navigate(self, page: str) -> None:
        if page not in PAGES:
            raise ValueError(f"unknown page '{page}'")
        self.state.page = page

    # derived reads

    @property
    def selected(self) -> AnnotatedListing | None:
        for item in self.view.value:
            if item.listing.id == self.state.selected_listing_id:
                return item
        return None

    def dashboard(self) -> Dashboard:
        return build_dashboard(self.view.value)

    # teardown

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._detach_favorites()
        if self._listing_feed is not None:
            self._listing_feed.cancel()

    async def wait_closed(self) -> None:
        for query in list(self._retired_favorites):
            await query.wait_closed()
        if self._listing_feed is not None:
            await self._listing_feed.wait_closed()

    # internals

    def _ensure_listing_feed(self) -> None:
        if self._listing_feed is None:
            self._listing_feed = self.engine.subscribe(self.state.filter, self._on_listings)

    def _detach_favorites(self) -> None:
        if self._favorites_query is not None:
            query, self._favorites_query = self._favorites_query, None
            query.cancel()
            self._retired_favorites.append(query)
            query.add_done_callback(self._forget_favorites_query)
        self._favorites = frozenset()

    def _forget_favorites_query(self, query: LiveQuery[frozenset[str]]) -> None:
        if query in self._retired_favorites:
            self._retired_favorites.remove(query)

    def _mark_auth_ready(self) -> None:
        if not self.state.auth_ready:
            self.state.auth_ready = True
            self.auth_ready.publish(True)

    def _on_listings(self, listings: list[ListingDoc]) -> None:
        self._listings = listings
        self._publish_view()

    def _on_favorites(self, favorites: frozenset[str]) -> None:
        self._favorites = favorites
        self._publish_view()

    def _publish_view(self) -> None:
        if self._listings is None:
            return
        self.view.publish(annotate(self._listings, self._favorites, self.state.identity_id))
