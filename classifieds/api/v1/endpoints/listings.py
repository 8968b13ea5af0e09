import json
import logging
from typing import AsyncIterator

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from classifieds.core.constants import ALL_CATEGORIES, CATEGORIES
from classifieds.schemas.listing import CategoriesOut, CommandOut, ListingCreate, ListingOut
from classifieds.services.auth import Actor, get_identity, get_optional_identity
from classifieds.services.favorites import favorites_of
from classifieds.services.listings import delete_listing, format_price, get_listing, post_listing
from classifieds.services.query_engine import FilterSpec, query_listings
from classifieds.services.results import raise_for_result
from classifieds.services.session import AppState, MarketplaceSession
from classifieds.services.view import AnnotatedListing, annotate
from classifieds.store.base import Store, get_store


log = logging.getLogger(__name__)
router = APIRouter()


def get_filter_spec(
    search: str | None = None,
    category: str | None = None,
    min_price: str | None = None,
    max_price: str | None = None,
) -> FilterSpec:
    try:
        return FilterSpec(search=search, category=category, min_price=min_price, max_price=max_price)
    except ValidationError as e:
        raise HTTPException(
            status_code=422,
            detail=[{"loc": list(err["loc"]), "msg": err["msg"]} for err in e.errors()],
        )


def listing_out(item: AnnotatedListing) -> ListingOut:
    doc = item.listing
    return ListingOut(
        id=doc.id,
        title=doc.title,
        description=doc.description,
        price=doc.price,
        price_display=format_price(doc.price),
        category=doc.category,
        location=doc.location,
        image_url=doc.image_url,
        owner_id=doc.owner_id,
        created_at=doc.created_at,
        is_saved=item.is_saved,
        is_owner=item.is_owner,
    )


async def view_events(session: MarketplaceSession, request: Request | None = None) -> AsyncIterator[str]:
    """Server-Sent Events: one `listings` event per change of the annotated view."""
    try:
        async for view in session.view.stream():
            if request is not None and await request.is_disconnected():
                break
            payload = [listing_out(item).model_dump(mode="json") for item in view]
            yield f"event: listings\ndata: {json.dumps(payload, separators=(',', ':'))}\n\n"
    finally:
        session.close()


@router.get("/categories", response_model=CategoriesOut)
async def list_categories() -> CategoriesOut:
    return CategoriesOut(all_categories=ALL_CATEGORIES, categories=list(CATEGORIES))


@router.get("/listings", response_model=list[ListingOut])
async def list_listings(
    spec: FilterSpec = Depends(get_filter_spec),
    actor: Actor | None = Depends(get_optional_identity),
    store: Store = Depends(get_store),
) -> list[ListingOut]:
    identity_id = actor.identity_id if actor else None
    try:
        listings = await query_listings(store, spec)
        favorites = await favorites_of(store, identity_id) if identity_id else frozenset()
    except SQLAlchemyError:
        log.exception("listing query failed: spec=%s", spec)
        raise HTTPException(status_code=503, detail="Store unavailable")

    return [listing_out(item) for item in annotate(listings, favorites, identity_id)]


@router.get("/listings/stream")
async def stream_listings(
    request: Request,
    spec: FilterSpec = Depends(get_filter_spec),
    actor: Actor | None = Depends(get_optional_identity),
    store: Store = Depends(get_store),
) -> StreamingResponse:
    session = MarketplaceSession(store, AppState(filter=spec))
    if actor is not None:
        session.identity_established(actor.identity_id)
    else:
        session.identity_cleared()
    return StreamingResponse(view_events(session, request), media_type="text/event-stream")


@router.get("/listings/{listing_id}", response_model=ListingOut)
async def read_listing(
    listing_id: str,
    actor: Actor | None = Depends(get_optional_identity),
    store: Store = Depends(get_store),
) -> ListingOut:
    identity_id = actor.identity_id if actor else None
    doc = await get_listing(store, listing_id)
    if doc is None:
        raise HTTPException(status_code=404, detail="Listing not found")
    favorites = await favorites_of(store, identity_id) if identity_id else frozenset()
    return listing_out(annotate([doc], favorites, identity_id)[0])


@router.post("/listings", response_model=ListingOut, status_code=201)
async def create_listing(
    payload: ListingCreate,
    actor: Actor = Depends(get_identity),
    store: Store = Depends(get_store),
) -> ListingOut:
    result = raise_for_result(await post_listing(store, actor.identity_id, payload))

    doc = await get_listing(store, result.data["listing_id"])
    if doc is None:
        # deleted between commit and read-back
        raise HTTPException(status_code=404, detail="Listing not found")
    return listing_out(annotate([doc], frozenset(), actor.identity_id)[0])


@router.delete("/listings/{listing_id}", response_model=CommandOut)
async def remove_listing(
    listing_id: str,
    actor: Actor = Depends(get_identity),
    store: Store = Depends(get_store),
) -> CommandOut:
    result = raise_for_result(await delete_listing(store, actor.identity_id, listing_id))
    return CommandOut(ok=result.ok, message=result.message, data=result.data)
