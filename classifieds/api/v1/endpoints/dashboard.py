from fastapi import APIRouter, Depends

from classifieds.api.v1.endpoints.listings import get_filter_spec, listing_out
from classifieds.schemas.listing import DashboardOut
from classifieds.services.auth import Actor, get_identity
from classifieds.services.favorites import favorites_of
from classifieds.services.query_engine import FilterSpec, query_listings
from classifieds.services.view import annotate, build_dashboard
from classifieds.store.base import Store, get_store

router = APIRouter()


@router.get("/dashboard", response_model=DashboardOut)
async def dashboard(
    spec: FilterSpec = Depends(get_filter_spec),
    actor: Actor = Depends(get_identity),
    store: Store = Depends(get_store),
) -> DashboardOut:
    """My Ads / Favorites tabs, both drawn from the same (optionally filtered) listing view."""
    listings = await query_listings(store, spec)
    favorites = await favorites_of(store, actor.identity_id)
    board = build_dashboard(annotate(listings, favorites, actor.identity_id))
    return DashboardOut(
        my_ads=[listing_out(item) for item in board.my_ads],
        favorites=[listing_out(item) for item in board.favorites],
        my_ads_count=len(board.my_ads),
        favorites_count=len(board.favorites),
    )
