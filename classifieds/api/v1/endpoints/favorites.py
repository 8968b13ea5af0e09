from fastapi import APIRouter, Depends

from classifieds.schemas.listing import CommandOut, FavoritesOut
from classifieds.services.auth import Actor, get_identity
from classifieds.services.favorites import FavoritesLedger, favorites_of
from classifieds.services.results import raise_for_result
from classifieds.store.base import Store, get_store

router = APIRouter()


@router.get("/favorites", response_model=FavoritesOut)
async def list_favorites(
    actor: Actor = Depends(get_identity),
    store: Store = Depends(get_store),
) -> FavoritesOut:
    ids = await favorites_of(store, actor.identity_id)
    return FavoritesOut(listing_ids=sorted(ids))


@router.post("/favorites/{listing_id}/toggle", response_model=CommandOut)
async def toggle_favorite(
    listing_id: str,
    actor: Actor = Depends(get_identity),
    store: Store = Depends(get_store),
) -> CommandOut:
    result = raise_for_result(await FavoritesLedger(store).toggle(actor.identity_id, listing_id))
    return CommandOut(ok=result.ok, message=result.message, data=result.data)
