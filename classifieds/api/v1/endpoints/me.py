from fastapi import APIRouter, Depends

from classifieds.schemas.auth import MeOut
from classifieds.services.auth import Actor, get_identity

router = APIRouter()

@router.get("/me", response_model=MeOut)
async def me(actor: Actor = Depends(get_identity)) -> MeOut:
    return MeOut(identity_id=actor.identity_id, kind=actor.kind)
