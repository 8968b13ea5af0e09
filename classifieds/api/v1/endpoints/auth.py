from fastapi import APIRouter, Depends, Security
from sqlalchemy.ext.asyncio import AsyncSession

from classifieds.core.db import get_db
from classifieds.schemas.auth import SignInIn, SignInOut, SignOutOut
from classifieds.services.auth import establish_identity, get_identity, session_token_header, sign_out

router = APIRouter()


@router.post("/auth/sign-in", response_model=SignInOut)
async def sign_in(payload: SignInIn, db: AsyncSession = Depends(get_db)) -> SignInOut:
    result = await establish_identity(db, payload.custom_token)
    return SignInOut(
        identity_id=result.identity_id,
        kind=result.kind,
        session_token=result.session_token,
        fallback=result.fallback,
    )


@router.post("/auth/sign-out", response_model=SignOutOut, dependencies=[Depends(get_identity)])
async def sign_out_session(
    session_token: str = Security(session_token_header),
    db: AsyncSession = Depends(get_db),
) -> SignOutOut:
    return SignOutOut(signed_out=await sign_out(db, session_token))
