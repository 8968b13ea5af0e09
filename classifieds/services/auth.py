import logging
from dataclasses import dataclass, replace

from cryptography.fernet import InvalidToken
from fastapi import Depends, HTTPException, Security
from fastapi.security.api_key import APIKeyHeader
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from classifieds.core.config import settings
from classifieds.core.crypto import decrypt_json, encrypt_json
from classifieds.core.db import get_db
from classifieds.core.security import generate_session_token, hash_session_token
from classifieds.models.base import utcnow
from classifieds.models.identity import Identity, SessionToken


log = logging.getLogger(__name__)

session_token_header = APIKeyHeader(name="X-Session-Token", auto_error=False)


@dataclass(frozen=True)
class Actor:
    identity_id: str
    session_token_id: str
    kind: str  # "anonymous" | "custom"


@dataclass(frozen=True)
class SignIn:
    identity_id: str
    kind: str
    session_token: str
    # True when a custom token was offered but rejected
    fallback: bool = False


class InvalidCustomToken(Exception):
    pass


def mint_custom_token(uid: str) -> str:
    # Fernet embeds the issue time; expiry is enforced on verification
    return encrypt_json({"uid": uid})


async def _issue_session(db: AsyncSession, identity: Identity) -> SignIn:
    token = generate_session_token()
    db.add(
        SessionToken(
            identity_id=identity.id,
            token_prefix=token.prefix,
            token_hash=token.hashed,
            is_active=True,
        )
    )
    await db.commit()
    return SignIn(identity_id=identity.id, kind=identity.kind, session_token=token.plain)


async def sign_in_anonymously(db: AsyncSession) -> SignIn:
    identity = Identity(kind="anonymous")
    db.add(identity)
    await db.flush()
    log.info("anonymous identity established: %s", identity.id)
    return await _issue_session(db, identity)


async def sign_in_with_custom_token(db: AsyncSession, custom_token: str) -> SignIn:
    try:
        claims = decrypt_json(custom_token, ttl=settings.custom_token_ttl_seconds)
    except InvalidToken as e:
        raise InvalidCustomToken("custom token is invalid or expired") from e

    uid = claims.get("uid")
    if not isinstance(uid, str) or not uid:
        raise InvalidCustomToken("custom token carries no uid")

    identity = await db.get(Identity, uid)
    if identity is None:
        identity = Identity(id=uid, kind="custom")
        db.add(identity)
        await db.flush()
    log.info("custom-token identity established: %s", identity.id)
    return await _issue_session(db, identity)


async def establish_identity(db: AsyncSession, custom_token: str | None = None) -> SignIn:
    """Custom token first; anonymous sign-in when none is given or it is rejected."""
    if custom_token:
        try:
            return await sign_in_with_custom_token(db, custom_token)
        except InvalidCustomToken:
            log.warning("custom token sign-in failed, signing in anonymously", exc_info=True)
            await db.rollback()
            return replace(await sign_in_anonymously(db), fallback=True)
    return await sign_in_anonymously(db)


async def sign_out(db: AsyncSession, plain_token: str) -> bool:
    result = await db.execute(
        update(SessionToken)
        .where(SessionToken.token_hash == hash_session_token(plain_token), SessionToken.is_active.is_(True))
        .values(is_active=False, revoked_at=utcnow())
    )
    await db.commit()
    return (result.rowcount or 0) == 1


async def resolve_session(db: AsyncSession, plain_token: str) -> Actor | None:
    stmt = (
        select(SessionToken, Identity)
        .join(Identity, Identity.id == SessionToken.identity_id)
        .where(SessionToken.token_hash == hash_session_token(plain_token), SessionToken.is_active.is_(True))
    )
    row = (await db.execute(stmt)).first()
    if row is None:
        return None
    token, identity = row
    return Actor(identity_id=identity.id, session_token_id=token.id, kind=identity.kind)


async def get_optional_identity(
    session_token: str | None = Security(session_token_header),
    db: AsyncSession = Depends(get_db),
) -> Actor | None:
    if not session_token:
        return None
    actor = await resolve_session(db, session_token)
    if actor is None:
        raise HTTPException(status_code=401, detail="Invalid session token")
    return actor


async def get_identity(actor: Actor | None = Depends(get_optional_identity)) -> Actor:
    if actor is None:
        raise HTTPException(status_code=401, detail="Missing X-Session-Token")
    return actor
