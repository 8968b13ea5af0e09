from __future__ import annotations

import logging
from typing import Callable

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from classifieds.models.base import utcnow
from classifieds.models.favorites import FavoritesRecord
from classifieds.models.listing import Listing
from classifieds.services.results import CommandResult
from classifieds.store.base import Store
from classifieds.store.changes import favorites_topic
from classifieds.store.live import LiveQuery
from classifieds.store.transactions import TransactionAborted, WriteConflict


log = logging.getLogger(__name__)

_NOT_FOUND = object()


async def read_favorites(db: AsyncSession, app_id: str, identity_id: str) -> frozenset[str]:
    row = await db.get(FavoritesRecord, (app_id, identity_id))
    if row is None:
        return frozenset()
    return frozenset(k for k, v in (row.listing_ids or {}).items() if v is True)


async def favorites_of(store: Store, identity_id: str) -> frozenset[str]:
    async with store.session() as db:
        return await read_favorites(db, store.app_id, identity_id)


class FavoritesLedger:
    """
    Per-identity set of saved listing ids.

    Membership is only ever observed through subscribe(); toggle() is a transactional
    read-modify-write retried on write conflicts, so rapid repeated toggles by one
    identity each apply exactly once.
    """

    def __init__(self, store: Store):
        self.store = store

    def subscribe(
        self,
        identity_id: str,
        on_favorites: Callable[[frozenset[str]], None],
        on_error: Callable[[Exception], None] | None = None,
    ) -> LiveQuery[frozenset[str]]:
        app_id = self.store.app_id
        return self.store.watch(
            favorites_topic(identity_id),
            lambda db: read_favorites(db, app_id, identity_id),
            on_favorites,
            on_error,
        )

    async def toggle(self, identity_id: str | None, listing_id: str) -> CommandResult:
        if not identity_id:
            return CommandResult.failure("unauthenticated", "You must be signed in to save ads.")

        app_id = self.store.app_id

        async def flip(db: AsyncSession):
            row = await db.get(FavoritesRecord, (app_id, identity_id))
            current = dict(row.listing_ids or {}) if row is not None else {}

            if current.get(listing_id):
                del current[listing_id]
                saved = False
            else:
                # a dangling id can still be removed above, but nothing new is saved for a missing listing
                exists = await db.scalar(
                    select(Listing.id).where(Listing.id == listing_id, Listing.app_id == app_id)
                )
                if exists is None:
                    return _NOT_FOUND
                current[listing_id] = True
                saved = True

            if row is None:
                db.add(FavoritesRecord(app_id=app_id, identity_id=identity_id, listing_ids=current, version=1))
                # a concurrent first toggle surfaces here as IntegrityError
                await db.flush()
            else:
                result = await db.execute(
                    update(FavoritesRecord)
                    .where(
                        FavoritesRecord.app_id == app_id,
                        FavoritesRecord.identity_id == identity_id,
                        FavoritesRecord.version == row.version,
                    )
                    .values(listing_ids=current, version=row.version + 1, updated_at=utcnow())
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    raise WriteConflict(f"favorites of {identity_id} changed since version {row.version}")
            return saved

        try:
            saved = await self.store.run_transaction(flip)
        except TransactionAborted:
            log.warning("favorites toggle gave up: identity=%s listing=%s", identity_id, listing_id)
            return CommandResult.failure("store_error", "Could not update favorites. Please try again.")
        except SQLAlchemyError:
            log.exception("favorites toggle failed: identity=%s listing=%s", identity_id, listing_id)
            return CommandResult.failure("store_error", "Could not update favorites. Please try again.")

        if saved is _NOT_FOUND:
            return CommandResult.failure("not_found", "Listing not found.")

        await self.store.notify(favorites_topic(identity_id), op="toggled", listing_id=listing_id, saved=saved)
        return CommandResult.success(
            "Saved to favorites." if saved else "Removed from favorites.",
            listing_id=listing_id,
            saved=saved,
        )
