from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from classifieds.core.config import settings
from classifieds.core.constants import DEFAULT_LOCATION
from classifieds.models.listing import Listing
from classifieds.schemas.listing import ListingCreate
from classifieds.services.documents import ListingDoc
from classifieds.services.results import CommandResult
from classifieds.services.view import is_owner
from classifieds.store.base import Store
from classifieds.store.changes import LISTINGS_TOPIC


log = logging.getLogger(__name__)


def format_price(price: int) -> str:
    """Rs with Indian digit grouping: 1234567 -> 'Rs 12,34,567'."""
    digits = str(int(price))
    if len(digits) > 3:
        head, tail = digits[:-3], digits[-3:]
        groups = []
        while len(head) > 2:
            groups.insert(0, head[-2:])
            head = head[:-2]
        if head:
            groups.insert(0, head)
        digits = ",".join(groups + [tail])
    return f"Rs {digits}"


async def get_listing(store: Store, listing_id: str) -> ListingDoc | None:
    async with store.session() as db:
        stmt = select(Listing).where(Listing.id == listing_id, Listing.app_id == store.app_id)
        row = (await db.execute(stmt)).scalar_one_or_none()
    return ListingDoc.from_row(row) if row is not None else None


async def post_listing(store: Store, identity_id: str | None, data: ListingCreate) -> CommandResult:
    """
    Create a listing owned by identity_id.
    The store assigns id and creation time; location and image fall back to defaults.
    """
    if not identity_id:
        return CommandResult.failure("unauthenticated", "You must be signed in to post an ad.")

    row = Listing(
        app_id=store.app_id,
        title=data.title,
        description=data.description,
        price=data.price,
        category=data.category,
        location=data.location or DEFAULT_LOCATION,
        image_url=data.image_url or settings.placeholder_image_url,
        owner_id=identity_id,
    )
    try:
        async with store.session() as db:
            db.add(row)
            await db.commit()
    except SQLAlchemyError:
        log.exception("post listing failed: owner=%s", identity_id)
        return CommandResult.failure("store_error", "Failed to post ad. Please try again.")

    log.info("listing posted: id=%s owner=%s category=%s", row.id, identity_id, row.category)
    await store.notify(LISTINGS_TOPIC, op="created", listing_id=row.id)
    return CommandResult.success("Ad posted successfully!", listing_id=row.id)


async def delete_listing(store: Store, identity_id: str | None, listing_id: str) -> CommandResult:
    if not identity_id:
        return CommandResult.failure("unauthenticated", "You must be signed in to delete an ad.")

    try:
        async with store.session() as db:
            stmt = select(Listing).where(Listing.id == listing_id, Listing.app_id == store.app_id)
            row = (await db.execute(stmt)).scalar_one_or_none()
            if row is None:
                return CommandResult.failure("not_found", "Listing not found.")
            if not is_owner(ListingDoc.from_row(row), identity_id):
                return CommandResult.failure("forbidden", "Only the owner can delete this ad.")

            await db.delete(row)
            await db.commit()
    except SQLAlchemyError:
        log.exception("delete listing failed: id=%s identity=%s", listing_id, identity_id)
        return CommandResult.failure("store_error", "Failed to delete ad. Please try again.")

    log.info("listing deleted: id=%s owner=%s", listing_id, identity_id)
    await store.notify(LISTINGS_TOPIC, op="deleted", listing_id=listing_id)
    return CommandResult.success("Ad deleted.", listing_id=listing_id)
