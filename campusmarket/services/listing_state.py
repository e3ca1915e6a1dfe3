from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import func

from campusmarket.core.errors import InvalidStateError, NotFoundError
from campusmarket.models.listing import Listing, ListingStatus

log = logging.getLogger(__name__)

S = ListingStatus

# target -> statuses it may be entered from
ALLOWED_FROM: dict[ListingStatus, frozenset[ListingStatus]] = {
    S.PENDING_REVIEW: frozenset({S.PENDING_COMMISSION}),
    S.ACTIVE: frozenset({S.PENDING_REVIEW}),
    S.REJECTED: frozenset({S.PENDING_REVIEW}),
    S.ARCHIVED: frozenset({S.ACTIVE}),
    S.SOLD: frozenset({S.ACTIVE}),
}

DELETABLE: frozenset[ListingStatus] = frozenset({S.PENDING_COMMISSION, S.REJECTED, S.ARCHIVED})


def is_buyer_visible(status: str) -> bool:
    return status == S.ACTIVE.value


async def load_listing(db: AsyncSession, listing_id: str, *, refresh: bool = False) -> Listing:
    """Soft-deleted listings are reported as absent."""
    stmt = select(Listing).where(Listing.id == listing_id, Listing.deleted_at.is_(None))
    if refresh:
        stmt = stmt.execution_options(populate_existing=True)
    listing = (await db.execute(stmt)).scalar_one_or_none()
    if not listing:
        raise NotFoundError("Listing not found", detail={"listing_id": listing_id})
    return listing


async def transition_listing(
    db: AsyncSession,
    *,
    listing_id: str,
    target: ListingStatus,
    expected: Iterable[ListingStatus] | None = None,
    extra_where: Iterable = (),
) -> Listing:
    """
    Compare-and-swap on listings.status.

    Issues one UPDATE guarded by the expected prior statuses. Zero rows means
    another transition got there first (or the caller's view was stale): the
    row is re-read and InvalidStateError carries its real status.
    """
    prior = frozenset(expected) if expected is not None else ALLOWED_FROM[target]

    stmt = (
        update(Listing)
        .where(
            Listing.id == listing_id,
            Listing.deleted_at.is_(None),
            Listing.status.in_([s.value for s in prior]),
            *extra_where,
        )
        .values(status=target.value, updated_at=func.now())
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)

    if int(result.rowcount or 0) == 0:
        current = await load_listing(db, listing_id, refresh=True)
        log.info(
            "listing %s: transition to %s lost (current=%s)", listing_id, target.value, current.status
        )
        raise InvalidStateError(
            f"Listing is {current.status}; cannot move to {target.value}",
            current_status=current.status,
            detail={"listing_id": listing_id},
        )

    listing = await load_listing(db, listing_id, refresh=True)
    log.info("listing %s: -> %s", listing_id, target.value)
    return listing
