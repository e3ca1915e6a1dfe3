from __future__ import annotations

import logging

from sqlalchemy import delete, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from campusmarket.core.errors import InvalidStateError
from campusmarket.core.principal import Principal
from campusmarket.models.favorite import Favorite
from campusmarket.models.listing import Listing, ListingStatus
from campusmarket.services.listings import get_listing

log = logging.getLogger(__name__)


async def toggle_favorite(db: AsyncSession, *, listing_id: str, user: Principal) -> bool:
    """
    Save or unsave a listing for the user. Returns True when it is now saved.
    Only listings the user can see may be saved; removing always works.
    """
    existing = (
        await db.execute(select(Favorite.id).where(Favorite.user_id == user.user_id, Favorite.listing_id == listing_id))
    ).scalar_one_or_none()

    if existing:
        await db.execute(delete(Favorite).where(Favorite.id == existing))
        log.info("favorite removed: user=%s listing=%s", user.user_id, listing_id)
        return False

    # NotFoundError for missing and non-public listings alike
    await get_listing(db, listing_id=listing_id, viewer=user)

    db.add(Favorite(user_id=user.user_id, listing_id=listing_id))
    try:
        await db.flush()
    except IntegrityError:
        # a concurrent toggle saved it first
        raise InvalidStateError(
            "Listing was favorited concurrently",
            current_status="FAVORITED",
            detail={"listing_id": listing_id},
        )
    log.info("favorite added: user=%s listing=%s", user.user_id, listing_id)
    return True


async def list_my_favorites(db: AsyncSession, *, user: Principal) -> list[Listing]:
    """Saved listings still visible to the user, most recently saved first."""
    stmt = (
        select(Listing)
        .join(Favorite, Favorite.listing_id == Listing.id)
        .where(
            Favorite.user_id == user.user_id,
            Listing.deleted_at.is_(None),
            or_(Listing.status == ListingStatus.ACTIVE.value, Listing.seller_id == user.user_id),
        )
        .order_by(Favorite.created_at.desc(), Favorite.id.desc())
    )
    return list((await db.execute(stmt)).scalars().all())
