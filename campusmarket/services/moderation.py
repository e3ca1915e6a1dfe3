from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from campusmarket.core.principal import AdminPrincipal, ensure_admin
from campusmarket.models.listing import Listing, ListingStatus
from campusmarket.services.audit import audit
from campusmarket.services.listing_state import transition_listing
from campusmarket.services.outbox import emit_event

log = logging.getLogger(__name__)

DEFAULT_REJECT_REASON = "Rejected by admin"


async def approve_listing(db: AsyncSession, *, listing_id: str, admin: AdminPrincipal) -> Listing:
    admin = ensure_admin(admin)
    listing = await transition_listing(db, listing_id=listing_id, target=ListingStatus.ACTIVE)

    await audit(db, actor_id=admin.user_id, action="listing.approve", target_type="listing", target_id=listing_id)
    emit_event(
        db,
        aggregate_type="listing",
        aggregate_id=listing_id,
        event_type="listing.approved",
        payload={"listing_id": listing_id, "seller_id": listing.seller_id, "title": listing.title},
    )
    log.info("listing %s approved by %s", listing_id, admin.user_id)
    return listing


async def reject_listing(
    db: AsyncSession,
    *,
    listing_id: str,
    admin: AdminPrincipal,
    reason: str | None = None,
) -> Listing:
    admin = ensure_admin(admin)
    # the reason only travels with the notification and the audit trail
    reason = (reason or "").strip() or DEFAULT_REJECT_REASON
    listing = await transition_listing(db, listing_id=listing_id, target=ListingStatus.REJECTED)

    await audit(
        db,
        actor_id=admin.user_id,
        action="listing.reject",
        target_type="listing",
        target_id=listing_id,
        detail={"reason": reason},
    )
    emit_event(
        db,
        aggregate_type="listing",
        aggregate_id=listing_id,
        event_type="listing.rejected",
        payload={"listing_id": listing_id, "seller_id": listing.seller_id, "title": listing.title, "reason": reason},
    )
    log.info("listing %s rejected by %s", listing_id, admin.user_id)
    return listing
