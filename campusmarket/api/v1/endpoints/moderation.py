from fastapi import APIRouter, Body, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from campusmarket.core.db import get_db
from campusmarket.core.principal import AdminPrincipal
from campusmarket.schemas.listing import ListingOut, RejectIn
from campusmarket.services.auth import require_admin
from campusmarket.services.listings import list_pending_review
from campusmarket.services.moderation import approve_listing, reject_listing
from campusmarket.services.transactions import run_atomic

router = APIRouter(prefix="/admin")


@router.get("/listings/pending", response_model=list[ListingOut])
async def pending_listings(
    admin: AdminPrincipal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> list[ListingOut]:
    rows = await list_pending_review(db, admin=admin)
    return [ListingOut.model_validate(r) for r in rows]


@router.post("/listings/{listing_id}/approve", response_model=ListingOut)
async def approve_listing_endpoint(
    listing_id: str,
    admin: AdminPrincipal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> ListingOut:
    listing = await run_atomic(
        db, lambda s: approve_listing(s, listing_id=listing_id, admin=admin), label="approve_listing"
    )
    return ListingOut.model_validate(listing)


@router.post("/listings/{listing_id}/reject", response_model=ListingOut)
async def reject_listing_endpoint(
    listing_id: str,
    payload: RejectIn | None = Body(default=None),
    admin: AdminPrincipal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> ListingOut:
    reason = payload.reason if payload else None
    listing = await run_atomic(
        db,
        lambda s: reject_listing(s, listing_id=listing_id, admin=admin, reason=reason),
        label="reject_listing",
    )
    return ListingOut.model_validate(listing)
