from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import exists, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from campusmarket.core.config import settings
from campusmarket.core.errors import AuthorizationError, InvalidStateError, NotFoundError, ValidationError
from campusmarket.core.principal import AdminPrincipal, Principal, ensure_admin
from campusmarket.models.category import Category
from campusmarket.models.escrow import EscrowStatus, EscrowTransaction
from campusmarket.models.listing import Listing, ListingStatus
from campusmarket.services.audit import audit
from campusmarket.services.commission import compute_commission, to_money
from campusmarket.services.listing_state import DELETABLE, is_buyer_visible, load_listing, transition_listing
from campusmarket.services.outbox import emit_event

log = logging.getLogger(__name__)


def _listing_event_payload(listing: Listing, **extra: Any) -> dict[str, Any]:
    return {
        "listing_id": listing.id,
        "seller_id": listing.seller_id,
        "title": listing.title,
        "status": listing.status,
        **extra,
    }


def _require_owner(listing: Listing, principal: Principal) -> None:
    if listing.seller_id != principal.user_id:
        raise AuthorizationError("Not your listing", detail={"listing_id": listing.id})


def _parse_price(price: Any) -> Decimal:
    try:
        value = Decimal(str(price))
    except (InvalidOperation, ValueError):
        raise ValidationError("Price must be a number", detail={"field": "price"})
    if not value.is_finite() or value <= 0:
        raise ValidationError("Price must be positive", detail={"field": "price"})
    money = to_money(value)
    if money <= 0:
        raise ValidationError("Price must be at least one cent", detail={"field": "price"})
    return money


async def create_listing(
    db: AsyncSession,
    *,
    seller: Principal,
    price: Any,
    category_id: str,
    title: str,
    description: str = "",
) -> Listing:
    """New listings start in PENDING_COMMISSION and stay invisible to buyers."""
    amount = _parse_price(price)

    title = (title or "").strip()
    if len(title) < 3:
        raise ValidationError("Title must be at least 3 characters", detail={"field": "title"})

    category = (await db.execute(select(Category).where(Category.id == category_id))).scalar_one_or_none()
    if not category:
        raise ValidationError("Invalid category", detail={"field": "category_id"})

    listing = Listing(
        seller_id=seller.user_id,
        category_id=category.id,
        title=title,
        description=description or "",
        price=amount,
        status=ListingStatus.PENDING_COMMISSION.value,
    )
    db.add(listing)
    await db.flush()

    emit_event(
        db,
        aggregate_type="listing",
        aggregate_id=listing.id,
        event_type="listing.created",
        payload=_listing_event_payload(listing, category_id=category.id),
    )
    log.info("listing %s created by %s (price=%s)", listing.id, seller.user_id, amount)
    return listing


async def archive_listing(db: AsyncSession, *, listing_id: str, requester: Principal) -> Listing:
    listing = await load_listing(db, listing_id)
    _require_owner(listing, requester)

    listing = await transition_listing(db, listing_id=listing_id, target=ListingStatus.ARCHIVED)

    await audit(db, actor_id=requester.user_id, action="listing.archive", target_type="listing", target_id=listing_id)
    emit_event(
        db,
        aggregate_type="listing",
        aggregate_id=listing_id,
        event_type="listing.archived",
        payload=_listing_event_payload(listing),
    )
    return listing


async def mark_listing_sold(db: AsyncSession, *, listing_id: str, requester: Principal) -> Listing:
    listing = await load_listing(db, listing_id)
    _require_owner(listing, requester)

    listing = await transition_listing(db, listing_id=listing_id, target=ListingStatus.SOLD)

    await audit(db, actor_id=requester.user_id, action="listing.sold", target_type="listing", target_id=listing_id)
    emit_event(
        db,
        aggregate_type="listing",
        aggregate_id=listing_id,
        event_type="listing.sold",
        payload=_listing_event_payload(listing),
    )
    return listing


def _holding_escrow_exists(listing_id: str):
    return exists().where(
        EscrowTransaction.listing_id == listing_id,
        EscrowTransaction.status == EscrowStatus.HOLDING.value,
    )


async def delete_listing(db: AsyncSession, *, listing_id: str, requester: Principal) -> None:
    """
    Soft delete. Allowed from PENDING_COMMISSION, REJECTED and ARCHIVED, and never
    while an escrow for the listing is HOLDING. Both conditions are part of the
    same guarded UPDATE, so an escrow opened concurrently cannot slip past.
    """
    listing = await load_listing(db, listing_id)

    # money in flight blocks deletion for every caller, owner included
    if (await db.execute(select(_holding_escrow_exists(listing_id)))).scalar():
        raise InvalidStateError(
            "Cannot delete while funds are held in escrow",
            current_status=listing.status,
            detail={"listing_id": listing_id, "escrow_status": EscrowStatus.HOLDING.value},
        )
    _require_owner(listing, requester)

    stmt = (
        update(Listing)
        .where(
            Listing.id == listing_id,
            Listing.deleted_at.is_(None),
            Listing.status.in_([s.value for s in DELETABLE]),
            ~_holding_escrow_exists(listing_id),
        )
        .values(deleted_at=func.now(), updated_at=func.now())
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)

    if int(result.rowcount or 0) == 0:
        current = await load_listing(db, listing_id, refresh=True)
        holding = (await db.execute(select(_holding_escrow_exists(listing_id)))).scalar()
        if holding:
            raise InvalidStateError(
                "Cannot delete while funds are held in escrow",
                current_status=current.status,
                detail={"listing_id": listing_id, "escrow_status": EscrowStatus.HOLDING.value},
            )
        raise InvalidStateError(
            f"Listing is {current.status}; it cannot be deleted",
            current_status=current.status,
            detail={"listing_id": listing_id},
        )

    await audit(db, actor_id=requester.user_id, action="listing.delete", target_type="listing", target_id=listing_id)
    emit_event(
        db,
        aggregate_type="listing",
        aggregate_id=listing_id,
        event_type="listing.deleted",
        payload=_listing_event_payload(listing),
    )
    log.info("listing %s deleted by %s", listing_id, requester.user_id)


async def get_listing(db: AsyncSession, *, listing_id: str, viewer: Principal | None) -> Listing:
    """Buyers only ever see ACTIVE listings; owners and admins see every status."""
    listing = await load_listing(db, listing_id)
    if is_buyer_visible(listing.status):
        return listing
    if viewer is not None and (viewer.is_admin or viewer.user_id == listing.seller_id):
        return listing
    # same answer as a missing row, so non-public listings don't leak
    raise NotFoundError("Listing not found", detail={"listing_id": listing_id})


async def list_active_listings(
    db: AsyncSession,
    *,
    category_id: str | None = None,
    limit: int = 12,
    offset: int = 0,
) -> list[Listing]:
    stmt = select(Listing).where(
        Listing.status == ListingStatus.ACTIVE.value,
        Listing.deleted_at.is_(None),
    )
    if category_id:
        stmt = stmt.where(Listing.category_id == category_id)
    stmt = stmt.order_by(Listing.created_at.desc(), Listing.id).limit(limit).offset(offset)
    return list((await db.execute(stmt)).scalars().all())


async def list_seller_listings(db: AsyncSession, *, seller: Principal, status: str | None = None) -> list[Listing]:
    stmt = select(Listing).where(Listing.seller_id == seller.user_id, Listing.deleted_at.is_(None))
    if status and status != "all":
        try:
            wanted = ListingStatus(status)
        except ValueError:
            raise ValidationError(f"Unknown status filter: {status}", detail={"field": "status"})
        stmt = stmt.where(Listing.status == wanted.value)
    stmt = stmt.order_by(Listing.created_at.desc(), Listing.id)
    return list((await db.execute(stmt)).scalars().all())


async def list_pending_review(db: AsyncSession, *, admin: AdminPrincipal) -> list[Listing]:
    ensure_admin(admin)
    stmt = (
        select(Listing)
        .where(Listing.status == ListingStatus.PENDING_REVIEW.value, Listing.deleted_at.is_(None))
        .order_by(Listing.created_at.asc(), Listing.id)
    )
    return list((await db.execute(stmt)).scalars().all())


async def commission_quote(db: AsyncSession, *, listing_id: str, requester: Principal) -> dict[str, Any]:
    listing = await load_listing(db, listing_id)
    _require_owner(listing, requester)
    rate = settings.commission_rate
    return {
        "listing_id": listing.id,
        "price": listing.price,
        "rate": rate,
        "amount": compute_commission(listing.price, rate),
        "status": listing.status,
    }


async def seller_dashboard_stats(db: AsyncSession, *, seller: Principal) -> dict[str, Any]:
    rows = (
        await db.execute(
            select(Listing.status, func.count())
            .where(Listing.seller_id == seller.user_id, Listing.deleted_at.is_(None))
            .group_by(Listing.status)
        )
    ).all()
    counts = {s.value: 0 for s in ListingStatus}
    for status, n in rows:
        counts[status] = int(n)

    sales_count, sales_total = (
        await db.execute(
            select(func.count(EscrowTransaction.id), func.coalesce(func.sum(EscrowTransaction.amount), 0))
            .where(
                EscrowTransaction.seller_id == seller.user_id,
                EscrowTransaction.status == EscrowStatus.RELEASED.value,
            )
        )
    ).one()

    return {
        "listings_by_status": counts,
        "total_sales": int(sales_count or 0),
        "total_earnings": to_money(sales_total or 0),
    }
