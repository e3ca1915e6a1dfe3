"""Escrow custodian.

Funds move HOLDING -> RELEASED | REFUNDED | DISPUTED, and DISPUTED -> RELEASED |
REFUNDED by an admin. Every move is one guarded UPDATE with a rowcount check,
so when two admins race (release vs refund, or release twice) exactly one wins
and the other gets InvalidStateError naming the winner's status.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import func

from campusmarket.core.errors import AuthorizationError, InvalidStateError, NotFoundError, ValidationError
from campusmarket.core.principal import AdminPrincipal, Principal, SystemPrincipal, ensure_admin, ensure_system
from campusmarket.models.escrow import EscrowStatus, EscrowTransaction
from campusmarket.models.listing import ListingStatus
from campusmarket.services.audit import audit
from campusmarket.services.listing_state import load_listing
from campusmarket.services.outbox import emit_event

log = logging.getLogger(__name__)

E = EscrowStatus

# statuses a listing must be in for a sale to be recorded against it
SELLABLE = frozenset({ListingStatus.ACTIVE.value, ListingStatus.SOLD.value})

# an admin may settle held or disputed funds
SETTLEABLE = frozenset({E.HOLDING, E.DISPUTED})

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


@dataclass(frozen=True)
class BuyerInfo:
    name: str
    phone: str
    email: str | None = None
    buyer_id: str | None = None


def _validate_buyer(buyer: BuyerInfo) -> BuyerInfo:
    name = (buyer.name or "").strip()
    phone = (buyer.phone or "").strip()
    email = (buyer.email or "").strip() or None
    if len(name) < 2:
        raise ValidationError("Buyer name is required", detail={"field": "buyer_name"})
    if len(phone) < 10:
        raise ValidationError("Buyer phone number is required", detail={"field": "buyer_phone"})
    if email is not None and not _EMAIL_RE.match(email):
        raise ValidationError("Valid email is required", detail={"field": "buyer_email"})
    return BuyerInfo(name=name, phone=phone, email=email, buyer_id=buyer.buyer_id)


def _escrow_event_payload(escrow: EscrowTransaction, **extra) -> dict:
    return {
        "escrow_id": escrow.id,
        "listing_id": escrow.listing_id,
        "seller_id": escrow.seller_id,
        "buyer_id": escrow.buyer_id,
        "amount": str(escrow.amount),
        "status": escrow.status,
        **extra,
    }


async def load_escrow(db: AsyncSession, escrow_id: str, *, refresh: bool = False) -> EscrowTransaction:
    stmt = select(EscrowTransaction).where(EscrowTransaction.id == escrow_id)
    if refresh:
        stmt = stmt.execution_options(populate_existing=True)
    escrow = (await db.execute(stmt)).scalar_one_or_none()
    if not escrow:
        raise NotFoundError("Escrow transaction not found", detail={"escrow_id": escrow_id})
    return escrow


async def _transition_escrow(
    db: AsyncSession,
    *,
    escrow_id: str,
    target: EscrowStatus,
    expected: Iterable[EscrowStatus],
    values: dict | None = None,
) -> EscrowTransaction:
    stmt = (
        update(EscrowTransaction)
        .where(
            EscrowTransaction.id == escrow_id,
            EscrowTransaction.status.in_([s.value for s in expected]),
        )
        .values(status=target.value, updated_at=func.now(), **(values or {}))
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)

    if int(result.rowcount or 0) == 0:
        current = await load_escrow(db, escrow_id, refresh=True)
        log.info("escrow %s: %s lost (current=%s)", escrow_id, target.value, current.status)
        raise InvalidStateError(
            f"Escrow is already {current.status}",
            current_status=current.status,
            detail={"escrow_id": escrow_id},
        )

    escrow = await load_escrow(db, escrow_id, refresh=True)
    log.info("escrow %s: -> %s", escrow_id, target.value)
    return escrow


async def open_escrow(
    db: AsyncSession,
    *,
    listing_id: str,
    buyer: BuyerInfo,
    recorder: SystemPrincipal,
) -> EscrowTransaction:
    """
    Record a sale: hold the buyer's money against the listing.
    The amount is the listing price right now and never changes afterwards.
    Only the checkout integration (or an admin) records sales; a seller
    can never be the buyer of their own listing.
    """
    recorder = ensure_system(recorder)
    buyer = _validate_buyer(buyer)
    listing = await load_listing(db, listing_id)

    if buyer.buyer_id is not None and buyer.buyer_id == listing.seller_id:
        raise AuthorizationError("Sellers cannot buy their own listing", detail={"listing_id": listing_id})

    if listing.status not in SELLABLE:
        raise InvalidStateError(
            f"Listing is {listing.status}; it cannot be sold",
            current_status=listing.status,
            detail={"listing_id": listing_id},
        )

    open_one = (
        await db.execute(
            select(EscrowTransaction.id).where(
                EscrowTransaction.listing_id == listing_id,
                EscrowTransaction.status == E.HOLDING.value,
            )
        )
    ).scalar_one_or_none()
    if open_one:
        raise InvalidStateError(
            "An escrow is already holding funds for this listing",
            current_status=listing.status,
            detail={"listing_id": listing_id, "escrow_id": open_one},
        )

    escrow = EscrowTransaction(
        listing_id=listing.id,
        seller_id=listing.seller_id,
        amount=listing.price,
        buyer_id=buyer.buyer_id,
        buyer_name=buyer.name,
        buyer_phone=buyer.phone,
        buyer_email=buyer.email,
        status=E.HOLDING.value,
    )
    db.add(escrow)
    try:
        await db.flush()
    except IntegrityError:
        # lost the race against a concurrent sale (partial unique index on HOLDING)
        raise InvalidStateError(
            "An escrow is already holding funds for this listing",
            current_status=listing.status,
            detail={"listing_id": listing_id},
        )

    await audit(
        db,
        actor_id=recorder.user_id,
        action="escrow.open",
        target_type="escrow",
        target_id=escrow.id,
        detail={"listing_id": listing_id, "buyer_id": buyer.buyer_id, "amount": str(escrow.amount)},
    )
    emit_event(
        db,
        aggregate_type="escrow",
        aggregate_id=escrow.id,
        event_type="escrow.opened",
        payload=_escrow_event_payload(escrow),
    )
    log.info("escrow %s opened for listing %s (amount=%s)", escrow.id, listing_id, escrow.amount)
    return escrow


async def release_escrow(db: AsyncSession, *, escrow_id: str, admin: AdminPrincipal) -> EscrowTransaction:
    admin = ensure_admin(admin)
    escrow = await _transition_escrow(
        db,
        escrow_id=escrow_id,
        target=E.RELEASED,
        expected=SETTLEABLE,
        values={"released_at": func.now()},
    )

    await audit(db, actor_id=admin.user_id, action="escrow.release", target_type="escrow", target_id=escrow_id)
    emit_event(
        db,
        aggregate_type="escrow",
        aggregate_id=escrow_id,
        event_type="escrow.released",
        payload=_escrow_event_payload(escrow),
    )
    return escrow


async def refund_escrow(
    db: AsyncSession,
    *,
    escrow_id: str,
    admin: AdminPrincipal,
    reason: str | None = None,
) -> EscrowTransaction:
    admin = ensure_admin(admin)
    reason = (reason or "").strip() or None
    escrow = await _transition_escrow(
        db,
        escrow_id=escrow_id,
        target=E.REFUNDED,
        expected=SETTLEABLE,
        values={"resolution_reason": reason},
    )

    await audit(
        db,
        actor_id=admin.user_id,
        action="escrow.refund",
        target_type="escrow",
        target_id=escrow_id,
        detail={"reason": reason} if reason else None,
    )
    emit_event(
        db,
        aggregate_type="escrow",
        aggregate_id=escrow_id,
        event_type="escrow.refunded",
        payload=_escrow_event_payload(escrow, reason=reason),
    )
    return escrow


def _is_party(escrow: EscrowTransaction, principal: Principal) -> bool:
    if principal.user_id == escrow.seller_id:
        return True
    return escrow.buyer_id is not None and principal.user_id == escrow.buyer_id


async def dispute_escrow(
    db: AsyncSession,
    *,
    escrow_id: str,
    party: Principal,
    reason: str | None = None,
) -> EscrowTransaction:
    """Either side of the sale can freeze held funds; only an admin can settle them afterwards."""
    escrow = await load_escrow(db, escrow_id)
    if not _is_party(escrow, party):
        raise AuthorizationError("Only the buyer or the seller can dispute", detail={"escrow_id": escrow_id})

    reason = (reason or "").strip() or None
    escrow = await _transition_escrow(
        db,
        escrow_id=escrow_id,
        target=E.DISPUTED,
        expected=[E.HOLDING],
        values={"disputed_by": party.user_id},
    )

    await audit(
        db,
        actor_id=party.user_id,
        action="escrow.dispute",
        target_type="escrow",
        target_id=escrow_id,
        detail={"reason": reason} if reason else None,
    )
    emit_event(
        db,
        aggregate_type="escrow",
        aggregate_id=escrow_id,
        event_type="escrow.disputed",
        payload=_escrow_event_payload(escrow, disputed_by=party.user_id, reason=reason),
    )
    return escrow


async def get_escrow(db: AsyncSession, *, escrow_id: str, viewer: Principal) -> EscrowTransaction:
    escrow = await load_escrow(db, escrow_id)
    if viewer.is_admin or _is_party(escrow, viewer):
        return escrow
    raise AuthorizationError("Not a party to this escrow", detail={"escrow_id": escrow_id})


async def list_escrows(
    db: AsyncSession,
    *,
    admin: AdminPrincipal,
    status: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[EscrowTransaction]:
    ensure_admin(admin)
    stmt = select(EscrowTransaction)
    if status:
        try:
            wanted = EscrowStatus(status)
        except ValueError:
            raise ValidationError(f"Unknown escrow status: {status}", detail={"field": "status"})
        stmt = stmt.where(EscrowTransaction.status == wanted.value)
    stmt = stmt.order_by(EscrowTransaction.created_at.desc(), EscrowTransaction.id).limit(limit).offset(offset)
    return list((await db.execute(stmt)).scalars().all())
