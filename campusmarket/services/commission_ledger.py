"""Commission payments.

A listing leaves PENDING_COMMISSION exactly when its CommissionPayment row is
written, in the same transaction. Ordering inside that transaction:

1. duplicate check (AlreadyPaidError, so a retried request never double-charges)
2. guarded UPDATE PENDING_COMMISSION -> PENDING_REVIEW, which also claims the row
3. payment insert, backed by the unique constraint on listing_id
4. external charge, keyed ``commission:<listing_id>``
5. caller commits

Any failure from 2 to 5 rolls back the whole transaction, so the listing is
never left in PENDING_REVIEW without a payment or the other way round.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from campusmarket.core.config import settings
from campusmarket.core.errors import AlreadyPaidError, AuthorizationError, InvalidStateError, PaymentError
from campusmarket.core.principal import Principal
from campusmarket.models.commission_payment import CommissionPayment
from campusmarket.models.listing import Listing, ListingStatus
from campusmarket.services.audit import audit
from campusmarket.services.commission import compute_commission
from campusmarket.services.listing_state import load_listing, transition_listing
from campusmarket.services.outbox import emit_event
from campusmarket.services.payments import PaymentGateway, get_payment_gateway

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommissionReceipt:
    listing: Listing
    payment: CommissionPayment


def commission_idempotency_key(listing_id: str) -> str:
    return f"commission:{listing_id}"


async def get_commission_payment(db: AsyncSession, listing_id: str) -> CommissionPayment | None:
    stmt = select(CommissionPayment).where(CommissionPayment.listing_id == listing_id)
    return (await db.execute(stmt)).scalar_one_or_none()


async def pay_commission(
    db: AsyncSession,
    *,
    listing_id: str,
    requester: Principal,
    gateway: PaymentGateway | None = None,
) -> CommissionReceipt:
    gateway = gateway or get_payment_gateway()

    listing = await load_listing(db, listing_id)
    if listing.seller_id != requester.user_id:
        raise AuthorizationError("Not your listing", detail={"listing_id": listing_id})

    if await get_commission_payment(db, listing_id) is not None:
        raise AlreadyPaidError("Commission already paid", detail={"listing_id": listing_id})

    # raises InvalidStateError (with the real status) unless still PENDING_COMMISSION
    try:
        listing = await transition_listing(
            db,
            listing_id=listing_id,
            target=ListingStatus.PENDING_REVIEW,
            expected=[ListingStatus.PENDING_COMMISSION],
        )
    except InvalidStateError:
        # a concurrent request passed the duplicate check too and committed first
        if await get_commission_payment(db, listing_id) is not None:
            raise AlreadyPaidError("Commission already paid", detail={"listing_id": listing_id})
        raise

    rate = settings.commission_rate
    amount = compute_commission(listing.price, rate)

    payment = CommissionPayment(
        listing_id=listing_id,
        seller_id=listing.seller_id,
        amount=amount,
        rate=rate,
        status="SUCCEEDED",
    )
    db.add(payment)
    try:
        await db.flush()
    except IntegrityError:
        # a concurrent request inserted first
        raise AlreadyPaidError("Commission already paid", detail={"listing_id": listing_id})

    try:
        charge = await asyncio.wait_for(
            gateway.charge(
                payer_id=requester.user_id,
                amount=amount,
                idempotency_key=commission_idempotency_key(listing_id),
                description=f"Listing commission for {listing_id}",
            ),
            timeout=settings.payment_timeout_seconds,
        )
    except asyncio.TimeoutError:
        log.warning("commission charge timed out for listing %s; rolling back", listing_id)
        raise PaymentError("Payment timed out", detail={"error_code": "TIMEOUT", "retryable": True})
    except PaymentError:
        log.warning("commission charge failed for listing %s; rolling back", listing_id)
        raise

    payment.provider_reference = charge.reference

    await audit(
        db,
        actor_id=requester.user_id,
        action="listing.commission_paid",
        target_type="listing",
        target_id=listing_id,
        detail={"amount": str(amount), "rate": str(rate), "reference": charge.reference},
    )
    emit_event(
        db,
        aggregate_type="listing",
        aggregate_id=listing_id,
        event_type="listing.commission_paid",
        payload={
            "listing_id": listing_id,
            "seller_id": listing.seller_id,
            "amount": str(amount),
            "status": listing.status,
        },
    )
    await db.flush()

    log.info("commission paid for listing %s: amount=%s ref=%s", listing_id, amount, charge.reference)
    return CommissionReceipt(listing=listing, payment=payment)
