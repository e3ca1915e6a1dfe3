import pytest
from sqlalchemy import select

from campusmarket.core.errors import AuthorizationError, InvalidStateError
from campusmarket.models.audit_log import AuditLog
from campusmarket.models.listing import ListingStatus
from campusmarket.models.outbox import OutboxEvent
from campusmarket.services.listings import list_pending_review
from campusmarket.services.moderation import DEFAULT_REJECT_REASON, approve_listing, reject_listing
from campusmarket.services.transactions import run_atomic

from fixtures_seed import ADMIN, SELLER

S = ListingStatus


@pytest.mark.asyncio
async def test_approve_pending_review(db_session, make_listing):
    listing = await make_listing(S.PENDING_REVIEW)
    admin = ADMIN.as_admin()

    assert [l.id for l in await list_pending_review(db_session, admin=admin)] == [listing.id]

    approved = await run_atomic(db_session, lambda s: approve_listing(s, listing_id=listing.id, admin=admin))
    assert approved.status == S.ACTIVE.value

    assert await list_pending_review(db_session, admin=admin) == []

    actions = (await db_session.execute(select(AuditLog.action).where(AuditLog.target_id == listing.id))).scalars().all()
    assert actions == ["listing.approve"]


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [S.PENDING_COMMISSION, S.ACTIVE, S.REJECTED, S.ARCHIVED, S.SOLD])
async def test_approve_requires_pending_review(db_session, make_listing, status):
    listing = await make_listing(status)
    with pytest.raises(InvalidStateError) as ei:
        await run_atomic(db_session, lambda s: approve_listing(s, listing_id=listing.id, admin=ADMIN.as_admin()))
    assert ei.value.current_status == status.value


@pytest.mark.asyncio
async def test_reject_with_reason_notifies_seller(db_session, make_listing):
    listing = await make_listing(S.PENDING_REVIEW)
    rejected = await run_atomic(
        db_session,
        lambda s: reject_listing(s, listing_id=listing.id, admin=ADMIN.as_admin(), reason="Blurry photos"),
    )
    assert rejected.status == S.REJECTED.value

    ev = (
        await db_session.execute(select(OutboxEvent).where(OutboxEvent.event_type == "listing.rejected"))
    ).scalar_one()
    assert ev.payload["reason"] == "Blurry photos"
    assert ev.payload["seller_id"] == SELLER.user_id


@pytest.mark.asyncio
async def test_reject_without_reason_uses_default(db_session, make_listing):
    listing = await make_listing(S.PENDING_REVIEW)
    await run_atomic(db_session, lambda s: reject_listing(s, listing_id=listing.id, admin=ADMIN.as_admin()))

    ev = (
        await db_session.execute(select(OutboxEvent).where(OutboxEvent.event_type == "listing.rejected"))
    ).scalar_one()
    assert ev.payload["reason"] == DEFAULT_REJECT_REASON


@pytest.mark.asyncio
async def test_moderation_requires_admin(db_session, make_listing):
    listing = await make_listing(S.PENDING_REVIEW)
    with pytest.raises(AuthorizationError):
        await run_atomic(db_session, lambda s: approve_listing(s, listing_id=listing.id, admin=SELLER))
    with pytest.raises(AuthorizationError):
        await list_pending_review(db_session, admin=SELLER)


@pytest.mark.asyncio
async def test_approve_and_reject_race(db_session, session_factory, make_listing):
    listing = await make_listing(S.PENDING_REVIEW)
    admin = ADMIN.as_admin()

    async with session_factory() as a, session_factory() as b:
        await run_atomic(a, lambda s: approve_listing(s, listing_id=listing.id, admin=admin))
        with pytest.raises(InvalidStateError) as ei:
            await run_atomic(b, lambda s: reject_listing(s, listing_id=listing.id, admin=admin))

    assert ei.value.current_status == S.ACTIVE.value
