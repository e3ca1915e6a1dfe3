from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select, update

from campusmarket.models.listing import Listing, ListingStatus
from campusmarket.models.outbox import OutboxEvent
from campusmarket.services.moderation import approve_listing
from campusmarket.services.notifications import DeliveryError, NotificationSink, build_notification
from campusmarket.services.outbox_dispatcher import dispatch_outbox, process_outbox_event, requeue_expired_leases
from campusmarket.services.transactions import run_atomic

from fixtures_seed import ADMIN, BUYER, SELLER


class FlakySink:
    def __init__(self, *, retryable=True):
        self.retryable = retryable
        self.calls = 0

    async def deliver(self, *, event_id, event_type, payload):
        self.calls += 1
        raise DeliveryError("503: upstream unavailable", retryable=self.retryable)


async def _approved_listing_event(db_session, make_listing):
    listing = await make_listing(ListingStatus.PENDING_REVIEW)
    await run_atomic(db_session, lambda s: approve_listing(s, listing_id=listing.id, admin=ADMIN.as_admin()))
    return listing


async def _claim(session_factory):
    enqueued = []
    async with session_factory() as s:
        n = await dispatch_outbox(s, enqueue=lambda outbox_id, lease_id: enqueued.append((outbox_id, lease_id)))
    assert n == len(enqueued)
    return enqueued


async def _event(session_factory, outbox_id):
    async with session_factory() as s:
        return (await s.execute(select(OutboxEvent).where(OutboxEvent.id == outbox_id))).scalar_one()


def test_build_notification_targets_both_parties_for_escrow():
    note = build_notification(
        "escrow.released",
        {"escrow_id": "esc_1", "listing_id": "lst_1", "seller_id": SELLER.user_id, "buyer_id": BUYER.user_id},
    )
    assert note["recipients"] == [SELLER.user_id, BUYER.user_id]
    assert note["href"] == "/escrow/esc_1"

    assert build_notification("listing.created", {"listing_id": "lst_1"}) is None


@pytest.mark.asyncio
async def test_dispatch_and_deliver(db_session, session_factory, make_listing):
    await _approved_listing_event(db_session, make_listing)

    enqueued = await _claim(session_factory)
    assert len(enqueued) == 1
    outbox_id, lease_id = enqueued[0]

    # nothing left to claim while the lease is held
    assert await _claim(session_factory) == []

    async with session_factory() as s:
        status = await process_outbox_event(s, outbox_id=outbox_id, lease_id=lease_id, sink=NotificationSink(webhook_url=""))
    assert status == "done"

    ev = await _event(session_factory, outbox_id)
    assert ev.status == "done"
    assert ev.attempts == 1
    assert ev.processed_at is not None


@pytest.mark.asyncio
async def test_failed_delivery_is_rescheduled_and_transition_kept(db_session, session_factory, make_listing):
    listing = await _approved_listing_event(db_session, make_listing)
    [(outbox_id, lease_id)] = await _claim(session_factory)

    async with session_factory() as s:
        status = await process_outbox_event(s, outbox_id=outbox_id, lease_id=lease_id, sink=FlakySink())
    assert status == "pending"

    ev = await _event(session_factory, outbox_id)
    assert ev.next_attempt_at is not None
    assert "upstream unavailable" in ev.last_error

    async with session_factory() as s:
        current = (await s.execute(select(Listing.status).where(Listing.id == listing.id))).scalar_one()
    assert current == ListingStatus.ACTIVE.value


@pytest.mark.asyncio
async def test_non_retryable_or_exhausted_goes_dead(db_session, session_factory, make_listing):
    await _approved_listing_event(db_session, make_listing)
    [(outbox_id, lease_id)] = await _claim(session_factory)

    async with session_factory() as s:
        status = await process_outbox_event(
            s, outbox_id=outbox_id, lease_id=lease_id, sink=FlakySink(retryable=False)
        )
    assert status == "dead"


@pytest.mark.asyncio
async def test_exhausted_attempts_go_dead(db_session, session_factory, make_listing):
    await _approved_listing_event(db_session, make_listing)
    [(outbox_id, lease_id)] = await _claim(session_factory)

    async with session_factory() as s:
        status = await process_outbox_event(s, outbox_id=outbox_id, lease_id=lease_id, sink=FlakySink(), max_attempts=1)
    assert status == "dead"


@pytest.mark.asyncio
async def test_stale_lease_is_skipped(db_session, session_factory, make_listing):
    await _approved_listing_event(db_session, make_listing)
    [(outbox_id, _lease_id)] = await _claim(session_factory)

    sink = FlakySink()
    async with session_factory() as s:
        status = await process_outbox_event(s, outbox_id=outbox_id, lease_id="someone-else", sink=sink)
    assert status == "skipped"
    assert sink.calls == 0


@pytest.mark.asyncio
async def test_expired_leases_are_requeued(db_session, session_factory, make_listing):
    await _approved_listing_event(db_session, make_listing)
    [(outbox_id, _lease_id)] = await _claim(session_factory)

    later = datetime.now(timezone.utc) + timedelta(hours=1)
    async with session_factory() as s:
        assert await requeue_expired_leases(s, now=later) == 1
        await s.commit()

    ev = await _event(session_factory, outbox_id)
    assert ev.status == "pending"
    assert ev.lease_id is None


class CrashingSink:
    async def deliver(self, *, event_id, event_type, payload):
        raise RuntimeError("template missing")


@pytest.mark.asyncio
async def test_unexpected_sink_error_is_rescheduled(db_session, session_factory, make_listing):
    await _approved_listing_event(db_session, make_listing)
    [(outbox_id, lease_id)] = await _claim(session_factory)

    async with session_factory() as s:
        status = await process_outbox_event(s, outbox_id=outbox_id, lease_id=lease_id, sink=CrashingSink())
    assert status == "pending"

    ev = await _event(session_factory, outbox_id)
    assert ev.lease_id is None
    assert ev.next_attempt_at is not None
    assert ev.last_error == "RuntimeError: template missing"

    # and the last attempt dead-letters it
    ev_attempts = ev.attempts
    async with session_factory() as s:
        await s.execute(update(OutboxEvent).where(OutboxEvent.id == outbox_id).values(next_attempt_at=None))
        await s.commit()
    [(outbox_id, lease_id)] = await _claim(session_factory)
    async with session_factory() as s:
        status = await process_outbox_event(
            s, outbox_id=outbox_id, lease_id=lease_id, sink=CrashingSink(), max_attempts=ev_attempts + 1
        )
    assert status == "dead"


@pytest.mark.asyncio
async def test_expired_lease_on_last_attempt_goes_dead(db_session, session_factory, make_listing):
    await _approved_listing_event(db_session, make_listing)
    [(outbox_id, _lease_id)] = await _claim(session_factory)

    later = datetime.now(timezone.utc) + timedelta(hours=1)
    async with session_factory() as s:
        assert await requeue_expired_leases(s, now=later, max_attempts=1) == 0
        await s.commit()

    ev = await _event(session_factory, outbox_id)
    assert ev.status == "dead"
    assert ev.lease_id is None
    assert await _claim(session_factory) == []
