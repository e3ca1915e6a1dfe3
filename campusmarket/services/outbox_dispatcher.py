from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from campusmarket.core.config import settings
from campusmarket.models.outbox import OutboxEvent
from campusmarket.services.notifications import DeliveryError, NotificationSink
from campusmarket.services.retry import exhausted, next_attempt_at

log = logging.getLogger(__name__)

Enqueue = Callable[[str, str], None]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def requeue_expired_leases(
    db: AsyncSession,
    *,
    now: datetime | None = None,
    max_attempts: int | None = None,
) -> int:
    """
    Return events whose lease ran out to pending. Events that already used up
    their attempts (a worker keeps dying on them) are dead-lettered instead.
    Returns how many were put back to pending.
    """
    now = now or _utcnow()
    max_attempts = settings.outbox_max_attempts if max_attempts is None else max_attempts
    expired = (
        OutboxEvent.status == "processing",
        OutboxEvent.lease_expires_at.is_not(None),
        OutboxEvent.lease_expires_at < now,
    )
    released = dict(lease_id=None, lease_expires_at=None, processing_started_at=None)

    dead = await db.execute(
        update(OutboxEvent)
        .where(*expired, OutboxEvent.attempts >= max_attempts)
        .values(status="dead", next_attempt_at=None, last_error="dead: lease expired on final attempt", **released)
        .execution_options(synchronize_session=False)
    )
    if dead.rowcount:
        log.warning("outbox: %d expired leases dead-lettered", dead.rowcount)

    result = await db.execute(
        update(OutboxEvent)
        .where(*expired)
        .values(status="pending", last_error="requeued: lease expired", **released)
        .execution_options(synchronize_session=False)
    )
    return int(result.rowcount or 0)


async def claim_outbox_event_ids(
    db: AsyncSession,
    batch_size: int = 100,
    lease_minutes: int = 10,
    *,
    now: datetime | None = None,
) -> tuple[str, list[str]]:
    now = now or _utcnow()
    lease_id = uuid.uuid4().hex
    expires_at = now + timedelta(minutes=lease_minutes)

    # Lock and select due pending rows (SKIP LOCKED lets several dispatchers run)
    stmt = (
        select(OutboxEvent.id)
        .where(
            OutboxEvent.status == "pending",
            or_(OutboxEvent.next_attempt_at.is_(None), OutboxEvent.next_attempt_at <= now),
        )
        .order_by(OutboxEvent.created_at.asc(), OutboxEvent.id)
        .with_for_update(skip_locked=True)
        .limit(batch_size)
    )
    ids = list((await db.execute(stmt)).scalars().all())
    if not ids:
        return lease_id, []

    await db.execute(
        update(OutboxEvent)
        .where(OutboxEvent.id.in_(ids), OutboxEvent.status == "pending")
        .values(
            status="processing",
            processing_started_at=now,
            attempts=OutboxEvent.attempts + 1,
            lease_id=lease_id,
            lease_expires_at=expires_at,
        )
        .execution_options(synchronize_session=False)
    )
    await db.flush()
    return lease_id, ids


def _celery_enqueue(outbox_id: str, lease_id: str) -> None:
    from worker.celery_app import celery

    celery.send_task("worker.tasks.process_outbox_event", args=[outbox_id, lease_id], queue="outbox")


async def dispatch_outbox(
    db: AsyncSession,
    batch_size: int = 100,
    lease_minutes: int = 10,
    *,
    enqueue: Enqueue | None = None,
) -> int:
    enqueue = enqueue or _celery_enqueue

    # reclaim expired leases
    await requeue_expired_leases(db)

    lease_id, ids = await claim_outbox_event_ids(db, batch_size=batch_size, lease_minutes=lease_minutes)

    # Commit before enqueue so workers can read status/rows
    await db.commit()

    if not ids:
        return 0

    failed: list[tuple[str, str]] = []
    dispatched = 0

    for outbox_id in ids:
        try:
            enqueue(outbox_id, lease_id)
            dispatched += 1
        except Exception as e:
            failed.append((outbox_id, f"{type(e).__name__}: {e}"))

    # if enqueue fails, return those items to pending
    if failed:
        for outbox_id, msg in failed:
            log.warning("outbox %s: enqueue failed: %s", outbox_id, msg)
            await db.execute(
                update(OutboxEvent)
                .where(OutboxEvent.id == outbox_id, OutboxEvent.lease_id == lease_id)
                .values(
                    status="pending",
                    lease_id=None,
                    lease_expires_at=None,
                    processing_started_at=None,
                    last_error=f"enqueue failed: {msg}",
                )
                .execution_options(synchronize_session=False)
            )
        await db.commit()

    return dispatched


def _failed_values(error: str, *, retryable: bool, attempts: int, max_attempts: int) -> dict:
    if not retryable or exhausted(attempts, max_attempts):
        return dict(status="dead", last_error=error, next_attempt_at=None)
    return dict(status="pending", last_error=error, next_attempt_at=next_attempt_at(attempts))


async def process_outbox_event(
    db: AsyncSession,
    *,
    outbox_id: str,
    lease_id: str,
    sink: NotificationSink,
    max_attempts: int | None = None,
) -> str:
    """
    Deliver one claimed event. Returns the resulting outbox status
    ("done", "pending", "dead") or "skipped" when the lease is no longer ours.
    Nothing here touches listings or escrows: a failed delivery never undoes a transition.
    """
    max_attempts = settings.outbox_max_attempts if max_attempts is None else max_attempts

    stmt = select(OutboxEvent).where(OutboxEvent.id == outbox_id).execution_options(populate_existing=True)
    ev = (await db.execute(stmt)).scalar_one_or_none()
    if not ev or ev.lease_id != lease_id or ev.status != "processing":
        # Another dispatcher reclaimed it or it's already done.
        return "skipped"

    event_type, payload, attempts = ev.event_type, dict(ev.payload or {}), ev.attempts

    try:
        await sink.deliver(event_id=outbox_id, event_type=event_type, payload=payload)
    except DeliveryError as e:
        values = _failed_values(str(e), retryable=e.retryable, attempts=attempts, max_attempts=max_attempts)
        log.warning("outbox %s (%s): delivery failed (attempt %d): %s", outbox_id, event_type, attempts, e)
    except Exception as e:
        # a crashing sink must not leave the row in processing
        values = _failed_values(f"{type(e).__name__}: {e}", retryable=True, attempts=attempts, max_attempts=max_attempts)
        log.exception("outbox %s (%s): delivery crashed (attempt %d)", outbox_id, event_type, attempts)
    else:
        values = dict(status="done", processed_at=_utcnow(), last_error=None)

    result = await db.execute(
        update(OutboxEvent)
        .where(OutboxEvent.id == outbox_id, OutboxEvent.lease_id == lease_id)
        .values(lease_id=None, lease_expires_at=None, processing_started_at=None, **values)
        .execution_options(synchronize_session=False)
    )
    if int(result.rowcount or 0) == 0:
        # lease lost; do not overwrite
        await db.rollback()
        return "skipped"

    await db.commit()
    return values["status"]
