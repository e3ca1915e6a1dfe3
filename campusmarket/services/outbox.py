from __future__ import annotations

from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from campusmarket.models.outbox import OutboxEvent


def emit_event(
    db: AsyncSession,
    *,
    aggregate_type: str,
    aggregate_id: str,
    event_type: str,
    payload: dict[str, Any],
) -> OutboxEvent:
    """
    Queue a notification in the same transaction as the state change.
    Delivery happens later in the worker, so a failing sink can never undo the transition.
    """
    ev = OutboxEvent(
        aggregate_type=aggregate_type,
        aggregate_id=aggregate_id,
        event_type=event_type,
        payload=payload,
        status="pending",
    )
    db.add(ev)
    return ev
