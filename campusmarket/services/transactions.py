from __future__ import annotations

import logging
from typing import Awaitable, Callable, TypeVar

from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from campusmarket.core.config import settings
from campusmarket.core.errors import StorageError

log = logging.getLogger(__name__)

T = TypeVar("T")


async def run_atomic(
    db: AsyncSession,
    op: Callable[[AsyncSession], Awaitable[T]],
    *,
    retries: int | None = None,
    label: str = "transition",
) -> T:
    """
    Run ``op`` as one transaction and commit it.

    Any exception rolls everything back, so a transition and its side records
    (payment row, audit row, outbox event) land together or not at all.
    Storage failures are retried ``retries`` times; after that StorageError.
    Constraint violations are not retried: they are answers, not outages.
    """
    attempts = settings.storage_retry_attempts if retries is None else retries
    attempt = 0
    while True:
        try:
            result = await op(db)
            await db.commit()
            return result
        except IntegrityError:
            await db.rollback()
            raise
        except (OperationalError, DBAPIError) as e:
            await db.rollback()
            if attempt >= attempts:
                log.error("%s: storage failure after %d attempt(s): %s", label, attempt + 1, e)
                raise StorageError("Storage is temporarily unavailable; nothing was changed") from e
            attempt += 1
            log.warning("%s: storage failure, retrying (%d/%d): %s", label, attempt, attempts, e)
        except BaseException:
            await db.rollback()
            raise
