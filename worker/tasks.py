import asyncio
import logging

from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker

from worker.celery_app import celery
from campusmarket.core.config import settings
import campusmarket.models  # noqa: F401  # ensures Models are registered
from campusmarket.services.notifications import NotificationSink
from campusmarket.services.outbox_dispatcher import process_outbox_event as deliver_outbox_event

log = logging.getLogger(__name__)


async def _process_outbox_event(outbox_id: str, lease_id: str) -> str:
    engine = create_async_engine(settings.database_url, pool_pre_ping=True)
    Session = async_sessionmaker(engine, expire_on_commit=False)
    sink = NotificationSink()

    try:
        async with Session() as db:
            status = await deliver_outbox_event(db, outbox_id=outbox_id, lease_id=lease_id, sink=sink)
    finally:
        await sink.aclose()
        await engine.dispose()

    log.info("outbox %s: %s", outbox_id, status)
    return status


@celery.task(name="worker.tasks.process_outbox_event", bind=True, max_retries=5)
def process_outbox_event(self, outbox_id: str, lease_id: str) -> str:
    return asyncio.run(_process_outbox_event(outbox_id, lease_id))
