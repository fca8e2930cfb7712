import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager

from app.analytics.db import init_db, purge_old_records
from app.api.v1.generation import get_pipeline, get_store, get_usage_tracker

logger = logging.getLogger(__name__)

PURGE_INTERVAL_S = 3600


async def _purge_usage_records(stop_event: asyncio.Event) -> None:
    while not stop_event.is_set():
        try:
            deleted = await asyncio.to_thread(purge_old_records)
            if any(deleted.values()):
                logger.info("ai_usage_retention_purge deleted=%s", deleted)
        except Exception as exc:
            logger.warning("ai_usage_retention_purge_failed: %s", exc, exc_info=True)
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(stop_event.wait(), timeout=PURGE_INTERVAL_S)


def _startup() -> None:
    init_db()
    purge_old_records()
    get_store()
    config = get_pipeline().config
    logger.info(
        "ai_pipeline_ready free=%s/%s premium=%s/%s",
        config.free_provider,
        config.free_model,
        config.premium_provider,
        config.premium_model,
    )


async def _shutdown() -> None:
    pending = get_usage_tracker().pending
    if pending:
        logger.info("ai_usage_drain pending=%s", pending)
    await get_usage_tracker().drain()
    get_store().close()


@asynccontextmanager
async def lifespan(app):
    _startup()
    stop_event = asyncio.Event()
    purge_task = asyncio.create_task(_purge_usage_records(stop_event))
    try:
        yield
    finally:
        stop_event.set()
        purge_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await purge_task
        await _shutdown()
