import contextlib
from contextlib import asynccontextmanager
import asyncio
import logging

from app.analytics.db import init_db, purge_old_records
from app.core.badge_catalog import load_badge_catalog
from app.store.sqlite_store import get_store

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app):
    store = get_store()
    seeded = store.seed_badges(load_badge_catalog())
    logger.info("badge_catalog_seeded inserted=%s db=%s", seeded, store.db_path)
    init_db()

    stop_event = asyncio.Event()

    async def periodic_purge() -> None:
        while not stop_event.is_set():
            try:
                deleted = purge_old_records()
                if any(deleted.values()):
                    logger.info("analytics_retention_purge deleted=%s", deleted)
            except Exception as exc:  # pragma: no cover
                logger.warning("analytics_retention_purge_failed: %s", exc)
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=3600)
            except asyncio.TimeoutError:
                continue

    purge_task = asyncio.create_task(periodic_purge())
    yield
    stop_event.set()
    if not purge_task.done():
        purge_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await purge_task
    store.close()
