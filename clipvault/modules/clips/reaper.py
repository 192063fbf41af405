import asyncio
import logging
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from clipvault.modules.clips.repository import ClipRepository
from clipvault.modules.clips.service import ClipRegistry
from clipvault.platform.ports.content_store import ContentStorePort

log = logging.getLogger("clips.reaper")

async def purge_inactive(session: AsyncSession, store: ContentStorePort, *, limit: int = 50) -> int:
    """Hard-delete soft-deleted clips whose reclaim did not finish at delete time."""
    repo = ClipRepository(session)
    registry = ClipRegistry(session, store)
    purged = 0
    for clip in await repo.list_inactive(limit=limit):
        if await registry.hard_delete(clip.id):
            purged += 1
    return purged

async def reclaim_orphans(session: AsyncSession, store: ContentStorePort) -> int:
    """Delete blobs that no clip record points at (left behind by a crash between blob and record writes)."""
    referenced = await ClipRepository(session).referenced_blob_ids()
    removed = 0
    async for blob_id in store.iter_blob_ids():
        if blob_id in referenced:
            continue
        await store.delete(blob_id)
        log.info("Removed orphan blob %s", blob_id)
        removed += 1
    return removed

async def run_blob_reaper(session_factory: async_sessionmaker, store: ContentStorePort, poll_interval_seconds: float = 300.0):
    log.info("Blob reaper started with store=%s", store.__class__.__name__)
    try:
        while True:
            async with session_factory() as session:
                try:
                    purged = await purge_inactive(session, store)
                    if purged:
                        log.info("Reaper purged %d inactive clips", purged)
                except Exception:
                    log.exception("Reaper iteration failed")
                    await session.rollback()
            await asyncio.sleep(poll_interval_seconds)
    except asyncio.CancelledError:
        log.info("Blob reaper cancelled; shutting down")
        raise
