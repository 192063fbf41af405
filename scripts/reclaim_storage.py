
import asyncio
import os
import sys

# Add the project root to the Python path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from clipvault.core.config import settings
from clipvault.core.db import SessionLocal, init_models, dispose_engine
from clipvault.core.logging import setup_logging
from clipvault.modules.clips.reaper import purge_inactive, reclaim_orphans
from clipvault.platform.provider_registry import registry

async def main():
    """
    Finish pending clip deletions, then remove blobs no clip references.
    Run while no uploads are in flight: a blob written a moment before its
    clip record would otherwise look orphaned.
    """
    setup_logging()
    await init_models()
    store = registry.content_store(settings)
    await store.startup()
    try:
        async with SessionLocal() as session:
            total = 0
            while True:
                purged = await purge_inactive(session, store)
                total += purged
                if not purged:
                    break
            print(f"Purged {total} soft-deleted clips.")
            removed = await reclaim_orphans(session, store)
            print(f"Removed {removed} orphaned blobs.")
    finally:
        await store.shutdown()
        await dispose_engine()

if __name__ == "__main__":
    asyncio.run(main())
