import uuid
from typing import Sequence
from sqlalchemy import select, update, delete
from sqlalchemy.ext.asyncio import AsyncSession
from clipvault.core.base import utcnow
from clipvault.modules.clips.models import AudioClip

class ClipRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, *, title: str, filename: str, blob_id: str | None, file_path: str | None,
                     file_size: int, mime_type: str, sha256: str | None, password_hash: str) -> AudioClip:
        obj = AudioClip(
            title=title, filename=filename, blob_id=blob_id, file_path=file_path,
            file_size=file_size, mime_type=mime_type, sha256=sha256,
            password_hash=password_hash, access_count=0, is_active=True,
        )
        self.session.add(obj)
        await self.session.flush()
        return obj

    async def find_by_id(self, clip_id: uuid.UUID, *, include_inactive: bool = False) -> AudioClip | None:
        q = select(AudioClip).where(AudioClip.id == clip_id)
        if not include_inactive:
            q = q.where(AudioClip.is_active.is_(True))
        res = await self.session.execute(q)
        return res.scalar_one_or_none()

    async def list_active(self) -> Sequence[AudioClip]:
        q = select(AudioClip).where(AudioClip.is_active.is_(True)).order_by(AudioClip.created_at.desc())
        res = await self.session.execute(q)
        return res.scalars().all()

    async def list_inactive(self, limit: int = 50) -> Sequence[AudioClip]:
        q = select(AudioClip).where(AudioClip.is_active.is_(False)).order_by(AudioClip.updated_at.asc()).limit(limit)
        res = await self.session.execute(q)
        return res.scalars().all()

    async def touch_access(self, clip_id: uuid.UUID) -> int | None:
        # single statement so concurrent verifications of one clip never lose an increment
        q = (
            update(AudioClip)
            .where(AudioClip.id == clip_id, AudioClip.is_active.is_(True))
            .values(access_count=AudioClip.access_count + 1, last_accessed_at=utcnow())
            .returning(AudioClip.access_count)
            .execution_options(synchronize_session=False)
        )
        res = await self.session.execute(q)
        return res.scalar_one_or_none()

    async def soft_delete(self, clip_id: uuid.UUID) -> bool:
        q = (
            update(AudioClip)
            .where(AudioClip.id == clip_id, AudioClip.is_active.is_(True))
            .values(is_active=False, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        res = await self.session.execute(q)
        return res.rowcount > 0

    async def delete_record(self, clip_id: uuid.UUID) -> None:
        await self.session.execute(
            delete(AudioClip).where(AudioClip.id == clip_id).execution_options(synchronize_session=False)
        )

    async def referenced_blob_ids(self) -> set[str]:
        res = await self.session.execute(select(AudioClip.blob_id).where(AudioClip.blob_id.is_not(None)))
        return set(res.scalars().all())
