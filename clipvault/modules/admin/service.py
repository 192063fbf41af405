import logging
import re
import uuid
from typing import Sequence
from sqlalchemy.ext.asyncio import AsyncSession
from clipvault.core.config import settings
from clipvault.core.errors import NotFoundError, PayloadTooLargeError, UnsupportedMediaTypeError, WeakPasswordError
from clipvault.core.security import hash_password
from clipvault.modules.clips.models import AudioClip
from clipvault.modules.clips.repository import ClipRepository
from clipvault.modules.clips.service import ClipRegistry, parse_clip_id
from clipvault.platform.ports.content_store import ContentStorePort

log = logging.getLogger("admin.clips")

def share_url(clip_id: uuid.UUID) -> str:
    return f"{settings.PUBLIC_BASE_URL.rstrip('/')}/clip/{clip_id}"

def check_upload(mime_type: str | None, size: int | None) -> None:
    if mime_type not in settings.ALLOWED_AUDIO_TYPES:
        log.info("Upload rejected: content type %s", mime_type)
        raise UnsupportedMediaTypeError()
    if size is not None and size > settings.MAX_FILE_SIZE:
        raise PayloadTooLargeError()

MIN_PASSWORD_LENGTH = 4
WEAK_PASSWORD_PATTERNS = [
    re.compile(r"(.)\1{5,}"),
    re.compile(r"123456|234567|345678|456789|567890"),
    re.compile(r"qwertyuiop|asdfghjkl|zxcvbnm", re.IGNORECASE),
    re.compile(r"password123|admin123|user123", re.IGNORECASE),
]

def check_clip_password(password: str) -> None:
    if len(password) < MIN_PASSWORD_LENGTH:
        raise WeakPasswordError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    if any(p.search(password) for p in WEAK_PASSWORD_PATTERNS):
        raise WeakPasswordError()

class AdminClipService:
    def __init__(self, session: AsyncSession, store: ContentStorePort):
        self.session = session
        self.store = store
        self.repo = ClipRepository(session)
        self.registry = ClipRegistry(session, store)

    async def upload(self, *, title: str, filename: str, mime_type: str, data: bytes, password: str) -> AudioClip:
        check_clip_password(password)
        check_upload(mime_type, len(data))
        password_hash = await hash_password(password)
        # blob first; a record never points at bytes that failed to write
        stored = await self.store.put(data, filename, {"content_type": mime_type, "title": title})
        try:
            obj = await self.repo.create(
                title=title,
                filename=filename,
                blob_id=stored.blob_id,
                file_path=None,
                file_size=stored.length,
                mime_type=mime_type,
                sha256=stored.sha256,
                password_hash=password_hash,
            )
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            log.exception("Clip record write failed; removing blob %s", stored.blob_id)
            await self.store.delete(stored.blob_id)
            raise
        log.info("Uploaded clip %s (%s, %d bytes)", obj.id, title, stored.length)
        return obj

    async def list_clips(self) -> Sequence[AudioClip]:
        return await self.repo.list_active()

    async def get_clip(self, clip_id: str) -> AudioClip:
        obj = await self.repo.find_by_id(parse_clip_id(clip_id))
        if obj is None:
            raise NotFoundError()
        return obj

    async def delete_clip(self, clip_id: str) -> bool:
        """Mark inactive right away, then try to reclaim. The reaper retries whatever is left."""
        deactivated = await self.registry.soft_delete(clip_id)
        try:
            purged = await self.registry.hard_delete(clip_id)
        except Exception:
            await self.session.rollback()
            log.exception("Hard delete of clip %s deferred to reaper", clip_id)
            purged = False
        return deactivated or purged
