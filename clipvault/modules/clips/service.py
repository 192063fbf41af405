import logging
import uuid
from dataclasses import dataclass
from sqlalchemy.ext.asyncio import AsyncSession
from clipvault.core.errors import ContentMissingError, InvalidCredentialError, NotFoundError
from clipvault.core.security import dummy_password_hash, verify_password
from clipvault.modules.clips.models import AudioClip, StoreBlob
from clipvault.modules.clips.ranges import parse_range_header
from clipvault.modules.clips.repository import ClipRepository
from clipvault.modules.clips.streaming import StreamPlan, resolve_content
from clipvault.modules.clips.tokens import check_stream_token, mint_stream_token
from clipvault.platform.ports.content_store import ContentStorePort

log = logging.getLogger("clips.access")

def parse_clip_id(raw: str | uuid.UUID) -> uuid.UUID:
    if isinstance(raw, uuid.UUID):
        return raw
    try:
        return uuid.UUID(str(raw))
    except ValueError:
        raise NotFoundError()

@dataclass
class VerifyResult:
    clip: AudioClip
    access_count: int
    stream_token: str

class ClipAccessService:
    """Read path for visitors: public metadata, password check, stream setup."""

    def __init__(self, session: AsyncSession, store: ContentStorePort):
        self.session = session
        self.store = store
        self.repo = ClipRepository(session)

    async def get_active(self, clip_id: str | uuid.UUID) -> AudioClip:
        obj = await self.repo.find_by_id(parse_clip_id(clip_id))
        if obj is None:
            raise NotFoundError()
        return obj

    async def verify(self, clip_id: str | uuid.UUID, password: str) -> VerifyResult:
        try:
            clip = await self.get_active(clip_id)
        except NotFoundError:
            # unknown ids pay the same bcrypt cost as a wrong password
            await verify_password(password, await dummy_password_hash())
            raise
        try:
            await resolve_content(clip, self.store)
        except ContentMissingError:
            log.error("Clip %s has no retrievable content (blob_id=%s file_path=%s)", clip.id, clip.blob_id, clip.file_path)
            raise

        if not await verify_password(password, clip.password_hash):
            log.info("Incorrect password for clip %s", clip.id)
            raise InvalidCredentialError()

        count = await self.repo.touch_access(clip.id)
        if count is None:
            # deactivated between lookup and update
            raise NotFoundError()
        await self.session.commit()
        token = mint_stream_token(clip.id)
        log.info("Access granted to clip %s (access #%d)", clip.id, count)
        return VerifyResult(clip=clip, access_count=count, stream_token=token)

    async def prepare_stream(self, clip_id: str | uuid.UUID, token: str, range_header: str | None) -> StreamPlan:
        clip = await self.get_active(clip_id)
        check_stream_token(token, clip.id)
        content = await resolve_content(clip, self.store)
        byte_range = parse_range_header(range_header, content.length)
        if byte_range is not None:
            log.debug("Range request for %s: %d-%d of %d", clip.id, byte_range.start, byte_range.end, content.length)
        return StreamPlan(
            clip_id=str(clip.id),
            mime_type=clip.mime_type,
            length=content.length,
            byte_range=byte_range,
            content=content,
        )


class ClipRegistry:
    """Write-side lifecycle of clip records and the blobs they own."""

    def __init__(self, session: AsyncSession, store: ContentStorePort):
        self.session = session
        self.store = store
        self.repo = ClipRepository(session)

    async def soft_delete(self, clip_id: str | uuid.UUID) -> bool:
        try:
            cid = parse_clip_id(clip_id)
        except NotFoundError:
            return False
        changed = await self.repo.soft_delete(cid)
        await self.session.commit()
        return changed

    async def hard_delete(self, clip_id: str | uuid.UUID) -> bool:
        """Remove the blob (best effort) and then the record. Unknown ids are a no-op."""
        try:
            cid = parse_clip_id(clip_id)
        except NotFoundError:
            return False
        clip = await self.repo.find_by_id(cid, include_inactive=True)
        if clip is None:
            log.info("Clip %s already gone, nothing to delete", cid)
            return False
        ref = clip.content_ref
        if isinstance(ref, StoreBlob):
            try:
                await self.store.delete(ref.blob_id)
            except Exception:
                # the record goes anyway; the orphan sweep picks the blob up later
                log.exception("Blob %s of clip %s could not be deleted", ref.blob_id, cid)
        await self.repo.delete_record(cid)
        await self.session.commit()
        log.info("Clip %s deleted", cid)
        return True
