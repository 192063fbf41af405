import logging
import os
from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable

import anyio
from starlette.responses import StreamingResponse

from clipvault.core.config import settings
from clipvault.core.errors import ContentMissingError, NotFoundError, StorageReadError
from clipvault.modules.clips.models import AudioClip, LegacyPath, StoreBlob
from clipvault.modules.clips.ranges import content_range
from clipvault.platform.adapters.store_local import open_file_range
from clipvault.platform.ports.content_store import BlobStream, ByteRange, ContentStorePort

log = logging.getLogger("clips.stream")

Opener = Callable[[ByteRange | None], Awaitable[BlobStream]]

@dataclass
class ResolvedContent:
    """Where a clip's bytes live and how long they really are."""
    length: int
    open: Opener
    source: str

def _legacy_path(path: str) -> str:
    # old records hold either a full path or a bare file name inside the upload dir
    if os.path.dirname(path):
        return path
    return os.path.join(settings.LEGACY_UPLOAD_PATH, path)

async def resolve_content(clip: AudioClip, store: ContentStorePort) -> ResolvedContent:
    ref = clip.content_ref
    if isinstance(ref, StoreBlob):
        info = await store.info(ref.blob_id)
        if info is None:
            raise ContentMissingError()
        blob_id = ref.blob_id
        async def open_blob(byte_range: ByteRange | None) -> BlobStream:
            try:
                return await store.open_read(blob_id, byte_range)
            except NotFoundError:
                raise ContentMissingError()
        return ResolvedContent(length=info.length, open=open_blob, source=f"blob:{blob_id}")
    if isinstance(ref, LegacyPath):
        path = _legacy_path(ref.path)
        try:
            stat = await anyio.Path(path).stat()
        except FileNotFoundError:
            raise ContentMissingError()
        async def open_legacy(byte_range: ByteRange | None) -> BlobStream:
            try:
                return await open_file_range(path, byte_range, label=f"legacy:{path}")
            except NotFoundError:
                raise ContentMissingError()
        return ResolvedContent(length=stat.st_size, open=open_legacy, source=f"legacy:{path}")
    if ref is None:
        raise ContentMissingError("Audio file reference not found")
    raise TypeError(f"unhandled content reference {ref!r}")


@dataclass
class StreamPlan:
    clip_id: str
    mime_type: str
    length: int
    byte_range: ByteRange | None
    content: ResolvedContent

    @property
    def status_code(self) -> int:
        return 206 if self.byte_range is not None else 200

    @property
    def body_length(self) -> int:
        return self.byte_range.size if self.byte_range is not None else self.length

    def response_headers(self) -> dict[str, str]:
        # set directly; media_type would get a charset appended for text/*
        headers = {
            "Content-Type": self.mime_type,
            "Accept-Ranges": "bytes",
            "Content-Length": str(self.body_length),
        }
        if self.byte_range is not None:
            headers["Content-Range"] = content_range(self.byte_range, self.length)
            headers["Cache-Control"] = "no-cache"
        return headers

    async def open(self) -> BlobStream:
        # never read past the length promised in Content-Length
        span = self.byte_range
        if span is None and self.length > 0:
            span = ByteRange(0, self.length - 1)
        return await self.content.open(span)


class BlobStreamResponse(StreamingResponse):
    """StreamingResponse that always releases its BlobStream, including on client disconnect."""

    def __init__(self, stream: BlobStream, first_chunk: bytes, *, expected: int, **kwargs):
        self.blob_stream = stream
        self.expected = expected
        super().__init__(self._relay(first_chunk), **kwargs)

    async def _relay(self, first_chunk: bytes) -> AsyncIterator[bytes]:
        stream = self.blob_stream
        sent = 0
        try:
            if first_chunk:
                sent += len(first_chunk)
                yield first_chunk
            async for chunk in stream:
                sent += len(chunk)
                yield chunk
        except StorageReadError:
            # headers are out; the only option left is dropping the connection
            log.exception("Stream failed mid-response for %s after %d/%d bytes", stream.label, sent, self.expected)
            raise
        log.info("Stream completed for %s: %d bytes sent", stream.label, sent)

    async def __call__(self, scope, receive, send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            if not self.blob_stream.closed:
                log.info("Client went away; releasing %s after %d bytes", self.blob_stream.label, self.blob_stream.bytes_read)
            with anyio.CancelScope(shield=True):
                await self.blob_stream.aclose()
