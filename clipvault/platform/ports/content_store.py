"""Content store port: opaque-id blob storage with ranged, streamed reads."""
from dataclasses import dataclass, field
from typing import AsyncIterator, Awaitable, Callable, Protocol, runtime_checkable
import logging

from clipvault.core.errors import StorageReadError

log = logging.getLogger("store.stream")

@dataclass(frozen=True)
class ByteRange:
    """Inclusive span of byte offsets, ``end`` already clamped to the content length."""
    start: int
    end: int

    @property
    def size(self) -> int:
        return self.end - self.start + 1

@dataclass(frozen=True)
class StoredBlob:
    blob_id: str
    length: int
    sha256: str

@dataclass(frozen=True)
class BlobInfo:
    blob_id: str
    length: int
    content_type: str | None = None
    filename: str | None = None
    metadata: dict = field(default_factory=dict)


class BlobStream:
    """Lazy, single-pass sequence of byte chunks over an open store handle.

    ``aclose()`` releases the handle and may be called any number of times;
    it also runs on its own once the chunks are exhausted or a read fails.
    Read failures surface as ``StorageReadError``.
    """

    def __init__(self, chunks: AsyncIterator[bytes], release: Callable[[], Awaitable[None]], *, label: str = "-"):
        self._chunks = chunks
        self._release = release
        self._closed = False
        self.label = label
        self.bytes_read = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self):
        return self

    async def __anext__(self) -> bytes:
        if self._closed:
            raise StopAsyncIteration
        try:
            chunk = await self._chunks.__anext__()
        except StopAsyncIteration:
            await self.aclose()
            raise
        except StorageReadError:
            await self.aclose()
            raise
        except Exception as exc:
            await self.aclose()
            raise StorageReadError(f"read failed for {self.label}") from exc
        self.bytes_read += len(chunk)
        return chunk

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        aclose = getattr(self._chunks, "aclose", None)
        try:
            if aclose is not None:
                await aclose()
        finally:
            await self._release()
        log.debug("released %s after %d bytes", self.label, self.bytes_read)


@runtime_checkable
class ContentStorePort(Protocol):
    async def startup(self) -> None: ...
    async def shutdown(self) -> None: ...
    async def put(self, data: bytes, filename: str, metadata: dict | None = None) -> StoredBlob: ...
    async def info(self, blob_id: str) -> BlobInfo | None: ...
    async def open_read(self, blob_id: str, byte_range: ByteRange | None = None) -> BlobStream: ...
    async def delete(self, blob_id: str) -> None: ...
    def iter_blob_ids(self) -> AsyncIterator[str]: ...
