import hashlib
import json
import logging
import os
import re
import uuid
from datetime import datetime, timezone
from typing import AsyncIterator

import anyio
from anyio import to_thread

from clipvault.core.config import settings
from clipvault.core.errors import NotFoundError, StorageReadError, StorageWriteError
from clipvault.platform.ports.content_store import (
    BlobInfo, BlobStream, ByteRange, ContentStorePort, StoredBlob,
)

log = logging.getLogger("store.local")

_BLOB_ID = re.compile(r"^[0-9a-f]{32}$")


async def open_file_range(path: str, byte_range: ByteRange | None = None, *,
                          chunk_size: int | None = None, label: str | None = None) -> BlobStream:
    """Open ``path`` and stream the inclusive span (or the whole file) in bounded chunks."""
    chunk_size = chunk_size or settings.STREAM_CHUNK_SIZE
    try:
        f = await anyio.open_file(path, "rb")
    except FileNotFoundError:
        raise NotFoundError()
    except OSError as e:
        raise StorageReadError(f"cannot open {label or path}") from e

    async def chunks() -> AsyncIterator[bytes]:
        if byte_range is None:
            while True:
                chunk = await f.read(chunk_size)
                if not chunk:
                    return
                yield chunk
        await f.seek(byte_range.start)
        remaining = byte_range.size
        while remaining > 0:
            chunk = await f.read(min(chunk_size, remaining))
            if not chunk:
                # file shrank underneath us (concurrent delete/replace)
                raise OSError(f"unexpected EOF with {remaining} bytes outstanding")
            remaining -= len(chunk)
            yield chunk

    return BlobStream(chunks(), f.aclose, label=label or path)


class LocalContentStore(ContentStorePort):
    """Blobs live at ``<root>/<id[:2]>/<id>`` next to a ``.json`` sidecar."""

    def __init__(self, root: str | None = None, *, chunk_size: int | None = None):
        self.root = os.path.abspath(root or settings.LOCAL_STORAGE_ROOT)
        self.chunk_size = chunk_size or settings.STREAM_CHUNK_SIZE

    def _path(self, blob_id: str) -> str | None:
        if not _BLOB_ID.match(blob_id or ""):
            return None
        return os.path.join(self.root, blob_id[:2], blob_id)

    async def startup(self) -> None:
        await to_thread.run_sync(lambda: os.makedirs(self.root, exist_ok=True))
        log.info("Local content store ready at %s", self.root)

    async def shutdown(self) -> None:
        return None

    async def put(self, data: bytes, filename: str, metadata: dict | None = None) -> StoredBlob:
        blob_id = uuid.uuid4().hex
        path = self._path(blob_id)
        sha = hashlib.sha256(data).hexdigest()
        meta = dict(metadata or {})
        sidecar = {
            "length": len(data),
            "content_type": meta.pop("content_type", None),
            "filename": filename,
            "sha256": sha,
            "metadata": meta,
            "uploaded_at": datetime.now(timezone.utc).isoformat(),
        }

        def _write():
            os.makedirs(os.path.dirname(path), exist_ok=True)
            tmp = f"{path}.part"
            try:
                with open(tmp, "wb") as f:
                    f.write(data)
                with open(path + ".json", "w", encoding="utf-8") as f:
                    json.dump(sidecar, f)
                os.replace(tmp, path)
            except BaseException:
                for leftover in (tmp, path + ".json"):
                    if os.path.exists(leftover):
                        os.remove(leftover)
                raise

        try:
            await to_thread.run_sync(_write)
        except OSError as e:
            log.error("Write failed for blob %s (%s): %s", blob_id, filename, e)
            raise StorageWriteError() from e
        log.info("Stored blob %s (%s, %d bytes)", blob_id, filename, len(data))
        return StoredBlob(blob_id=blob_id, length=len(data), sha256=sha)

    async def info(self, blob_id: str) -> BlobInfo | None:
        path = self._path(blob_id)
        if path is None:
            return None

        def _stat():
            try:
                length = os.stat(path).st_size
            except FileNotFoundError:
                return None
            sidecar = {}
            try:
                with open(path + ".json", encoding="utf-8") as f:
                    sidecar = json.load(f)
            except (FileNotFoundError, json.JSONDecodeError):
                log.warning("Sidecar missing or unreadable for blob %s", blob_id)
            return BlobInfo(
                blob_id=blob_id,
                length=length,
                content_type=sidecar.get("content_type"),
                filename=sidecar.get("filename"),
                metadata=sidecar.get("metadata") or {},
            )

        return await to_thread.run_sync(_stat)

    async def open_read(self, blob_id: str, byte_range: ByteRange | None = None) -> BlobStream:
        path = self._path(blob_id)
        if path is None:
            raise NotFoundError()
        return await open_file_range(path, byte_range, chunk_size=self.chunk_size, label=f"blob:{blob_id}")

    async def delete(self, blob_id: str) -> None:
        path = self._path(blob_id)
        if path is None:
            log.info("Blob %s not found in store, skipping deletion", blob_id)
            return

        def _remove() -> bool:
            removed = False
            for p in (path, path + ".json"):
                try:
                    os.remove(p)
                    removed = True
                except FileNotFoundError:
                    pass
            return removed

        if not await to_thread.run_sync(_remove):
            log.info("Blob %s not found in store, skipping deletion", blob_id)

    async def iter_blob_ids(self) -> AsyncIterator[str]:
        def _scan() -> list[str]:
            found = []
            if not os.path.isdir(self.root):
                return found
            for shard in os.listdir(self.root):
                shard_dir = os.path.join(self.root, shard)
                if not os.path.isdir(shard_dir):
                    continue
                for name in os.listdir(shard_dir):
                    if _BLOB_ID.match(name):
                        found.append(name)
            return found

        for blob_id in await to_thread.run_sync(_scan):
            yield blob_id
