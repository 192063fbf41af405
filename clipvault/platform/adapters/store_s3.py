import hashlib
import logging
import uuid
from typing import AsyncIterator

import boto3
from anyio import to_thread
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from clipvault.core.config import settings
from clipvault.core.errors import NotFoundError, StorageReadError, StorageWriteError
from clipvault.platform.ports.content_store import (
    BlobInfo, BlobStream, ByteRange, ContentStorePort, StoredBlob,
)

log = logging.getLogger("store.s3")

_MISSING = {"404", "NoSuchKey", "NotFound"}


def _is_missing(e: ClientError) -> bool:
    return str(e.response.get("Error", {}).get("Code")) in _MISSING


class S3ContentStore(ContentStorePort):
    def __init__(self, client=None, *, bucket: str | None = None, prefix: str | None = None, chunk_size: int | None = None):
        self.s3 = client
        self.bucket = bucket or settings.S3_BUCKET
        self.prefix = settings.S3_PREFIX if prefix is None else prefix
        self.chunk_size = chunk_size or settings.STREAM_CHUNK_SIZE

    def _key(self, blob_id: str) -> str:
        return f"{self.prefix}{blob_id}"

    async def startup(self) -> None:
        if self.s3 is None:
            session = boto3.session.Session(
                aws_access_key_id=settings.S3_ACCESS_KEY,
                aws_secret_access_key=settings.S3_SECRET_KEY,
                region_name=settings.S3_REGION,
            )
            self.s3 = session.client(
                "s3",
                endpoint_url=settings.S3_ENDPOINT_URL,
                config=Config(signature_version="s3v4"),
            )
        log.info("S3 content store ready (bucket=%s prefix=%s)", self.bucket, self.prefix)

    async def shutdown(self) -> None:
        client, self.s3 = self.s3, None
        if client is not None and hasattr(client, "close"):
            await to_thread.run_sync(client.close)

    async def put(self, data: bytes, filename: str, metadata: dict | None = None) -> StoredBlob:
        blob_id = uuid.uuid4().hex
        sha = hashlib.sha256(data).hexdigest()
        meta = dict(metadata or {})
        content_type = meta.pop("content_type", None) or "application/octet-stream"
        # S3 user metadata must be str -> str
        user_meta = {str(k): str(v) for k, v in meta.items()}
        user_meta.update({"filename": filename, "sha256": sha})
        try:
            await to_thread.run_sync(lambda: self.s3.put_object(
                Bucket=self.bucket, Key=self._key(blob_id), Body=data,
                ContentType=content_type, Metadata=user_meta,
            ))
        except (ClientError, BotoCoreError) as e:
            log.error("put_object failed for %s (%s): %s", blob_id, filename, e)
            raise StorageWriteError() from e
        log.info("Stored blob %s (%s, %d bytes)", blob_id, filename, len(data))
        return StoredBlob(blob_id=blob_id, length=len(data), sha256=sha)

    async def info(self, blob_id: str) -> BlobInfo | None:
        try:
            head = await to_thread.run_sync(lambda: self.s3.head_object(Bucket=self.bucket, Key=self._key(blob_id)))
        except ClientError as e:
            if _is_missing(e):
                return None
            raise StorageReadError() from e
        meta = head.get("Metadata") or {}
        return BlobInfo(
            blob_id=blob_id,
            length=int(head["ContentLength"]),
            content_type=head.get("ContentType"),
            filename=meta.get("filename"),
            metadata=meta,
        )

    async def open_read(self, blob_id: str, byte_range: ByteRange | None = None) -> BlobStream:
        params = {"Bucket": self.bucket, "Key": self._key(blob_id)}
        if byte_range is not None:
            params["Range"] = f"bytes={byte_range.start}-{byte_range.end}"
        try:
            obj = await to_thread.run_sync(lambda: self.s3.get_object(**params))
        except ClientError as e:
            if _is_missing(e):
                raise NotFoundError()
            raise StorageReadError() from e
        body = obj["Body"]
        chunk_size = self.chunk_size

        async def chunks() -> AsyncIterator[bytes]:
            while True:
                chunk = await to_thread.run_sync(body.read, chunk_size)
                if not chunk:
                    return
                yield chunk

        async def release():
            await to_thread.run_sync(body.close)

        return BlobStream(chunks(), release, label=f"s3:{blob_id}")

    async def delete(self, blob_id: str) -> None:
        # DeleteObject succeeds for absent keys
        try:
            await to_thread.run_sync(lambda: self.s3.delete_object(Bucket=self.bucket, Key=self._key(blob_id)))
        except ClientError as e:
            if _is_missing(e):
                log.info("Blob %s not found in store, skipping deletion", blob_id)
                return
            raise

    async def iter_blob_ids(self) -> AsyncIterator[str]:
        paginator = self.s3.get_paginator("list_objects_v2")
        pages = await to_thread.run_sync(lambda: list(paginator.paginate(Bucket=self.bucket, Prefix=self.prefix)))
        for page in pages:
            for item in page.get("Contents", []):
                yield item["Key"][len(self.prefix):]
