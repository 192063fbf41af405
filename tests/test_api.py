import asyncio
import uuid

import pytest

from clipvault.core.errors import StorageReadError
from clipvault.main import app
from clipvault.platform.adapters.store_local import LocalContentStore
from clipvault.platform.ports.content_store import BlobStream

AUDIO = bytes(i % 251 for i in range(1000))


async def _token(client, clip_id, password="hunter2"):
    r = await client.post(f"/api/audio/verify/{clip_id}", json={"password": password})
    assert r.status_code == 200, r.text
    return r.json()["streamToken"]


async def test_share_link_scenario(client, make_clip):
    clip = await make_clip(title="Test", password="hunter2", data=AUDIO)

    r = await client.get(f"/api/audio/{clip.id}")
    assert r.status_code == 200
    body = r.json()
    assert body["title"] == "Test"
    assert body["fileSize"] == 1000
    assert body["mimeType"] == "audio/mpeg"
    assert set(body) == {"id", "title", "fileSize", "mimeType", "createdAt"}

    r = await client.post(f"/api/audio/verify/{clip.id}", json={"password": "wrong"})
    assert r.status_code == 401

    r = await client.post(f"/api/audio/verify/{clip.id}", json={"password": "hunter2"})
    assert r.status_code == 200
    body = r.json()
    assert body["success"] is True
    assert body["clip"]["accessCount"] == 1
    assert body["clip"]["filename"] == "test.mp3"
    assert "password" not in str(body).lower()
    token = body["streamToken"]

    r = await client.get(f"/api/audio/stream/{clip.id}/{token}", headers={"Range": "bytes=500-599"})
    assert r.status_code == 206
    assert r.headers["content-range"] == "bytes 500-599/1000"
    assert r.headers["content-length"] == "100"
    assert r.headers["accept-ranges"] == "bytes"
    assert r.headers["cache-control"] == "no-cache"
    assert r.headers["content-type"] == "audio/mpeg"
    assert r.content == AUDIO[500:600]


async def test_full_stream_round_trip(client, make_clip):
    clip = await make_clip(data=AUDIO)
    token = await _token(client, clip.id)
    r = await client.get(f"/api/audio/stream/{clip.id}/{token}")
    assert r.status_code == 200
    assert r.content == AUDIO
    assert r.headers["content-length"] == "1000"
    assert r.headers["accept-ranges"] == "bytes"
    assert r.headers["content-type"] == "audio/mpeg"
    assert "content-range" not in r.headers


@pytest.mark.parametrize("header,expected", [
    ("bytes=0-999", AUDIO),
    ("bytes=250-", AUDIO[250:]),
    ("bytes=10-19", AUDIO[10:20]),
    ("bytes=990-5000", AUDIO[990:]),
])
async def test_range_laws(client, make_clip, header, expected):
    clip = await make_clip(data=AUDIO)
    token = await _token(client, clip.id)
    r = await client.get(f"/api/audio/stream/{clip.id}/{token}", headers={"Range": header})
    assert r.status_code == 206
    assert r.content == expected
    assert int(r.headers["content-length"]) == len(expected)


async def test_unsatisfiable_and_malformed_ranges(client, make_clip):
    clip = await make_clip(data=AUDIO)
    token = await _token(client, clip.id)
    url = f"/api/audio/stream/{clip.id}/{token}"

    r = await client.get(url, headers={"Range": "bytes=1000-"})
    assert r.status_code == 416
    assert r.headers["content-range"] == "bytes */1000"

    for bad in ("bytes=-1-5", "bytes=x-y"):
        r = await client.get(url, headers={"Range": bad})
        assert r.status_code == 400


async def test_unknown_and_inactive_clips_are_404_everywhere(client, make_clip, admin_headers):
    clip = await make_clip()
    r = await client.delete(f"/api/admin/clips/{clip.id}", headers=admin_headers)
    assert r.status_code == 200

    for clip_id in (clip.id, uuid.uuid4(), "bogus"):
        assert (await client.get(f"/api/audio/{clip_id}")).status_code == 404
        r = await client.post(f"/api/audio/verify/{clip_id}", json={"password": "hunter2"})
        assert r.status_code == 404
        assert (await client.get(f"/api/audio/stream/{clip_id}/sometoken")).status_code == 404


async def test_failure_shapes_do_not_leak_existence(client, make_clip):
    clip = await make_clip()
    wrong = await client.post(f"/api/audio/verify/{clip.id}", json={"password": "nope"})
    missing = await client.post(f"/api/audio/verify/{uuid.uuid4()}", json={"password": "nope"})
    assert set(wrong.json()) == set(missing.json()) == {"detail"}


async def test_missing_blob_reports_not_found(client, make_clip, store):
    clip = await make_clip()
    token = await _token(client, clip.id)
    await store.delete(clip.blob_id)
    r = await client.get(f"/api/audio/stream/{clip.id}/{token}")
    assert r.status_code == 404
    r = await client.post(f"/api/audio/verify/{clip.id}", json={"password": "hunter2"})
    assert r.status_code == 404


class BrokenReadStore(LocalContentStore):
    async def open_read(self, blob_id, byte_range=None):
        async def chunks():
            raise OSError("chunk collection unreadable")
            yield b""  # pragma: no cover

        async def release():
            return None

        return BlobStream(chunks(), release, label=f"broken:{blob_id}")


async def test_read_failure_before_headers_is_500(client, make_clip, tmp_path):
    clip = await make_clip()
    token = await _token(client, clip.id)
    broken = BrokenReadStore(app.state.content_store.root)
    app.state.content_store = broken
    r = await client.get(f"/api/audio/stream/{clip.id}/{token}")
    assert r.status_code == 500
    assert r.json() == {"detail": StorageReadError.message}


async def test_stream_requires_signed_token_in_signed_mode(client, make_clip, monkeypatch):
    from clipvault.core.config import settings
    monkeypatch.setattr(settings, "STREAM_TOKEN_MODE", "signed")
    clip = await make_clip()
    token = await _token(client, clip.id)
    assert (await client.get(f"/api/audio/stream/{clip.id}/{token}")).status_code == 200
    assert (await client.get(f"/api/audio/stream/{clip.id}/forged")).status_code == 401


async def test_health(client):
    r = await client.get("/api/health")
    assert r.json() == {"status": "ok"}


BIG = bytes(i % 251 for i in range(12800))


class TrackingStore(LocalContentStore):
    """Remembers every stream it hands out so tests can inspect them afterwards."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.opened = []

    async def open_read(self, blob_id, byte_range=None):
        stream = await super().open_read(blob_id, byte_range)
        self.opened.append(stream)
        return stream


class FailAfterFirstChunkStore(TrackingStore):
    async def open_read(self, blob_id, byte_range=None):
        async def chunks():
            yield BIG[:64]
            raise OSError("storage node went away")

        released = []

        async def release():
            released.append(True)

        stream = BlobStream(chunks(), release, label=f"flaky:{blob_id}")
        self.opened.append(stream)
        return stream


def _http_scope(path):
    return {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": "GET",
        "scheme": "http",
        "path": path,
        "raw_path": path.encode(),
        "root_path": "",
        "query_string": b"",
        "headers": [(b"host", b"test")],
        "client": ("127.0.0.1", 50000),
        "server": ("test", 80),
    }


def _innermost(exc):
    while getattr(exc, "exceptions", None) and len(exc.exceptions) == 1:
        exc = exc.exceptions[0]
    return exc


async def test_client_disconnect_releases_stream(client, make_clip):
    clip = await make_clip(data=BIG)
    token = await _token(client, clip.id)
    tracking = TrackingStore(app.state.content_store.root, chunk_size=64)
    app.state.content_store = tracking

    first_body_sent = asyncio.Event()
    requested = False
    messages = []

    async def receive():
        nonlocal requested
        if not requested:
            requested = True
            return {"type": "http.request", "body": b"", "more_body": False}
        await first_body_sent.wait()
        return {"type": "http.disconnect"}

    async def send(message):
        messages.append(message)
        if message["type"] == "http.response.body":
            first_body_sent.set()
            await asyncio.sleep(0.01)

    await app(_http_scope(f"/api/audio/stream/{clip.id}/{token}"), receive, send)

    starts = [m for m in messages if m["type"] == "http.response.start"]
    assert [m["status"] for m in starts] == [200]
    assert len(tracking.opened) == 1
    stream = tracking.opened[0]
    assert stream.closed
    assert 0 < stream.bytes_read < len(BIG)


async def test_failure_after_headers_aborts_without_second_response(client, make_clip):
    clip = await make_clip(data=BIG)
    token = await _token(client, clip.id)
    flaky = FailAfterFirstChunkStore(app.state.content_store.root, chunk_size=64)
    app.state.content_store = flaky

    requested = False
    messages = []

    async def receive():
        nonlocal requested
        if not requested:
            requested = True
            return {"type": "http.request", "body": b"", "more_body": False}
        await asyncio.Event().wait()

    async def send(message):
        messages.append(message)

    with pytest.raises(Exception) as info:
        await app(_http_scope(f"/api/audio/stream/{clip.id}/{token}"), receive, send)
    assert isinstance(_innermost(info.value), StorageReadError)

    starts = [m for m in messages if m["type"] == "http.response.start"]
    assert [m["status"] for m in starts] == [200]
    sent = b"".join(m.get("body", b"") for m in messages if m["type"] == "http.response.body")
    assert sent == BIG[:64]
    assert flaky.opened[0].closed


async def test_text_content_type_is_not_given_a_charset(client, make_clip, monkeypatch):
    from clipvault.core.config import settings
    monkeypatch.setattr(settings, "ALLOWED_AUDIO_TYPES", [*settings.ALLOWED_AUDIO_TYPES, "text/plain"])
    clip = await make_clip(mime_type="text/plain", filename="notes.txt")
    token = await _token(client, clip.id)
    r = await client.get(f"/api/audio/stream/{clip.id}/{token}")
    assert r.status_code == 200
    assert r.headers["content-type"] == "text/plain"
    r = await client.get(f"/api/audio/stream/{clip.id}/{token}", headers={"Range": "bytes=0-9"})
    assert r.headers["content-type"] == "text/plain"
