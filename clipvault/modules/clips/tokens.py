"""Stream tokens handed out after a successful password check.

``opaque`` tokens are unguessable strings that are never checked again: anyone
holding ``(clip_id, token)`` can stream until the clip is deleted. ``signed``
tokens are short-lived HS256 JWTs bound to one clip and verified on every
stream request. Deployments that do not need old links to keep working should
run with ``STREAM_TOKEN_MODE=signed``.
"""
import base64
import secrets
import time
import uuid
from jose import jwt, JWTError
from clipvault.core.config import settings
from clipvault.core.errors import InvalidStreamTokenError

_STRIP = str.maketrans("", "", "+/=")

def _opaque(clip_id: uuid.UUID) -> str:
    raw = f"{clip_id}-{int(time.time() * 1000)}-{secrets.token_hex(8)}"
    return base64.b64encode(raw.encode()).decode().translate(_STRIP)

def _signed(clip_id: uuid.UUID) -> str:
    now = int(time.time())
    payload = {
        "sub": str(clip_id),
        "typ": "stream",
        "iat": now,
        "exp": now + settings.STREAM_TOKEN_TTL_SECONDS,
        "jti": secrets.token_hex(8),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALG)

def mint_stream_token(clip_id: uuid.UUID) -> str:
    if settings.STREAM_TOKEN_MODE == "signed":
        return _signed(clip_id)
    return _opaque(clip_id)

def check_stream_token(token: str, clip_id: uuid.UUID) -> None:
    if not token:
        raise InvalidStreamTokenError()
    if settings.STREAM_TOKEN_MODE != "signed":
        return
    try:
        data = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALG])
    except JWTError:
        raise InvalidStreamTokenError()
    if data.get("typ") != "stream" or data.get("sub") != str(clip_id):
        raise InvalidStreamTokenError()
