import hmac
from datetime import datetime, timedelta, timezone
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError
from passlib.context import CryptContext
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool
from clipvault.core.config import settings

http_bearer = HTTPBearer(auto_error=False)
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

class Principal(BaseModel):
    subject: str
    role: str

# ---- Clip passwords ----

async def hash_password(password: str) -> str:
    return await run_in_threadpool(pwd_context.hash, password)

async def verify_password(password: str, password_hash: str) -> bool:
    """bcrypt compare in a worker thread; a malformed stored hash never matches."""
    try:
        return await run_in_threadpool(pwd_context.verify, password, password_hash)
    except ValueError:
        return False

_dummy_hash: str | None = None

async def dummy_password_hash() -> str:
    """A real bcrypt hash to compare against when there is no clip to check."""
    global _dummy_hash
    if _dummy_hash is None:
        _dummy_hash = await hash_password("clipvault-no-such-clip")
    return _dummy_hash

# ---- Admin tokens ----

def check_admin_password(candidate: str) -> bool:
    return hmac.compare_digest(candidate.encode(), settings.ADMIN_PASSWORD.encode())

def create_admin_token() -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": "admin",
        "role": "admin",
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(seconds=settings.ADMIN_TOKEN_TTL_SECONDS)).timestamp()),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALG)

def _decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALG])
    except JWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token is not valid")

async def get_principal(creds: HTTPAuthorizationCredentials | None = Depends(http_bearer)) -> Principal:
    if creds is None:
        raise HTTPException(status_code=401, detail="No token, authorization denied")
    data = _decode_token(creds.credentials)
    return Principal(subject=str(data.get("sub", "")), role=str(data.get("role", "")))

def require_admin(principal: Principal = Depends(get_principal)) -> Principal:
    if principal.role != "admin":
        raise HTTPException(status_code=401, detail="Admin access required")
    return principal
