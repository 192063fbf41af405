import logging
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession
from clipvault.core.db import get_session
from clipvault.core.errors import (
    ContentMissingError, InvalidCredentialError, InvalidRangeError, InvalidStreamTokenError,
    NotFoundError, RangeNotSatisfiableError, StorageReadError,
)
from clipvault.modules.clips.ranges import unsatisfied_range
from clipvault.modules.clips.schemas import ClipPublicOut, VerifiedClipOut, VerifyIn, VerifyOut
from clipvault.modules.clips.service import ClipAccessService
from clipvault.modules.clips.streaming import BlobStreamResponse
from clipvault.platform.ports.content_store import ContentStorePort
from clipvault.platform.provider_registry import get_content_store

log = logging.getLogger("clips.router")

router = APIRouter()

def svc(session: AsyncSession = Depends(get_session), store: ContentStorePort = Depends(get_content_store)) -> ClipAccessService:
    return ClipAccessService(session, store)

@router.get("/{clip_id}", response_model=ClipPublicOut)
async def get_clip(clip_id: str, service: ClipAccessService = Depends(svc)):
    try:
        return await service.get_active(clip_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)

@router.post("/verify/{clip_id}", response_model=VerifyOut)
async def verify_clip_password(clip_id: str, payload: VerifyIn, service: ClipAccessService = Depends(svc)):
    try:
        res = await service.verify(clip_id, payload.password)
    except (NotFoundError, ContentMissingError) as e:
        raise HTTPException(status_code=404, detail=e.message)
    except InvalidCredentialError as e:
        raise HTTPException(status_code=401, detail=e.message)
    clip = VerifiedClipOut.model_validate(res.clip).model_copy(update={"access_count": res.access_count})
    return VerifyOut(success=True, clip=clip, stream_token=res.stream_token)

@router.get("/stream/{clip_id}/{token}")
async def stream_clip(clip_id: str, token: str, request: Request, service: ClipAccessService = Depends(svc)):
    range_header = request.headers.get("range")
    try:
        plan = await service.prepare_stream(clip_id, token, range_header)
    except (NotFoundError, ContentMissingError) as e:
        log.info("Stream refused for %s: %s", clip_id, e.message)
        raise HTTPException(status_code=404, detail=e.message)
    except InvalidStreamTokenError as e:
        raise HTTPException(status_code=401, detail=e.message)
    except InvalidRangeError as e:
        raise HTTPException(status_code=400, detail=e.message)
    except RangeNotSatisfiableError as e:
        log.info("Unsatisfiable range %r for %s (length %d)", range_header, clip_id, e.length)
        raise HTTPException(status_code=416, detail=e.message, headers={"Content-Range": unsatisfied_range(e.length)})

    # nothing is committed to the client until the first chunk is in hand
    try:
        stream = await plan.open()
    except ContentMissingError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except StorageReadError:
        log.exception("Could not open stream for %s", plan.clip_id)
        return JSONResponse(status_code=500, content={"detail": StorageReadError.message})
    try:
        first = await stream.__anext__()
    except StopAsyncIteration:
        first = b""
    except StorageReadError:
        log.exception("First read failed for %s", plan.clip_id)
        return JSONResponse(status_code=500, content={"detail": StorageReadError.message})

    log.info("Streaming %s: %d bytes (status %d)", plan.clip_id, plan.body_length, plan.status_code)
    return BlobStreamResponse(
        stream, first,
        expected=plan.body_length,
        status_code=plan.status_code,
        headers=plan.response_headers(),
    )
