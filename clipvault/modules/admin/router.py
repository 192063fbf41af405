from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession
from clipvault.core.db import get_session
from clipvault.core.errors import NotFoundError, PayloadTooLargeError, StorageWriteError, UnsupportedMediaTypeError, WeakPasswordError
from clipvault.core.security import check_admin_password, create_admin_token, require_admin
from clipvault.modules.admin.schemas import AdminClipOut, DeleteOut, LoginIn, LoginOut, ShareOut
from clipvault.modules.admin.service import AdminClipService, check_clip_password, check_upload, share_url
from clipvault.platform.ports.content_store import ContentStorePort
from clipvault.platform.provider_registry import get_content_store

router = APIRouter()

def svc(session: AsyncSession = Depends(get_session), store: ContentStorePort = Depends(get_content_store)) -> AdminClipService:
    return AdminClipService(session, store)

def _out(obj) -> AdminClipOut:
    return AdminClipOut(
        id=obj.id, title=obj.title, filename=obj.filename, file_size=obj.file_size,
        mime_type=obj.mime_type, access_count=obj.access_count,
        last_accessed_at=obj.last_accessed_at, created_at=obj.created_at,
        share_url=share_url(obj.id),
    )

@router.post("/login", response_model=LoginOut)
async def login(payload: LoginIn):
    if not check_admin_password(payload.password):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return {"token": create_admin_token()}

@router.post("/upload", response_model=AdminClipOut, status_code=201, dependencies=[Depends(require_admin)])
async def upload_clip(
    file: UploadFile = File(...),
    title: str = Form(..., min_length=1, max_length=200),
    password: str = Form(..., min_length=1),
    service: AdminClipService = Depends(svc),
):
    if not title.strip():
        raise HTTPException(status_code=400, detail="Title is required")
    try:
        # cheap rejection before the body is buffered
        check_clip_password(password)
        check_upload(file.content_type, file.size)
        data = await file.read()
        obj = await service.upload(
            title=title.strip(),
            filename=file.filename or "audio",
            mime_type=file.content_type,
            data=data,
            password=password,
        )
    except WeakPasswordError as e:
        raise HTTPException(status_code=400, detail=e.message)
    except UnsupportedMediaTypeError as e:
        raise HTTPException(status_code=415, detail=e.message)
    except PayloadTooLargeError as e:
        raise HTTPException(status_code=413, detail=e.message)
    except StorageWriteError as e:
        raise HTTPException(status_code=500, detail=e.message)
    return _out(obj)

@router.get("/clips", response_model=list[AdminClipOut], dependencies=[Depends(require_admin)])
async def list_clips(service: AdminClipService = Depends(svc)):
    return [_out(obj) for obj in await service.list_clips()]

@router.get("/clips/{clip_id}/share", response_model=ShareOut, dependencies=[Depends(require_admin)])
async def get_share_link(clip_id: str, service: AdminClipService = Depends(svc)):
    try:
        obj = await service.get_clip(clip_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    return ShareOut(share_url=share_url(obj.id))

@router.delete("/clips/{clip_id}", response_model=DeleteOut, dependencies=[Depends(require_admin)])
async def delete_clip(clip_id: str, service: AdminClipService = Depends(svc)):
    return DeleteOut(deleted=await service.delete_clip(clip_id))
