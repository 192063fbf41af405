from fastapi import APIRouter
from clipvault.modules.clips.router import router as clips_router
from clipvault.modules.admin.router import router as admin_router

api_router = APIRouter()
api_router.include_router(admin_router, prefix="/admin", tags=["admin"])
api_router.include_router(clips_router, prefix="/audio", tags=["audio"])

@api_router.get("/health", tags=["health"])
async def health():
    return {"status": "ok"}
