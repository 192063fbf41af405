import time
import asyncio
import logging
from dotenv import load_dotenv

# Load environment variables from .env file before anything else
load_dotenv()

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from clipvault.core.config import settings
from clipvault.core.logging import setup_logging, request_id_ctx
from clipvault.core.db import SessionLocal, init_models, dispose_engine
from clipvault.api.router import api_router
from clipvault.modules.clips.reaper import run_blob_reaper
from clipvault.platform.provider_registry import registry


setup_logging()
app = FastAPI(title=settings.APP_NAME)

logger = logging.getLogger(__name__)

@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()

    response = await call_next(request)

    process_time = (time.time() - start_time) * 1000
    logger.info(
        f"Request: {request.method} {request.url.path} - Response: {response.status_code} - Time: {process_time:.2f}ms"
    )
    return response

# registered last so it runs outermost and the request id is set for the log line above
@app.middleware("http")
async def add_request_id(request: Request, call_next):
    rid = request.headers.get("x-request-id", "-")
    token = request_id_ctx.set(rid)
    try:
        return await call_next(request)
    finally:
        request_id_ctx.reset(token)

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.critical(f"Unhandled exception for request {request.method} {request.url.path}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"message": "An internal server error occurred."},
    )


@app.on_event("startup")
async def on_startup():
    await init_models()
    store = registry.content_store(settings)
    await store.startup()
    app.state.content_store = store
    if settings.REAPER_INTERVAL_SECONDS > 0:
        app.state.reaper_task = asyncio.create_task(
            run_blob_reaper(SessionLocal, store, poll_interval_seconds=settings.REAPER_INTERVAL_SECONDS)
        )

@app.on_event("shutdown")
async def on_shutdown():
    task = getattr(app.state, "reaper_task", None)
    if task:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
    store = getattr(app.state, "content_store", None)
    if store is not None:
        await store.shutdown()
    await dispose_engine()


app.include_router(api_router, prefix=settings.API_PREFIX)
