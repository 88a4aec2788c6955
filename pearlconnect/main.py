import time
import uuid
import asyncio
import logging
from dotenv import load_dotenv

# Load environment variables from .env file before anything else
load_dotenv()

from fastapi import FastAPI, Request
from pearlconnect.core.config import settings
from pearlconnect.core.logging import setup_logging, request_id_ctx
from pearlconnect.core.errors import register_error_handlers
from pearlconnect.core.db import init_models, SessionLocal
from pearlconnect.api.router import api_router
from pearlconnect.modules.events.outbox import run_outbox_relay
from pearlconnect.platform.provider_registry import registry


setup_logging()
app = FastAPI(title=settings.APP_NAME)
register_error_handlers(app)

logger = logging.getLogger(__name__)

@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    level = logging.WARNING if response.status_code >= 500 else logging.INFO
    logger.log(level, f"{request.method} {request.url.path} -> {response.status_code} in {elapsed_ms:.1f}ms")
    return response

# registered last so it runs outermost and the request log line carries the id
@app.middleware("http")
async def add_request_id(request: Request, call_next):
    rid = request.headers.get("x-request-id") or uuid.uuid4().hex[:12]
    token = request_id_ctx.set(rid)
    try:
        response = await call_next(request)
    finally:
        request_id_ctx.reset(token)
    response.headers["x-request-id"] = rid
    return response


@app.on_event("startup")
async def on_startup():
    await init_models()
    if settings.OUTBOX_RELAY_ENABLED:
        app.state.outbox_task = asyncio.create_task(run_outbox_relay(SessionLocal))

@app.on_event("shutdown")
async def on_shutdown():
    task = getattr(app.state, "outbox_task", None)
    if task:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
    await registry.aclose()


app.include_router(api_router, prefix=settings.API_PREFIX)
