from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from relay.api import channel_router, health_router, provider_router
from relay.core.config import get_settings
from relay.core.logger import get_logger
from relay.core.provider import initialize_from_settings
from relay.core.trace import new_trace_id, set_trace_id

config = get_settings()
logger = get_logger("server")


@asynccontextmanager
async def _lifespan(app: FastAPI):
    initialize_from_settings()
    logger.info(
        "Voice chat server running",
        extra={"port": config.port, "origins": config.cors_origins},
    )
    yield
    logger.info("Voice chat server stopped")


app = FastAPI(title="Rev voice relay", lifespan=_lifespan)


@app.middleware("http")
async def _trace_middleware(request, call_next):
    tid = request.headers.get("X-Trace-Id") or new_trace_id("http")
    set_trace_id(tid)
    response = await call_next(request)
    response.headers["X-Trace-Id"] = tid
    return response


# Credentials cannot be combined with a wildcard origin
_allow_credentials = not config.allow_any_origin
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors_origins,
    allow_credentials=_allow_credentials,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

app.include_router(health_router)
app.include_router(provider_router)
app.include_router(channel_router)
