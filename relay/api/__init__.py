from __future__ import annotations

from .routes_channel import router as channel_router
from .routes_health import router as health_router
from .routes_provider import router as provider_router

__all__ = [
    "health_router",
    "provider_router",
    "channel_router",
]
