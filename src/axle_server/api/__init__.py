"""API routes."""

from litestar import Router

from axle_server.api.admin import admin_router
from axle_server.api.health import health_router
from axle_server.api.health_sync import health_sync_router
from axle_server.api.suggestions import suggestions_router
from axle_server.core.config import settings

# Versioned API routers get the /api/v1 prefix
_v1_routers = [
    suggestions_router,
    health_sync_router,
    admin_router,
]

api_v1_router = Router(path=settings.api_prefix, route_handlers=_v1_routers)

# - health_router: /health - no auth, no version prefix
# - api_v1_router: /api/v1/* - user and admin endpoints
api_routers = [health_router, api_v1_router]

__all__ = ["api_routers"]
