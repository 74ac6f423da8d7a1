"""HTTP surface for the negotiation engine, the inbox and the service catalog."""

from flancer.api.errors import register_error_handlers
from flancer.api.routes import notifications_router, router, services_router

__all__ = [
    "notifications_router",
    "register_error_handlers",
    "router",
    "services_router",
]
