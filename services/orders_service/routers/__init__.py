"""Orders service routers package."""

from services.orders_service.routers.admin import router as admin_router
from services.orders_service.routers.checkout import router as checkout_router
from services.orders_service.routers.orders import router as orders_router
from services.orders_service.routers.webhooks import router as webhooks_router

__all__ = [
    "admin_router",
    "checkout_router",
    "orders_router",
    "webhooks_router",
]
