"""FastAPI application for the Orders Service."""

from fastapi import FastAPI
from libs.common.middleware import add_observability_middleware
from services.orders_service.routers import (
    admin_router,
    checkout_router,
    orders_router,
    webhooks_router,
)


def create_app() -> FastAPI:
    """Create and configure the Orders Service FastAPI app."""
    app = FastAPI(
        title="Promptly Printed Orders Service",
        version="0.1.0",
        description="Checkout finalization and Prodigi fulfillment reconciliation.",
    )
    add_observability_middleware(app)

    @app.get("/health", tags=["system"])
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "service": "orders"}

    app.include_router(checkout_router)
    app.include_router(webhooks_router)
    app.include_router(orders_router)
    app.include_router(admin_router)

    return app


app = create_app()
