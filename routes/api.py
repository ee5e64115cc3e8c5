"""
Central API route registration. All HTTP controllers are mounted here with /api prefix.
"""
import logging
from fastapi import FastAPI

from app.http.controllers import (
    analytics,
    orders,
    products,
    suppliers,
    webhooks,
)

logger = logging.getLogger(__name__)


def register_routes(app: FastAPI, settings) -> None:
    """Register all API routers. Call from main.py after creating the FastAPI app."""
    app.include_router(webhooks.router, prefix="/api/webhooks", tags=["webhooks"])
    app.include_router(orders.router, prefix="/api/orders", tags=["orders"])
    app.include_router(suppliers.router, prefix="/api/suppliers", tags=["suppliers"])
    app.include_router(products.router, prefix="/api/products", tags=["products"])
    app.include_router(analytics.router, prefix="/api/analytics", tags=["analytics"])
    logger.debug("API routes registered under %s", settings.API_PREFIX)
