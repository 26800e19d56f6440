"""FastAPI application entry point."""

import logging

from fastapi import FastAPI

from pipevault.api import (
    audit_router,
    loads_router,
    locations_router,
    outbox_router,
    requests_router,
)
from pipevault.api.errors import register_error_handlers
from pipevault.config import settings

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(
    title="PipeVault Capacity & Shipment Engine",
    description="Rack capacity allocation, request approval and truck-load reconciliation",
    version="0.1.0",
    debug=settings.debug,
)

register_error_handlers(app)

# Include API routers
app.include_router(requests_router)
app.include_router(loads_router)
app.include_router(locations_router)
app.include_router(outbox_router)
app.include_router(audit_router)


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy"}
