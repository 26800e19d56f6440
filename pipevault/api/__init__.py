"""FastAPI routes for the PipeVault engine."""

from pipevault.api.audit import router as audit_router
from pipevault.api.loads import router as loads_router
from pipevault.api.locations import router as locations_router
from pipevault.api.outbox import router as outbox_router
from pipevault.api.requests import router as requests_router

__all__ = [
    "audit_router",
    "loads_router",
    "locations_router",
    "outbox_router",
    "requests_router",
]
