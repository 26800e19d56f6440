"""Rendering of business errors as typed JSON responses."""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from pipevault.services.errors import PipeVaultError

logger = logging.getLogger(__name__)

STATUS_BY_KIND = {
    "not_found": 404,
    "permission_denied": 403,
    "already_exists": 409,
    "insufficient_capacity": 409,
    "invalid_state": 409,
    "invalid_state_transition": 409,
    "invalid_location": 422,
    "invalid_quantity": 422,
    "invalid_input": 422,
    "invalid_adjustment": 422,
    "mixed_allocation_mode": 422,
}


def status_for(error: PipeVaultError) -> int:
    return STATUS_BY_KIND.get(error.kind, 400)


async def pipevault_error_handler(request: Request, exc: PipeVaultError) -> JSONResponse:
    """Render a PipeVaultError as ``{"kind", "message", ...details}``."""
    status_code = status_for(exc)
    logger.info(
        "%s %s -> %d %s: %s",
        request.method,
        request.url.path,
        status_code,
        exc.kind,
        exc.message,
    )
    return JSONResponse(status_code=status_code, content=exc.to_dict())


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(PipeVaultError, pipevault_error_handler)
