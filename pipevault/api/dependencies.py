"""Shared FastAPI dependencies."""

from typing import Annotated

from fastapi import Depends, Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pipevault.database import get_db, get_session_factory
from pipevault.services.caller import Caller, CallerRole


async def get_caller(
    x_caller_id: Annotated[str | None, Header(description="Authenticated user identity")] = None,
    x_caller_role: Annotated[str | None, Header(description="admin or tenant")] = None,
    x_tenant_id: Annotated[str | None, Header(description="Tenant of the user")] = None,
) -> Caller:
    """Build the caller capability from the identity gateway headers."""
    if not x_caller_id or not x_caller_role:
        raise HTTPException(status_code=401, detail="Missing caller identity headers")
    try:
        role = CallerRole(x_caller_role.strip().lower())
    except ValueError:
        raise HTTPException(
            status_code=401,
            detail=f"Unknown caller role '{x_caller_role}'",
        ) from None
    if role == CallerRole.TENANT and not x_tenant_id:
        raise HTTPException(status_code=401, detail="Tenant callers must send X-Tenant-Id")
    return Caller(identity=x_caller_id, role=role, tenant_id=x_tenant_id)


CallerDep = Annotated[Caller, Depends(get_caller)]
DbSession = Annotated[AsyncSession, Depends(get_db)]
SessionFactory = Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)]
