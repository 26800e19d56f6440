"""Audit logging service for admin actions.

This module provides functions for:
- Recording admin decisions to the admin_audit_logs table
- Querying audit logs by various criteria
- Retrieving the full trail for one entity
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import desc, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from pipevault.models.admin_audit_log import AdminAuditLog


@dataclass(frozen=True)
class AuditLogFilters:
    """Filters for querying audit logs.

    Attributes:
        actor_id: Filter by admin identity
        action: Filter by action name
        entity_type: Filter by entity kind
        entity_id: Filter by entity identifier
        start_time: Filter for created_at >= this value
        end_time: Filter for created_at <= this value
    """

    actor_id: str | None = None
    action: str | None = None
    entity_type: str | None = None
    entity_id: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None


def _jsonable(details: dict[str, Any] | None) -> dict[str, Any] | None:
    if details is None:
        return None
    converted: dict[str, Any] = {}
    for key, value in details.items():
        if isinstance(value, dict):
            converted[key] = _jsonable(value)
        elif isinstance(value, (list, tuple)):
            converted[key] = [
                _jsonable(item) if isinstance(item, dict) else _scalar(item) for item in value
            ]
        else:
            converted[key] = _scalar(value)
    return converted


def _scalar(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    return str(value)


async def log_admin_action(
    session: AsyncSession,
    actor_id: str,
    action: str,
    entity_type: str,
    entity_id: str,
    details: dict[str, Any] | None = None,
) -> AdminAuditLog:
    """Log an admin action to the audit trail.

    Args:
        session: Database session
        actor_id: Identity of the admin
        action: Action name (e.g., "approve_request")
        entity_type: Kind of entity affected
        entity_id: Identifier of the affected entity
        details: Optional structured details; Decimals and enums are stored
            as strings

    Returns:
        The created AdminAuditLog instance
    """
    entry = AdminAuditLog(
        actor_id=actor_id,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id),
        details=_jsonable(details),
        created_at=datetime.now(UTC),
    )
    session.add(entry)
    await session.flush()
    return entry


async def get_audit_logs(
    session: AsyncSession,
    filters: AuditLogFilters | None = None,
    limit: int = 100,
    offset: int = 0,
    order_desc: bool = True,
) -> list[AdminAuditLog]:
    """Query audit logs with optional filters.

    Args:
        session: Database session
        filters: Optional filters to apply
        limit: Maximum number of results (default 100)
        offset: Number of results to skip (for pagination)
        order_desc: Order by created_at descending (default True)

    Returns:
        List of matching AdminAuditLog entries
    """
    query = select(AdminAuditLog)

    if filters:
        if filters.actor_id:
            query = query.where(AdminAuditLog.actor_id == filters.actor_id)
        if filters.action:
            query = query.where(AdminAuditLog.action == filters.action)
        if filters.entity_type:
            query = query.where(AdminAuditLog.entity_type == filters.entity_type)
        if filters.entity_id:
            query = query.where(AdminAuditLog.entity_id == filters.entity_id)
        if filters.start_time:
            query = query.where(AdminAuditLog.created_at >= filters.start_time)
        if filters.end_time:
            query = query.where(AdminAuditLog.created_at <= filters.end_time)

    if order_desc:
        query = query.order_by(desc(AdminAuditLog.created_at))
    else:
        query = query.order_by(AdminAuditLog.created_at)

    query = query.offset(offset).limit(limit)

    result = await session.execute(query)
    return list(result.scalars().all())


async def get_entity_audit_trail(
    session: AsyncSession,
    entity_type: str,
    entity_id: str,
) -> list[AdminAuditLog]:
    """Get every audit entry for one entity, oldest first."""
    return await get_audit_logs(
        session,
        filters=AuditLogFilters(entity_type=entity_type, entity_id=entity_id),
        limit=10000,
        order_desc=False,
    )


async def count_audit_logs(
    session: AsyncSession,
    filters: AuditLogFilters | None = None,
) -> int:
    """Count audit log entries matching filters."""
    query = select(func.count(AdminAuditLog.id))

    if filters:
        if filters.actor_id:
            query = query.where(AdminAuditLog.actor_id == filters.actor_id)
        if filters.action:
            query = query.where(AdminAuditLog.action == filters.action)
        if filters.entity_type:
            query = query.where(AdminAuditLog.entity_type == filters.entity_type)
        if filters.entity_id:
            query = query.where(AdminAuditLog.entity_id == filters.entity_id)
        if filters.start_time:
            query = query.where(AdminAuditLog.created_at >= filters.start_time)
        if filters.end_time:
            query = query.where(AdminAuditLog.created_at <= filters.end_time)

    result = await session.execute(query)
    return result.scalar() or 0
