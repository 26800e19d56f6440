"""Caller capability passed into every engine operation."""

from dataclasses import dataclass
from enum import Enum

from pipevault.services.errors import PermissionDeniedError


class CallerRole(str, Enum):
    """Role asserted by the identity gateway."""

    ADMIN = "admin"
    TENANT = "tenant"


@dataclass(frozen=True)
class Caller:
    """An authenticated actor.

    The engine never looks at configuration or environment to authorize; it
    trusts the capability it is handed.

    Attributes:
        identity: Stable identifier of the user (e.g., email)
        role: ADMIN or TENANT
        tenant_id: Tenant the user belongs to (tenants only)
    """

    identity: str
    role: CallerRole
    tenant_id: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == CallerRole.ADMIN

    def require_admin(self, action: str) -> None:
        """Raise PermissionDeniedError unless the caller is an admin."""
        if not self.is_admin:
            raise PermissionDeniedError(
                f"Admin privileges required to {action}",
                identity=self.identity,
            )

    def require_tenant_access(self, tenant_id: str, action: str) -> None:
        """Raise PermissionDeniedError unless the caller is an admin or owns tenant_id."""
        if self.is_admin:
            return
        if self.tenant_id is None or self.tenant_id != tenant_id:
            raise PermissionDeniedError(
                f"Caller may not {action} for tenant '{tenant_id}'",
                identity=self.identity,
            )
