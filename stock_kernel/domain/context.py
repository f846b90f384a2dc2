"""
LedgerContext -- explicit tenant and actor scope for every call.

Responsibility:
    Carries the tenant (shop) id and the acting user id into services and
    selectors.  Validated once at construction; services never re-derive the
    tenant per query.

Failure modes:
    - InvalidContextError if tenant_id or actor_id is missing or not a UUID.
"""

from dataclasses import dataclass
from uuid import UUID

from stock_kernel.exceptions import InvalidContextError


@dataclass(frozen=True)
class LedgerContext:
    """
    Immutable call scope.

    Contract:
        Every row written under this context gets ``tenant_id`` and
        ``created_by_id`` from it; every query filters by ``tenant_id``.
    """

    tenant_id: UUID
    actor_id: UUID
    correlation_id: str | None = None

    def __post_init__(self):
        if not isinstance(self.tenant_id, UUID):
            raise InvalidContextError(f"tenant_id must be a UUID, got {self.tenant_id!r}")
        if not isinstance(self.actor_id, UUID):
            raise InvalidContextError(f"actor_id must be a UUID, got {self.actor_id!r}")

    def log_fields(self) -> dict[str, str | None]:
        """Fields suitable for ``LogContext.bind()``."""
        return {
            "tenant_id": str(self.tenant_id),
            "actor_id": str(self.actor_id),
            "correlation_id": self.correlation_id,
        }
