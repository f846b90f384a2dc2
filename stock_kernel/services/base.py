"""
BaseService -- abstract base for all stock kernel services.

Responsibility:
    Common constructor for write-side services: the caller's SQLAlchemy
    ``Session``, the validated ``LedgerContext``, an injectable ``Clock`` and
    the ``LedgerConfig``.

Invariants enforced:
    - Transaction boundaries: services flush within the caller's transaction
      and never commit, unless constructed with ``auto_commit=True``.
    - Tenant scoping: every lookup goes through ``_load`` and is filtered by
      ``context.tenant_id``.

Failure modes:
    - InvalidContextError if ``context`` is not a LedgerContext.
"""

from abc import ABC
from typing import Generic, TypeVar
from uuid import UUID

from sqlalchemy.orm import Session

from stock_config import get_active_config
from stock_config.schema import LedgerConfig
from stock_kernel.db.base import TenantScopedBase
from stock_kernel.db.tenancy import load_scoped
from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.context import LedgerContext
from stock_kernel.exceptions import InvalidContextError, StockKernelError
from stock_kernel.logging_config import LogContext

ModelType = TypeVar("ModelType", bound=TenantScopedBase)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel services.

    Contract:
        Accepts a Session and a LedgerContext from the caller and uses
        ``session.flush()`` to persist changes within the active transaction.

    Non-goals:
        - Does NOT provide read-only reporting queries; those belong in
          ``stock_kernel/selectors/``.
    """

    def __init__(
        self,
        session: Session,
        context: LedgerContext,
        clock: Clock | None = None,
        config: LedgerConfig | None = None,
        auto_commit: bool = False,
    ):
        if not isinstance(context, LedgerContext):
            raise InvalidContextError(
                f"expected LedgerContext, got {type(context).__name__}"
            )
        self.session = session
        self.context = context
        self._clock = clock or SystemClock()
        self.config = config or get_active_config()
        self.auto_commit = auto_commit

    @property
    def tenant_id(self) -> UUID:
        return self.context.tenant_id

    @property
    def actor_id(self) -> UUID:
        return self.context.actor_id

    def _log_scope(self, **fields):
        """Bind tenant, actor and any extra fields onto LogContext."""
        return LogContext.bind(**self.context.log_fields(), **fields)

    def _load(
        self,
        model: type[ModelType],
        entity_id: UUID,
        not_found: StockKernelError,
        *,
        for_update: bool = False,
    ) -> ModelType:
        return load_scoped(
            self.session,
            model,
            entity_id,
            self.tenant_id,
            not_found,
            for_update=for_update,
        )

    def _stamp(self) -> dict:
        """Audit columns for a new row owned by this context."""
        now = self._clock.now()
        return {
            "tenant_id": self.tenant_id,
            "created_by_id": self.actor_id,
            "created_at": now,
            "updated_at": now,
        }

    def _commit_if_auto(self) -> None:
        if self.auto_commit:
            self.session.commit()
