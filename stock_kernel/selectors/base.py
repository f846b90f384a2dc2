"""
Module: stock_kernel.selectors.base
Responsibility: Abstract base class for all read-only query selectors.
Architecture position: Kernel > Selectors.  May import from db/, models/ and
    domain/.  MUST NOT import from services/.

Invariants enforced:
    - Read-only access: selectors MUST NOT call session.add(),
      session.delete(), session.commit(), or session.flush().
    - DTO return convention: selectors return frozen dataclasses, never ORM
      instances.
    - Tenant scoping: every query filters on context.tenant_id.
"""

from abc import ABC
from typing import Generic, TypeVar
from uuid import UUID

from sqlalchemy.orm import Session

from stock_kernel.db.base import TenantScopedBase
from stock_kernel.db.tenancy import load_scoped
from stock_kernel.domain.context import LedgerContext
from stock_kernel.exceptions import InvalidContextError, StockKernelError

ModelType = TypeVar("ModelType", bound=TenantScopedBase)


class BaseSelector(ABC, Generic[ModelType]):
    """
    Abstract base class for all selectors.

    Contract:
        Selectors accept a Session and a LedgerContext from the caller,
        perform read-only queries, and return DTOs.
    """

    def __init__(self, session: Session, context: LedgerContext):
        """
        Initialize the selector.

        Args:
            session: SQLAlchemy session for database operations.
            context: Tenant scope for every query.
        """
        if not isinstance(context, LedgerContext):
            raise InvalidContextError(
                f"expected LedgerContext, got {type(context).__name__}"
            )
        self.session = session
        self.context = context

    @property
    def tenant_id(self) -> UUID:
        return self.context.tenant_id

    def _load(self, model: type[ModelType], entity_id: UUID, not_found: StockKernelError) -> ModelType:
        return load_scoped(self.session, model, entity_id, self.tenant_id, not_found)
