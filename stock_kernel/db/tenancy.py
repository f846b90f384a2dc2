"""
Tenant-scoped row lookup shared by services and selectors.

A row that does not exist raises the caller's not-found error.  A row that
exists under another tenant raises TenantAccessError, so a caller can tell
"missing" from "not yours" without seeing the other tenant's data.
"""

from typing import TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from stock_kernel.db.base import TenantScopedBase
from stock_kernel.exceptions import StockKernelError, TenantAccessError
from stock_kernel.logging_config import get_logger

logger = get_logger("db.tenancy")

T = TypeVar("T", bound=TenantScopedBase)


def load_scoped(
    session: Session,
    model: type[T],
    entity_id: UUID,
    tenant_id: UUID,
    not_found: StockKernelError,
    *,
    for_update: bool = False,
) -> T:
    """
    Load ``model`` by primary key within ``tenant_id``.

    With ``for_update`` the row is read ``SELECT ... FOR UPDATE`` (ignored by
    SQLite) and any identity-map copy is refreshed from the database.
    """
    stmt = select(model).where(model.id == entity_id)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    row = session.execute(stmt).scalar_one_or_none()
    if row is None:
        raise not_found
    if row.tenant_id != tenant_id:
        logger.warning(
            "tenant_access_denied",
            extra={
                "entity_type": model.__name__,
                "entity_id": str(entity_id),
                "requested_tenant_id": str(tenant_id),
            },
        )
        raise TenantAccessError(model.__name__, str(entity_id), str(tenant_id))
    return row
