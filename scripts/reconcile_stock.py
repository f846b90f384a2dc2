#!/usr/bin/env python3
"""
Report (and optionally repair) stock ledger drift for one tenant.

Drift is a part whose stored quantity differs from the sum of its stock
movements.  Without --apply the script only reports.  With --apply each
drifted part is rebuilt with recompute_from_ledger and the transaction is
committed.

Usage:
    python3 scripts/reconcile_stock.py --tenant-id TENANT --actor-id ACTOR [--apply]
    DATABASE_URL=postgresql://... python3 scripts/reconcile_stock.py --tenant-id ... --actor-id ...

Exit status: 0 when no drift remains, 1 when drift was found and not
repaired, 2 on bad arguments.
"""

import argparse
import os
import sys
from pathlib import Path
from uuid import UUID

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

DEFAULT_URL = "sqlite:///stock_ledger.db"


def _parse_args(argv=None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Report and repair stock ledger drift")
    p.add_argument("--tenant-id", required=True, type=UUID, help="Tenant (shop) id")
    p.add_argument("--actor-id", required=True, type=UUID, help="User id recorded on repairs")
    p.add_argument(
        "--db-url",
        default=os.environ.get("DATABASE_URL", DEFAULT_URL),
        help="Database URL (default: $DATABASE_URL or %(default)s)",
    )
    p.add_argument("--apply", action="store_true", help="Recompute drifted parts from the ledger")
    return p.parse_args(argv)


def reconcile(session, context, apply: bool = False) -> list:
    """
    Return the drift report; with ``apply`` also repair each drifted part.

    The caller owns the transaction.
    """
    from stock_kernel.selectors.movement_selector import MovementSelector
    from stock_kernel.services.stock_ledger import StockLedger

    drifted = MovementSelector(session, context).drift_report()
    if apply and drifted:
        ledger = StockLedger(session, context)
        for entry in drifted:
            ledger.recompute_from_ledger(entry.part_id)
    return drifted


def main(argv=None) -> int:
    args = _parse_args(argv)

    from stock_kernel.db.engine import init_engine_from_url, session_scope
    from stock_kernel.db.immutability import register_immutability_listeners
    from stock_kernel.domain.context import LedgerContext

    init_engine_from_url(args.db_url)
    register_immutability_listeners()
    context = LedgerContext(tenant_id=args.tenant_id, actor_id=args.actor_id)

    with session_scope() as session:
        drifted = reconcile(session, context, apply=args.apply)

    if not drifted:
        print("No drift.")
        return 0

    print(f"{'part_id':36}  {'stored':>8}  {'ledger':>8}  {'drift':>6}  name")
    for entry in drifted:
        print(
            f"{str(entry.part_id):36}  {entry.stored_quantity:>8}  "
            f"{entry.ledger_quantity:>8}  {entry.drift:>+6}  {entry.name}"
        )

    if args.apply:
        print(f"Recomputed {len(drifted)} part(s) from the ledger.")
        return 0

    print(f"{len(drifted)} part(s) drifted. Re-run with --apply to recompute.")
    return 1


if __name__ == "__main__":
    sys.exit(main())
