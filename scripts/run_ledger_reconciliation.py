"""Run one points-ledger reconciliation sweep.

Intended usage: schedule via cron or run by hand after a data incident to list
masons whose cached balance or bag count disagrees with the ledger.

Example:
    python scripts/run_ledger_reconciliation.py --repair --limit 1000
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from uuid import UUID

from loguru import logger


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Compare mason counters with the points ledger once")
    parser.add_argument(
        "--repair",
        action="store_true",
        help="Move drifted counters back onto the ledger sum and approved bag total.",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Override the number of masons checked in this sweep.",
    )
    parser.add_argument(
        "--mason",
        action="append",
        type=UUID,
        default=None,
        help="Restrict the sweep to a mason id (repeatable).",
    )
    return parser.parse_args()


async def _run(repair: bool, limit: int | None, mason_ids: list[UUID] | None) -> dict[str, object]:
    repo_root = Path(__file__).resolve().parents[1]
    api_src = repo_root / "src"
    if str(api_src) not in sys.path:
        sys.path.insert(0, str(api_src))

    from sfa_api.core.settings import settings  # type: ignore import-position
    from sfa_api.db.session import async_session  # type: ignore import-position
    from sfa_api.services.loyalty import LedgerReconciliationService  # type: ignore import-position

    async with async_session() as session:
        service = LedgerReconciliationService(session)
        report = await service.reconcile(
            mason_ids,
            repair=repair,
            limit=limit or settings.ledger_reconciliation_batch_size,
        )
    return report.as_dict()


def main() -> int:
    args = parse_args()
    summary = asyncio.run(_run(args.repair, args.limit, args.mason))
    print(json.dumps(summary, indent=2))
    logger.success(
        "Ledger reconciliation run completed",
        checked=summary["checked"],
        drifted=summary["drifted"],
        repaired=summary["repaired"],
    )
    return 0 if not summary["drifted"] or args.repair else 1


if __name__ == "__main__":
    sys.exit(main())
