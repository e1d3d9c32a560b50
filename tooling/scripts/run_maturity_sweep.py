"""Vest every reward grant whose window has ended, once.

Useful when the in-process worker and scheduler are disabled, or to catch up
after downtime.

Example:
    python tooling/scripts/run_maturity_sweep.py --trigger cron --limit 500
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from datetime import datetime
from pathlib import Path
from typing import Any

from loguru import logger


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Execute one vesting maturity sweep")
    parser.add_argument(
        "--trigger",
        default="manual",
        help="Label recorded on the sweep run to describe the invocation source.",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Maximum number of grants vested in this sweep.",
    )
    parser.add_argument(
        "--as-of",
        type=datetime.fromisoformat,
        default=None,
        help="ISO-8601 reference time; defaults to now.",
    )
    return parser.parse_args(argv)


async def _run(trigger: str, limit: int | None, as_of: datetime | None) -> dict[str, Any]:
    repo_root = Path(__file__).resolve().parents[2]
    api_src = repo_root / "apps" / "api" / "src"
    if str(api_src) not in sys.path:
        sys.path.insert(0, str(api_src))

    from loyalvest_api.core.settings import settings  # type: ignore import-position
    from loyalvest_api.db.session import async_session  # type: ignore import-position
    from loyalvest_api.jobs.vesting import run_maturity_sweep  # type: ignore import-position

    return await run_maturity_sweep(
        session_factory=async_session,
        now=as_of,
        limit=limit if limit is not None else settings.maturity_sweep_batch_limit,
        triggered_by=trigger,
    )


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    summary = asyncio.run(_run(args.trigger, args.limit, args.as_of))
    logger.success(
        "Maturity sweep run completed",
        matured=summary.get("matured", 0),
        run_id=summary.get("run_id"),
        trigger=args.trigger,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
