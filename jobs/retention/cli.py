"""CLI entry point for the readings retention job.

    python -m jobs.retention --days 30 [--dry-run]
"""

from __future__ import annotations

import argparse
import logging
from typing import Optional, Sequence

from common.config import get_settings
from common.db import get_engine
from level_bridge.infrastructure.persistence import SqlReadingStore, ensure_schema

from .runner import run_retention

logger = logging.getLogger(__name__)


def main(argv: Optional[Sequence[str]] = None) -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler()],
    )

    settings = get_settings()

    p = argparse.ArgumentParser(description="Delete stored level readings older than N days")
    p.add_argument(
        "--days",
        type=int,
        default=settings.readings_ttl_days,
        help="retention window in days (default READINGS_TTL_DAYS)",
    )
    p.add_argument("--dry-run", action="store_true", help="only count matching readings")
    args = p.parse_args(argv)

    if args.days <= 0:
        logger.info("Retention disabled (days=%d), nothing to do", args.days)
        return 0

    engine = get_engine()
    ensure_schema(engine)
    try:
        result = run_retention(SqlReadingStore(engine), args.days, dry_run=args.dry_run)
    except Exception as e:
        logger.error("Retention failed: %s", e)
        return 1

    logger.info(
        "Retention done: cutoff=%s matched=%d deleted=%d dry_run=%s",
        result.cutoff.isoformat(),
        result.matched,
        result.deleted,
        result.dry_run,
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
