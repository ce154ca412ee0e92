#!/usr/bin/env python3
"""
Landmark Atlas — Store Reconciliation

Loads every landmark from the persistent store, groups likely duplicates
with the batch match policy, keeps the most complete member of each group
(enriched from the others), deletes the rest and blacklists their ids.

Strategy:
    1. Load all rows (paginated), minus already-blacklisted ids
    2. Single-pass first-match grouping (exception groups never merged)
    3. Patch survivors that gained fields, delete losers one at a time
       with a politeness delay
    4. Output: run summary, duplicate groups, near-miss review pairs

Usage:
    atlas-reconcile --dry-run
    atlas-reconcile --delay 0.5 --report-dir output/reconcile/

Dependencies:
    pip install httpx rapidfuzz pyyaml
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from datetime import datetime, timezone
from pathlib import Path

from atlas_api import settings
from atlas_api.store import RowStore

from ..algorithms.match_policies import MatchingConfig
from ..blacklist import Blacklist
from ..engine import ReconcileResult, reconcile

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Batch deduplication of the Landmark Atlas store",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report duplicate groups without updating or deleting anything.",
    )
    parser.add_argument(
        "--delay",
        type=float,
        default=None,
        help="Seconds to wait after each delete call (default: from matching_rules.yaml)",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to matching_rules.yaml (default: ATLAS_MATCHING_RULES or the packaged file)",
    )
    parser.add_argument(
        "--blacklist",
        default=None,
        help="Path to the blacklist JSON file (default: ATLAS_BLACKLIST_PATH)",
    )
    parser.add_argument(
        "--report-dir",
        default=None,
        help="Write JSON reports to this directory.",
    )
    return parser.parse_args(argv)


def write_output(result: ReconcileResult, output_dir: str) -> Path:
    """Write the run summary, duplicate groups and review pairs."""
    out_path = Path(output_dir)
    out_path.mkdir(parents=True, exist_ok=True)

    ts = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")

    report = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "summary": result.summary(),
        "groups": [g.to_dict() for g in result.groups],
        "review_pairs": [p.to_dict() for p in result.review_pairs],
    }
    report_path = out_path / f"reconcile_{ts}.json"
    with open(report_path, "w", encoding="utf-8") as f:
        json.dump(report, f, indent=2, ensure_ascii=False)
    logger.info("Wrote reconcile report to %s", report_path)
    return report_path


async def run(args: argparse.Namespace) -> ReconcileResult:
    config = MatchingConfig.from_yaml(args.config)
    blacklist = Blacklist.load(args.blacklist or settings.BLACKLIST_PATH)
    store = RowStore.from_settings(page_size=int(config.maintenance["page_size"]))
    try:
        records = await store.fetch_all()
        logger.info("Loaded %d landmarks from the store", len(records))
        return await reconcile(
            records, store, blacklist, config,
            dry_run=args.dry_run, delay=args.delay,
        )
    finally:
        await store.aclose()


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
    )
    args = parse_args(argv)
    result = asyncio.run(run(args))

    summary = result.summary()
    logger.info("=" * 60)
    logger.info("RECONCILE %s", "DRY RUN" if result.dry_run else "COMPLETE")
    logger.info("  Duplicate groups:     %d", summary["groups"])
    logger.info("  Survivors:            %d", summary["survivors"])
    logger.info("  Scheduled deletions:  %d", summary["scheduled_deletions"])
    logger.info("  Deleted:              %d", summary["deleted"])
    logger.info("  Errors:               %d", summary["errors"])
    logger.info("  Review pairs:         %d", summary["review_pairs"])
    logger.info("=" * 60)

    if args.report_dir:
        write_output(result, args.report_dir)
    return 1 if result.errors else 0


if __name__ == "__main__":
    raise SystemExit(main())
