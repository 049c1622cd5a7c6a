"""Cron entry point for pruning stale conversion records."""

from __future__ import annotations

import argparse
import sys
from dataclasses import dataclass

from src.media_optimizer.config import load_config
from src.media_optimizer.dependencies import build_services


@dataclass(slots=True)
class CleanupSummary:
    records_removed: int
    days: int
    dry_run: bool


def perform_cleanup(*, days: int, dry_run: bool) -> CleanupSummary:
    """Execute cleanup logic and return summary counters."""
    config = load_config()
    services = build_services(config)

    if dry_run:
        candidates = services.pipeline.orphaned_records(days)
        return CleanupSummary(records_removed=len(candidates), days=days, dry_run=True)

    removed = services.pipeline.cleanup_old_records(days)
    return CleanupSummary(records_removed=removed, days=days, dry_run=False)


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Prune conversion records older than N days.")
    parser.add_argument("--days", type=int, default=30, help="Age threshold in days (default: 30).")
    parser.add_argument("--dry-run", action="store_true", help="Only report how many records would be removed.")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv or [])
    if args.days < 1:
        print("cleanup failed: --days must be at least 1", file=sys.stderr)
        return 2
    try:
        summary = perform_cleanup(days=args.days, dry_run=args.dry_run)
    except Exception as exc:
        print(f"cleanup failed: {exc}", file=sys.stderr)
        return 2

    if summary.dry_run:
        print(f"cleanup dry-run, days={summary.days}, would_remove={summary.records_removed}", file=sys.stdout)
    else:
        print(f"cleanup done, days={summary.days}, records_removed={summary.records_removed}", file=sys.stdout)
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
