#!/usr/bin/env python3
"""
Run one exception sweep outside the service.

The Exceptions service sweeps on its own timer; this helper runs the same
sweep on demand from a workstation or CI job. With ``--dry-run`` it only
lists the tracked rules that a sweep would reset.
"""

import argparse
import asyncio
import json
from pathlib import Path
from typing import Optional
import sys

from service_exceptions.app.adapters.rule_store_client import RuleStoreClient
from service_exceptions.app.adapters.tracking_store_client import TrackingStoreClient
from service_exceptions.app.sweep.sweeper import ExceptionSweeper
from shared.config import get_config
from shared.logging import configure_logging


async def sweep(*, redis_url: Optional[str], concurrency: int, dry_run: bool) -> dict:
    """Execute a sweep (or list its targets) and return the summary."""
    overrides = {"sweep_concurrency": concurrency}
    if redis_url:
        overrides["redis_url"] = redis_url
    config = get_config("exceptions", 8013, **overrides)
    rule_store = RuleStoreClient.from_config(config)
    tracking_store = TrackingStoreClient.from_config(config)
    sweeper = ExceptionSweeper(rule_store, tracking_store, max_concurrency=config.sweep_concurrency)

    if tracking_store.is_configured:
        await tracking_store.start()
    try:
        if dry_run:
            rule_ids, complete = await sweeper.collect_tracked_rule_ids()
            return {"status": "dry_run", "listing_complete": complete, "rule_ids": rule_ids}

        summary = await sweeper.sweep()
        return summary.to_dict()
    finally:
        await tracking_store.stop()


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Reset every tracked Gateway rule and clear tracking.")
    parser.add_argument("--redis-url", default=None, help="Tracking store Redis URL (defaults to ACCESS_REDIS_URL)")
    parser.add_argument("--concurrency", type=int, default=0, help="Concurrent rule resets (0 = unbounded)")
    parser.add_argument("--dry-run", action="store_true", help="Only list tracked rules; do not reset or delete")
    parser.add_argument("--log-level", default="info", help="Log level")
    parser.add_argument("--output", type=Path, default=None, help="Optional path to write JSON summary")
    return parser.parse_args()


def main() -> int:
    args = _parse_args()
    configure_logging("exceptions", args.log_level)

    try:
        summary = asyncio.run(
            sweep(
                redis_url=args.redis_url,
                concurrency=args.concurrency,
                dry_run=args.dry_run,
            )
        )
    except KeyboardInterrupt:
        return 130
    except Exception as exc:  # pragma: no cover - CLI surface
        print(f"[sweep] failed: {exc}", file=sys.stderr)
        return 1

    if args.dry_run:
        print("[sweep] DRY RUN - no rules reset, no tracking entries deleted")

    print(json.dumps(summary, indent=2))

    if args.output:
        args.output.write_text(json.dumps(summary, indent=2))

    return 0 if summary.get("status") in ("completed", "dry_run") else 1


if __name__ == "__main__":
    raise SystemExit(main())
