"""
Sweep of all live identity exceptions.
"""

import asyncio
import time
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from shared.errors import AccessLayerException, RuleNotFoundError
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from ..adapters.rule_store_client import RuleStoreClient
from ..adapters.tracking_store_client import TrackingStoreClient
from ..models import ResetOutcome, SweepSummary


class ExceptionSweeper:
    """Resets every tracked rule's identity expression and clears tracking.

    A sweep runs in three phases:

    1. enumerate every tracked rule id, following the listing cursor until
       the store reports completion;
    2. reset each rule concurrently (GET, blank ``identity``, PUT), where a
       failure only affects its own rule;
    3. delete every enumerated tracking entry concurrently, whether or not
       its reset succeeded.

    ``max_concurrency`` caps phase 2 when positive; zero leaves the fan-out
    unbounded.
    """

    def __init__(
        self,
        rule_store: Optional[RuleStoreClient],
        tracking_store: Optional[TrackingStoreClient],
        *,
        max_concurrency: int = 0,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.rule_store = rule_store
        self.tracking_store = tracking_store
        self.metrics = metrics
        self.logger = get_logger("exceptions.sweep")
        self.max_concurrency = max_concurrency

    def _is_configured(self) -> bool:
        if self.tracking_store is None or not self.tracking_store.is_configured:
            self.logger.error("Tracking store is not configured; sweep skipped")
            return False
        if self.rule_store is None or not self.rule_store.is_configured:
            self.logger.error("Rule store credentials are not configured; sweep skipped")
            return False
        return True

    async def sweep(self) -> SweepSummary:
        """Run one full sweep and return its summary."""
        summary = SweepSummary(started_at=datetime.now(timezone.utc))
        start = time.perf_counter()

        if not self._is_configured():
            summary.status = "skipped"
            self._record_run(summary)
            return summary

        rule_ids, listing_complete = await self.collect_tracked_rule_ids()
        summary.rule_ids = rule_ids
        if not listing_complete:
            summary.status = "partial_listing"

        if not rule_ids:
            self.logger.info("No tracked rules found; nothing to sweep")
        else:
            self.logger.info("Resetting tracked rules", count=len(rule_ids))
            # Created per sweep so it binds to the running loop
            semaphore = asyncio.Semaphore(self.max_concurrency) if self.max_concurrency > 0 else None
            outcomes = await asyncio.gather(
                *(self._reset_rule(rule_id, semaphore) for rule_id in rule_ids),
                return_exceptions=True
            )
            for rule_id, outcome in zip(rule_ids, outcomes):
                if isinstance(outcome, BaseException):
                    self.logger.error("Reset task crashed", rule_id=rule_id, error=str(outcome))
                    outcome = ResetOutcome.FAILED
                summary.outcomes[rule_id] = outcome
                if self.metrics is not None:
                    self.metrics.increment_counter("sweep_rule_resets_total", outcome=outcome.value)

            self.logger.info(
                "Rule resets settled",
                reset=summary.count(ResetOutcome.RESET),
                skipped=summary.count(ResetOutcome.SKIPPED_NOT_FOUND),
                failed=summary.count(ResetOutcome.FAILED)
            )

            summary.deleted = await self._clear_tracking(rule_ids)

        summary.duration_seconds = time.perf_counter() - start
        self._record_run(summary)
        self.logger.info(
            "Sweep finished",
            status=summary.status,
            tracked=len(rule_ids),
            deleted=summary.deleted,
            duration_ms=round(summary.duration_seconds * 1000, 2)
        )
        return summary

    async def collect_tracked_rule_ids(self) -> Tuple[List[str], bool]:
        """Drain the tracking store listing.

        Returns the de-duplicated ids in listing order and whether the listing
        reached its end. A listing failure keeps the ids gathered so far.
        """
        rule_ids: List[str] = []
        seen = set()
        cursor: Optional[str] = None
        pages = 0

        while True:
            try:
                page = await self.tracking_store.list(cursor)
            except AccessLayerException as e:
                self.logger.error("Error listing tracked rules", error=e.message, pages=pages)
                return rule_ids, False

            pages += 1
            for rule_id in page.keys:
                if rule_id not in seen:
                    seen.add(rule_id)
                    rule_ids.append(rule_id)

            if page.list_complete:
                break
            cursor = page.cursor

        self.logger.debug("Tracked rules listed", pages=pages, count=len(rule_ids))
        return rule_ids, True

    async def _reset_rule(self, rule_id: str, semaphore: Optional[asyncio.Semaphore]) -> ResetOutcome:
        if semaphore is None:
            return await self._reset_rule_unbounded(rule_id)
        async with semaphore:
            return await self._reset_rule_unbounded(rule_id)

    async def _reset_rule_unbounded(self, rule_id: str) -> ResetOutcome:
        """Blank one rule's identity expression."""
        try:
            rule = await self.rule_store.get_rule(rule_id)
        except RuleNotFoundError:
            self.logger.warning("Tracked rule not found upstream; skipping", rule_id=rule_id)
            return ResetOutcome.SKIPPED_NOT_FOUND
        except AccessLayerException as e:
            self.logger.error("Failed to get tracked rule; skipping", rule_id=rule_id, error=e.message)
            return ResetOutcome.FAILED

        try:
            await self.rule_store.put_rule(rule.with_identity(""))
        except AccessLayerException as e:
            self.logger.error("Failed to reset rule identity", rule_id=rule_id, error=e.message, details=e.details)
            return ResetOutcome.FAILED

        self.logger.info("Rule identity reset", rule_id=rule_id)
        return ResetOutcome.RESET

    async def _clear_tracking(self, rule_ids: List[str]) -> int:
        """Delete every tracking entry; returns how many deletions succeeded."""
        self.logger.info("Deleting tracking entries", count=len(rule_ids))
        results = await asyncio.gather(
            *(self.tracking_store.delete(rule_id) for rule_id in rule_ids),
            return_exceptions=True
        )
        deleted = 0
        for rule_id, result in zip(rule_ids, results):
            if isinstance(result, BaseException):
                self.logger.error("Failed to delete tracking entry", rule_id=rule_id, error=str(result))
            else:
                deleted += 1
        return deleted

    def _record_run(self, summary: SweepSummary):
        if self.metrics is None:
            return
        self.metrics.increment_counter("sweep_runs_total", status=summary.status)
        self.metrics.observe_histogram("sweep_duration_seconds", summary.duration_seconds)
