"""
Exception grant orchestration.

One grant adds an identity to a rule's identity expression and makes sure the
rule is tracked for the next sweep. The two branches are independent: a
failed rule update never prevents tracking and vice versa. Every failure is
reported as a status string; nothing is raised to the caller.
"""

from typing import Optional, Tuple

from shared.background import BackgroundTaskRegistry
from shared.errors import RuleNotFoundError, StoreTransportError, AccessLayerException
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from ..adapters.rule_store_client import RuleStoreClient, is_valid_rule_id
from ..adapters.tracking_store_client import TrackingStoreClient
from ..identity.expression import merge_identity
from ..models import GrantResult, TrackingEntry

SKIPPED_STATUS = "Skipped: Missing parameters or config."
INVALID_RULE_STATUS = "Skipped: Invalid rule ID."


class ExceptionGrantService:
    """Grants a temporary identity exception on a Gateway rule."""

    def __init__(
        self,
        rule_store: Optional[RuleStoreClient],
        tracking_store: Optional[TrackingStoreClient],
        background: Optional[BackgroundTaskRegistry] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.rule_store = rule_store
        self.tracking_store = tracking_store
        self.background = background or BackgroundTaskRegistry("exceptions")
        self.metrics = metrics
        self.logger = get_logger("exceptions.grants")

    def _is_configured(self) -> bool:
        return bool(
            self.rule_store is not None
            and self.rule_store.is_configured
            and self.tracking_store is not None
            and self.tracking_store.is_configured
        )

    async def grant(self, rule_id: Optional[str], identity: Optional[str]) -> GrantResult:
        """Add ``identity`` to rule ``rule_id`` and track the rule for sweeping."""
        if not rule_id or not identity or not self._is_configured():
            self.logger.info(
                "Skipping exception grant: missing parameters or config",
                rule_id=rule_id,
                has_identity=bool(identity)
            )
            self._record("skipped", "skipped")
            return GrantResult(rule_update_status=SKIPPED_STATUS, tracking_status=SKIPPED_STATUS)

        if not is_valid_rule_id(rule_id):
            self.logger.warning("Skipping exception grant: invalid rule id", rule_id=rule_id)
            self._record("skipped", "skipped")
            return GrantResult(rule_update_status=INVALID_RULE_STATUS, tracking_status=INVALID_RULE_STATUS)

        self.logger.info("Granting identity exception", rule_id=rule_id, identity=identity)

        rule_outcome, rule_status = await self._update_rule(rule_id, identity)
        tracking_outcome, tracking_status, tracking_task = await self._track_rule(rule_id, identity)

        self._record(rule_outcome, tracking_outcome)
        return GrantResult(
            rule_update_status=rule_status,
            tracking_status=tracking_status,
            tracking_task=tracking_task
        )

    async def _update_rule(self, rule_id: str, identity: str) -> Tuple[str, str]:
        """Merge the identity into the rule; returns (outcome, status)."""
        try:
            rule = await self.rule_store.get_rule(rule_id)
        except RuleNotFoundError:
            self.logger.error("Existing rule not found", rule_id=rule_id)
            return "not_found", "Error: Existing rule not found."
        except StoreTransportError as e:
            if e.status_code is not None:
                return "error", f"Error getting Gateway Rule: {e.status_code}"
            return "error", f"API Error: {e.message}"
        except AccessLayerException as e:
            return "error", f"API Error: {e.message}"

        merged = merge_identity(rule.identity, identity)

        if not merged.format_recognized:
            self.logger.warning(
                "Identity expression not in a recognized format; rule left unchanged",
                rule_id=rule_id,
                expression=rule.identity
            )
            if merged.error is not None and merged.error.marker_present:
                return "unrecognized", "Warning: Could not parse rule identity expression."
            return "unrecognized", "Warning: Rule identity field not in expected format."

        if not merged.changed:
            self.logger.info("Identity already present in rule", rule_id=rule_id, identity=identity)
            return "unchanged", f"Identity {identity} already present in Gateway Rule {rule_id}. No change made."

        try:
            await self.rule_store.put_rule(rule.with_identity(merged.expression))
        except StoreTransportError as e:
            if e.status_code is None:
                return "error", f"API Error: {e.message}"
            status = f"Error updating Gateway Rule: {e.status_code}"
            if e.body:
                status = f"{status} - {e.body}"
            return "error", status

        self.logger.info("Updated Gateway rule identity", rule_id=rule_id, expression=merged.expression)
        return "updated", f"Successfully updated Gateway Rule {rule_id}."

    async def _track_rule(self, rule_id: str, identity: str):
        """Record the rule for the next sweep unless it is already tracked."""
        try:
            existing = await self.tracking_store.get(rule_id)
        except AccessLayerException as e:
            self.logger.error("Tracking store lookup failed", rule_id=rule_id, error=e.message)
            return "error", f"Tracking store error: {e.message}", None

        if existing is not None:
            self.logger.info("Rule already tracked", rule_id=rule_id)
            return "already_tracked", f"Rule ID {rule_id} already tracked.", None

        entry = TrackingEntry(first_user_email=identity)
        task = self.background.wait_until(
            self._store_tracking_entry(rule_id, entry),
            description=f"track rule {rule_id}"
        )
        self.logger.info("Scheduled tracking entry", rule_id=rule_id)
        return "stored", f"Rule ID {rule_id} stored for tracking.", task

    async def _store_tracking_entry(self, rule_id: str, entry: TrackingEntry) -> bool:
        stored = await self.tracking_store.put(rule_id, entry)
        if not stored:
            # A concurrent grant tracked the rule first; its entry is kept
            self.logger.info("Rule tracked by a concurrent grant", rule_id=rule_id)
        return stored

    def _record(self, rule_outcome: str, tracking_outcome: str):
        if self.metrics is not None:
            self.metrics.increment_counter(
                "exception_grants_total",
                rule_update=rule_outcome,
                tracking=tracking_outcome
            )
