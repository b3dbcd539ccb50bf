"""
Data models shared by the Exceptions Service components.
"""

import asyncio
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


@dataclass
class GatewayRule:
    """A Gateway rule as returned by the rule store.

    Only ``identity`` is interpreted; ``body`` holds the complete upstream
    payload so every other field is sent back untouched on update.
    """
    rule_id: str
    identity: str
    body: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, rule_id: str, payload: Dict[str, Any]) -> "GatewayRule":
        identity = payload.get("identity")
        return cls(rule_id=rule_id, identity=identity or "", body=dict(payload))

    def with_identity(self, identity: str) -> "GatewayRule":
        """Return a copy carrying a new identity expression."""
        body = dict(self.body)
        body["identity"] = identity
        return GatewayRule(rule_id=self.rule_id, identity=identity, body=body)

    def to_payload(self) -> Dict[str, Any]:
        payload = dict(self.body)
        payload["identity"] = self.identity
        return payload


@dataclass
class TrackingEntry:
    """Marker that a rule carries live exceptions until the next sweep."""
    first_user_email: str
    first_tracked_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_json(self) -> str:
        return json.dumps({
            "firstTrackedAt": self.first_tracked_at.isoformat(),
            "firstUserEmail": self.first_user_email,
        })

    @classmethod
    def from_json(cls, raw: str) -> "TrackingEntry":
        data = json.loads(raw)
        return cls(
            first_user_email=data.get("firstUserEmail", ""),
            first_tracked_at=datetime.fromisoformat(data["firstTrackedAt"]),
        )


@dataclass
class TrackingPage:
    """One page of a cursor-based tracking store listing."""
    keys: List[str]
    cursor: Optional[str]
    list_complete: bool


@dataclass
class GrantResult:
    """Outcome of a single exception grant.

    ``tracking_task`` is the deferred tracking write, if one was scheduled.
    Callers may return before it finishes; the service drains it on shutdown.
    """
    rule_update_status: str
    tracking_status: str
    tracking_task: Optional[asyncio.Task] = None


class ResetOutcome(str, Enum):
    """Per-rule result of a sweep reset task."""
    RESET = "reset"
    SKIPPED_NOT_FOUND = "skipped_not_found"
    FAILED = "failed"


@dataclass
class SweepSummary:
    """Result of a sweep run."""
    started_at: datetime
    status: str = "completed"
    rule_ids: List[str] = field(default_factory=list)
    outcomes: Dict[str, ResetOutcome] = field(default_factory=dict)
    deleted: int = 0
    duration_seconds: float = 0.0

    def count(self, outcome: ResetOutcome) -> int:
        return sum(1 for value in self.outcomes.values() if value == outcome)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "started_at": self.started_at.isoformat(),
            "rule_ids": list(self.rule_ids),
            "outcomes": {rule_id: outcome.value for rule_id, outcome in self.outcomes.items()},
            "reset": self.count(ResetOutcome.RESET),
            "skipped": self.count(ResetOutcome.SKIPPED_NOT_FOUND),
            "failed": self.count(ResetOutcome.FAILED),
            "deleted": self.deleted,
            "duration_seconds": round(self.duration_seconds, 3),
        }
