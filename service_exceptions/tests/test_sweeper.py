"""
Unit tests for ExceptionSweeper.
"""

import asyncio

import pytest

from service_exceptions.app.models import ResetOutcome, TrackingEntry
from service_exceptions.app.sweep.sweeper import ExceptionSweeper
from service_exceptions.tests.doubles import InMemoryRuleStore, InMemoryTrackingStore
from shared.metrics import MetricsCollector
from shared.test_helpers import exception_data_factory
from prometheus_client import CollectorRegistry


def _tracked(*rule_ids):
    return {rule_id: TrackingEntry(first_user_email="a@b.com") for rule_id in rule_ids}


class TestExceptionSweeper:
    """Test cases for ExceptionSweeper."""

    @pytest.fixture
    def events(self):
        return []

    @pytest.fixture
    def rule_store(self, events):
        rules = {
            rule_id: exception_data_factory.create_rule_payload(
                rule_id, identity='not(identity.email in {"a@b.com" "c@d.com"})'
            )
            for rule_id in ("rule-1", "rule-2", "rule-3", "rule-4", "rule-5")
        }
        return InMemoryRuleStore(rules, events=events)

    @pytest.fixture
    def tracking_store(self, events):
        return InMemoryTrackingStore(
            _tracked("rule-1", "rule-2", "rule-3", "rule-4", "rule-5"),
            page_size=2,
            events=events
        )

    @pytest.fixture
    def sweeper(self, rule_store, tracking_store):
        return ExceptionSweeper(rule_store, tracking_store)

    @pytest.mark.asyncio
    async def test_sweep_resets_every_tracked_rule(self, sweeper, rule_store, tracking_store):
        summary = await sweeper.sweep()

        assert summary.status == "completed"
        assert sorted(summary.rule_ids) == ["rule-1", "rule-2", "rule-3", "rule-4", "rule-5"]
        for rule_id in summary.rule_ids:
            assert rule_store.rules[rule_id]["identity"] == ""
            assert summary.outcomes[rule_id] == ResetOutcome.RESET
        assert tracking_store.entries == {}
        assert summary.deleted == 5

    @pytest.mark.asyncio
    async def test_sweep_round_trips_opaque_fields(self, sweeper, rule_store):
        before = dict(rule_store.rules["rule-1"])

        await sweeper.sweep()

        after = rule_store.rules["rule-1"]
        assert after["identity"] == ""
        assert {k: v for k, v in after.items() if k != "identity"} == \
            {k: v for k, v in before.items() if k != "identity"}

    @pytest.mark.asyncio
    async def test_listing_drained_before_any_reset(self, sweeper, tracking_store, events):
        tracking_store.page_size = 2
        tracking_store.entries = _tracked("rule-1", "rule-2", "rule-3", "rule-4", "rule-5", "rule-6")
        # 6 keys at 2 per page -> listComplete false, false, true

        await sweeper.sweep()

        assert tracking_store.list_calls == [None, "2", "4"]
        kinds = [kind for kind, _ in events]
        last_list = max(i for i, kind in enumerate(kinds) if kind == "tracking_list")
        first_get = kinds.index("rule_get")
        assert last_list < first_get

    @pytest.mark.asyncio
    async def test_deletions_follow_all_resets(self, sweeper, events):
        await sweeper.sweep()

        kinds = [kind for kind, _ in events]
        last_rule_call = max(i for i, kind in enumerate(kinds) if kind.startswith("rule_"))
        first_delete = kinds.index("tracking_delete")
        assert last_rule_call < first_delete

    @pytest.mark.asyncio
    async def test_failures_are_isolated_and_tracking_still_cleared(self, sweeper, rule_store, tracking_store):
        rule_store.fail_get.add("rule-2")
        rule_store.fail_put.add("rule-3")
        del rule_store.rules["rule-4"]

        summary = await sweeper.sweep()

        assert summary.outcomes["rule-1"] == ResetOutcome.RESET
        assert summary.outcomes["rule-2"] == ResetOutcome.FAILED
        assert summary.outcomes["rule-3"] == ResetOutcome.FAILED
        assert summary.outcomes["rule-4"] == ResetOutcome.SKIPPED_NOT_FOUND
        assert summary.outcomes["rule-5"] == ResetOutcome.RESET

        assert rule_store.rules["rule-1"]["identity"] == ""
        assert rule_store.rules["rule-5"]["identity"] == ""
        assert rule_store.rules["rule-2"]["identity"] != ""
        assert rule_store.rules["rule-3"]["identity"] != ""
        assert tracking_store.entries == {}

    @pytest.mark.asyncio
    async def test_unexpected_reset_error_does_not_abort_sweep(self, sweeper, rule_store, tracking_store):
        original_get = rule_store.get_rule

        async def flaky_get(rule_id):
            if rule_id == "rule-1":
                raise RuntimeError("boom")
            return await original_get(rule_id)

        rule_store.get_rule = flaky_get

        summary = await sweeper.sweep()

        assert summary.outcomes["rule-1"] == ResetOutcome.FAILED
        assert summary.count(ResetOutcome.RESET) == 4
        assert tracking_store.entries == {}

    @pytest.mark.asyncio
    async def test_failed_delete_is_counted(self, sweeper, tracking_store):
        tracking_store.fail_delete.add("rule-5")

        summary = await sweeper.sweep()

        assert summary.deleted == 4
        assert list(tracking_store.entries) == ["rule-5"]

    @pytest.mark.asyncio
    async def test_second_sweep_is_noop(self, sweeper, rule_store):
        await sweeper.sweep()
        puts_after_first = list(rule_store.put_calls)

        summary = await sweeper.sweep()

        assert summary.rule_ids == []
        assert summary.outcomes == {}
        assert rule_store.put_calls == puts_after_first

    @pytest.mark.asyncio
    async def test_listing_failure_keeps_collected_ids(self, sweeper, rule_store, tracking_store):
        tracking_store.fail_list_after = 1

        summary = await sweeper.sweep()

        assert summary.status == "partial_listing"
        assert summary.rule_ids == ["rule-1", "rule-2"]
        assert sorted(tracking_store.entries) == ["rule-3", "rule-4", "rule-5"]
        assert rule_store.rules["rule-3"]["identity"] != ""

    @pytest.mark.asyncio
    async def test_duplicate_keys_reset_once(self, rule_store, tracking_store):
        original_list = tracking_store.list

        async def repeating_list(cursor=None):
            page = await original_list(cursor)
            page.keys = page.keys + page.keys
            return page

        tracking_store.list = repeating_list
        sweeper = ExceptionSweeper(rule_store, tracking_store)

        summary = await sweeper.sweep()

        assert len(summary.rule_ids) == 5
        assert sorted(rule_store.put_calls) == ["rule-1", "rule-2", "rule-3", "rule-4", "rule-5"]

    @pytest.mark.asyncio
    async def test_missing_tracking_store_config(self, rule_store, tracking_store):
        tracking_store.configured = False
        sweeper = ExceptionSweeper(rule_store, tracking_store)

        summary = await sweeper.sweep()

        assert summary.status == "skipped"
        assert tracking_store.events == []
        assert rule_store.get_calls == []

    @pytest.mark.asyncio
    async def test_missing_rule_store_credentials(self, rule_store, tracking_store):
        rule_store.configured = False
        sweeper = ExceptionSweeper(rule_store, tracking_store)

        summary = await sweeper.sweep()

        assert summary.status == "skipped"
        assert tracking_store.list_calls == []
        assert len(tracking_store.entries) == 5

    @pytest.mark.asyncio
    async def test_bounded_concurrency(self, rule_store, tracking_store):
        in_flight = 0
        peak = 0
        original_get = rule_store.get_rule

        async def counting_get(rule_id):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            try:
                await asyncio.sleep(0.01)
                return await original_get(rule_id)
            finally:
                in_flight -= 1

        rule_store.get_rule = counting_get
        sweeper = ExceptionSweeper(rule_store, tracking_store, max_concurrency=2)

        summary = await sweeper.sweep()

        assert peak <= 2
        assert summary.count(ResetOutcome.RESET) == 5

    @pytest.mark.asyncio
    async def test_unbounded_resets_run_concurrently(self, rule_store, tracking_store):
        in_flight = 0
        peak = 0
        original_get = rule_store.get_rule

        async def counting_get(rule_id):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            try:
                await asyncio.sleep(0.01)
                return await original_get(rule_id)
            finally:
                in_flight -= 1

        rule_store.get_rule = counting_get
        sweeper = ExceptionSweeper(rule_store, tracking_store)

        await sweeper.sweep()

        assert peak == 5

    @pytest.mark.asyncio
    async def test_sweep_records_metrics(self, rule_store, tracking_store):
        registry = CollectorRegistry()
        metrics = MetricsCollector("exceptions", registry)
        rule_store.fail_put.add("rule-1")
        sweeper = ExceptionSweeper(rule_store, tracking_store, metrics=metrics)

        await sweeper.sweep()

        assert registry.get_sample_value("sweep_runs_total", {"status": "completed"}) == 1.0
        assert registry.get_sample_value("sweep_rule_resets_total", {"outcome": "reset"}) == 4.0
        assert registry.get_sample_value("sweep_rule_resets_total", {"outcome": "failed"}) == 1.0

    def test_bounded_sweeper_built_outside_event_loop(self, rule_store, tracking_store):
        sweeper = ExceptionSweeper(rule_store, tracking_store, max_concurrency=1)
        original_get = rule_store.get_rule

        async def slow_get(rule_id):
            await asyncio.sleep(0.001)
            return await original_get(rule_id)

        rule_store.get_rule = slow_get

        # Each asyncio.run uses a new loop; the bound must not leak between them
        first = asyncio.run(sweeper.sweep())
        tracking_store.entries = _tracked("rule-1", "rule-2", "rule-3")
        second = asyncio.run(sweeper.sweep())

        assert first.count(ResetOutcome.RESET) == 5
        assert second.count(ResetOutcome.RESET) == 3
