"""
Tests for SweepScheduler.

Tests:
- Per-area algorithm (skip, idle, fire, failures)
- Sweep isolation and reporting
- Overlap protection and bounded concurrency
- Timer lifecycle (start/stop/status)
"""

import asyncio
from typing import Any, Dict, List

import pytest

from areaflow.engine.models import AreaOutcome, CheckResult, Credentials
from areaflow.engine.scheduler import SweepScheduler
from areaflow.errors import PermanentExternalError, TransientExternalError
from areaflow.services.base import Reaction, Service, Trigger
from areaflow.services.registry import ServiceRegistry


def _scripted_registry(checks: Dict[str, Any], executed: List[tuple]) -> ServiceRegistry:
    """
    Registry with one scripted service.

    ``checks`` maps an area's params["key"] to a CheckResult, an exception
    to raise, or an async callable(params, context).
    """

    async def watch(params, context):
        behaviour = checks[params["key"]]
        if isinstance(behaviour, Exception):
            raise behaviour
        if callable(behaviour):
            return await behaviour(params, context)
        return behaviour

    async def record(params, context):
        executed.append(("record", params, context))

    async def boom(params, context):
        executed.append(("boom", params, context))
        raise PermanentExternalError("400 bad request", service_name="scripted", status_code=400)

    async def hang(params, context):
        executed.append(("hang", params, context))
        await asyncio.sleep(10)

    registry = ServiceRegistry()
    registry.register(
        Service(
            name="scripted",
            description="Scripted service",
            requires_auth=False,
            auth_type="none",
            triggers=(Trigger(name="watch", description="Scripted check", check=watch),),
            reactions=(
                Reaction(name="record", description="Records its call", execute=record),
                Reaction(name="boom", description="Always fails", execute=boom),
                Reaction(name="hang", description="Never returns in time", execute=hang),
            ),
        )
    )
    registry.register(
        Service(
            name="secured",
            description="Service that needs a connection",
            triggers=(Trigger(name="watch", description="Scripted check", check=watch),),
            reactions=(Reaction(name="record", description="Records its call", execute=record),),
        )
    )
    return registry


def _scripted_area(make_area, key: str, metadata=None, reactions=None, **kwargs):
    return make_area(
        service_name="scripted",
        trigger_name="watch",
        params={"key": key},
        metadata=metadata,
        connection_id=None,
        reactions=reactions,
        **kwargs,
    )


def _scheduler(area_store, resolver, registry, **kwargs) -> SweepScheduler:
    kwargs.setdefault("call_timeout", 1)
    return SweepScheduler(area_store, resolver, registry, **kwargs)


async def _wait_for(predicate, timeout: float = 2.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


# ── process_area ──


class TestProcessArea:

    @pytest.mark.asyncio
    async def test_first_observation_persists_baseline_without_firing(self, area_store, resolver, make_area):
        executed = []
        registry = _scripted_registry({"a": CheckResult(fired=False, metadata={"lastId": 1})}, executed)
        area = area_store.add(_scripted_area(make_area, "a", reactions=[("scripted", "record", {}, None)]))
        scheduler = _scheduler(area_store, resolver, registry)

        outcome = await scheduler.process_area(area)

        assert outcome == AreaOutcome.IDLE
        assert area_store.metadata_writes == [(area.trigger.id, {"lastId": 1})]
        assert area_store.firings == []
        assert executed == []

    @pytest.mark.asyncio
    async def test_equal_metadata_is_not_written(self, area_store, resolver, make_area):
        registry = _scripted_registry({"a": CheckResult(fired=False, metadata={"lastId": 1})}, [])
        area = area_store.add(_scripted_area(make_area, "a", metadata={"lastId": 1}))

        outcome = await _scheduler(area_store, resolver, registry).process_area(area)

        assert outcome == AreaOutcome.IDLE
        assert area_store.metadata_writes == []

    @pytest.mark.asyncio
    async def test_check_mutating_context_does_not_fake_a_change(self, area_store, resolver, make_area):
        async def mutate(params, context):
            context.metadata["lastId"] = 99
            return CheckResult(fired=False, metadata={"lastId": 1})

        registry = _scripted_registry({"a": mutate}, [])
        area = area_store.add(_scripted_area(make_area, "a", metadata={"lastId": 1}))

        await _scheduler(area_store, resolver, registry).process_area(area)

        assert area_store.metadata_writes == []
        assert area_store.areas[area.id].trigger.metadata == {"lastId": 1}

    @pytest.mark.asyncio
    async def test_fired_trigger_records_firing_and_interpolates_reactions(self, area_store, resolver, make_area):
        executed = []
        registry = _scripted_registry(
            {"a": CheckResult(fired=True, data={"title": "Bug Fix", "n": 3}, metadata={"lastId": 2})},
            executed,
        )
        area = area_store.add(
            _scripted_area(
                make_area,
                "a",
                metadata={"lastId": 1},
                reactions=[("scripted", "record", {"subject": "New: {{title}}", "count": "{{n}} {{missing}}"}, None)],
            )
        )

        outcome = await _scheduler(area_store, resolver, registry).process_area(area)

        assert outcome == AreaOutcome.FIRED
        assert area_store.metadata_writes == [(area.trigger.id, {"lastId": 2})]
        assert len(area_store.firings) == 1
        assert area_store.areas[area.id].trigger_count == 1
        assert area_store.areas[area.id].last_triggered_at is not None

        name, params, context = executed[0]
        assert name == "record"
        assert params == {"subject": "New: Bug Fix", "count": "3 {{missing}}"}
        assert context.trigger_data == {"title": "Bug Fix", "n": 3}
        assert context.user_id == area.user_id
        # Stored template is left untouched
        assert area.reactions[0].params["subject"] == "New: {{title}}"

    @pytest.mark.asyncio
    async def test_fired_without_reactions_still_counts(self, area_store, resolver, make_area):
        registry = _scripted_registry({"a": CheckResult(fired=True, data={}, metadata={"lastId": 2})}, [])
        area = area_store.add(_scripted_area(make_area, "a", metadata={"lastId": 1}))

        outcome = await _scheduler(area_store, resolver, registry).process_area(area)

        assert outcome == AreaOutcome.FIRED
        assert area_store.areas[area.id].trigger_count == 1

    @pytest.mark.asyncio
    async def test_unknown_service_is_skipped(self, area_store, resolver, make_area):
        registry = _scripted_registry({}, [])
        area = area_store.add(make_area(service_name="removed", trigger_name="watch"))

        outcome = await _scheduler(area_store, resolver, registry).process_area(area)

        assert outcome == AreaOutcome.SKIPPED
        assert area_store.metadata_writes == []
        assert area_store.firings == []

    @pytest.mark.asyncio
    async def test_unknown_trigger_is_skipped(self, area_store, resolver, make_area):
        registry = _scripted_registry({}, [])
        area = area_store.add(_scripted_area(make_area, "a"))
        area.trigger.trigger_name = "vanished"

        outcome = await _scheduler(area_store, resolver, registry).process_area(area)

        assert outcome == AreaOutcome.SKIPPED

    @pytest.mark.asyncio
    async def test_missing_connection_is_skipped(self, area_store, resolver, make_area):
        registry = _scripted_registry({"a": CheckResult(fired=True, data={})}, [])
        no_binding = area_store.add(
            make_area(service_name="secured", trigger_name="watch", params={"key": "a"}, connection_id=None)
        )
        dangling = area_store.add(
            make_area(service_name="secured", trigger_name="watch", params={"key": "a"}, connection_id="gone")
        )
        scheduler = _scheduler(area_store, resolver, registry)

        assert await scheduler.process_area(no_binding) == AreaOutcome.SKIPPED
        assert await scheduler.process_area(dangling) == AreaOutcome.SKIPPED
        assert area_store.firings == []
        assert resolver.lookups == ["gone"]

    @pytest.mark.asyncio
    async def test_connection_credentials_reach_the_check(self, area_store, resolver, make_area):
        seen = []

        async def capture(params, context):
            seen.append(context.credentials)
            return CheckResult.idle()

        registry = _scripted_registry({"a": capture}, [])
        area = area_store.add(
            make_area(service_name="secured", trigger_name="watch", params={"key": "a"}, connection_id="conn-github")
        )

        await _scheduler(area_store, resolver, registry).process_area(area)

        assert seen == [Credentials(access_token="gh-token")]

    @pytest.mark.asyncio
    async def test_check_error_fails_area_without_writes(self, area_store, resolver, make_area):
        registry = _scripted_registry({"a": TransientExternalError("503", service_name="scripted")}, [])
        area = area_store.add(_scripted_area(make_area, "a", metadata={"lastId": 1}))

        outcome = await _scheduler(area_store, resolver, registry).process_area(area)

        assert outcome == AreaOutcome.FAILED
        assert area_store.metadata_writes == []

    @pytest.mark.asyncio
    async def test_check_timeout_fails_area(self, area_store, resolver, make_area):
        async def slow(params, context):
            await asyncio.sleep(5)
            return CheckResult(fired=True, data={})

        registry = _scripted_registry({"a": slow}, [])
        area = area_store.add(_scripted_area(make_area, "a", metadata={"lastId": 1}))

        outcome = await _scheduler(area_store, resolver, registry, call_timeout=0.05).process_area(area)

        assert outcome == AreaOutcome.FAILED
        assert area_store.firings == []

    @pytest.mark.asyncio
    async def test_credential_lookup_timeout_fails_area(self, area_store, make_area):
        class HangingResolver:
            async def resolve(self, connection_id):
                await asyncio.sleep(5)

        executed = []
        registry = _scripted_registry({"a": CheckResult(fired=True, data={}, metadata={"lastId": 2})}, executed)
        area = area_store.add(
            make_area(
                service_name="secured",
                trigger_name="watch",
                params={"key": "a"},
                metadata={"lastId": 1},
                connection_id="conn-github",
                reactions=[("scripted", "record", {}, None)],
            )
        )
        scheduler = _scheduler(area_store, HangingResolver(), registry, call_timeout=0.05)

        report = await asyncio.wait_for(scheduler.run_sweep(), timeout=2)

        assert report.failed == 1
        assert area_store.metadata_writes == []
        assert area_store.firings == []
        assert executed == []

    @pytest.mark.asyncio
    async def test_metadata_write_failure_prevents_reactions(self, area_store, resolver, make_area):
        executed = []
        registry = _scripted_registry({"a": CheckResult(fired=True, data={}, metadata={"lastId": 2})}, executed)
        area = area_store.add(
            _scripted_area(make_area, "a", metadata={"lastId": 1}, reactions=[("scripted", "record", {}, None)])
        )
        area_store.fail_metadata_write = True

        outcome = await _scheduler(area_store, resolver, registry).process_area(area)

        assert outcome == AreaOutcome.FAILED
        assert area_store.firings == []
        assert executed == []


# ── Reactions ──


class TestReactionIsolation:

    @pytest.mark.asyncio
    async def test_failing_reaction_does_not_block_the_next(self, area_store, resolver, make_area):
        executed = []
        registry = _scripted_registry({"a": CheckResult(fired=True, data={"x": 1}, metadata={"lastId": 2})}, executed)
        area_store.add(
            _scripted_area(
                make_area,
                "a",
                metadata={"lastId": 1},
                reactions=[("scripted", "boom", {}, None), ("scripted", "record", {}, None)],
            )
        )

        report = await _scheduler(area_store, resolver, registry).run_sweep()

        assert [name for name, _, _ in executed] == ["boom", "record"]
        assert len(area_store.firings) == 1
        assert report.fired == 1
        assert report.reactions_failed == 1
        assert report.reactions_succeeded == 1

    @pytest.mark.asyncio
    async def test_unresolvable_reactions_are_skipped(self, area_store, resolver, make_area):
        executed = []
        registry = _scripted_registry({"a": CheckResult(fired=True, data={}, metadata={"lastId": 2})}, executed)
        area_store.add(
            _scripted_area(
                make_area,
                "a",
                metadata={"lastId": 1},
                reactions=[
                    ("scripted", "unknown", {}, None),
                    ("secured", "record", {}, None),      # needs a connection
                    ("secured", "record", {}, "conn-gmail"),
                ],
            )
        )

        report = await _scheduler(area_store, resolver, registry).run_sweep()

        assert len(executed) == 1
        assert executed[0][2].credentials.access_token == "google-token"
        assert report.reactions_failed == 2
        assert report.reactions_succeeded == 1

    @pytest.mark.asyncio
    async def test_reaction_timeout_counts_as_failure(self, area_store, resolver, make_area):
        executed = []
        registry = _scripted_registry({"a": CheckResult(fired=True, data={}, metadata={"lastId": 2})}, executed)
        area_store.add(
            _scripted_area(
                make_area,
                "a",
                metadata={"lastId": 1},
                reactions=[("scripted", "hang", {}, None), ("scripted", "record", {}, None)],
            )
        )

        report = await _scheduler(area_store, resolver, registry, call_timeout=0.05).run_sweep()

        assert [name for name, _, _ in executed] == ["hang", "record"]
        assert report.reactions_failed == 1
        assert report.reactions_succeeded == 1


# ── run_sweep ──


class TestRunSweep:

    @pytest.mark.asyncio
    async def test_failing_area_does_not_affect_others(self, area_store, resolver, make_area):
        executed = []
        registry = _scripted_registry(
            {
                "bad": RuntimeError("unexpected"),
                "good": CheckResult(fired=True, data={"v": "ok"}, metadata={"lastId": 2}),
            },
            executed,
        )
        area_store.add(_scripted_area(make_area, "bad", metadata={"lastId": 1}))
        good = area_store.add(
            _scripted_area(make_area, "good", metadata={"lastId": 1}, reactions=[("scripted", "record", {"v": "{{v}}"}, None)])
        )

        report = await _scheduler(area_store, resolver, registry).run_sweep()

        assert report.areas_total == 2
        assert report.failed == 1
        assert report.fired == 1
        assert area_store.areas[good.id].trigger.metadata == {"lastId": 2}
        assert area_store.areas[good.id].trigger_count == 1
        assert executed[0][1] == {"v": "ok"}

    @pytest.mark.asyncio
    async def test_disabled_areas_are_not_evaluated(self, area_store, resolver, make_area):
        calls = []

        async def count(params, context):
            calls.append(params["key"])
            return CheckResult.idle()

        registry = _scripted_registry({"on": count, "off": count}, [])
        area_store.add(_scripted_area(make_area, "on"))
        area_store.add(_scripted_area(make_area, "off", enabled=False))

        report = await _scheduler(area_store, resolver, registry).run_sweep()

        assert calls == ["on"]
        assert report.areas_total == 1
        assert report.idle == 1

    @pytest.mark.asyncio
    async def test_load_failure_is_reported_not_raised(self, area_store, resolver):
        area_store.fail_list = True
        scheduler = _scheduler(area_store, resolver, _scripted_registry({}, []))

        report = await scheduler.run_sweep()

        assert report.load_failed is True
        assert report.areas_total == 0
        assert scheduler.last_report is report

    @pytest.mark.asyncio
    async def test_overlapping_sweep_is_dropped(self, area_store, resolver, make_area):
        release = asyncio.Event()
        entered = asyncio.Event()

        async def blocked(params, context):
            entered.set()
            await release.wait()
            return CheckResult.idle()

        registry = _scripted_registry({"a": blocked}, [])
        area_store.add(_scripted_area(make_area, "a"))
        scheduler = _scheduler(area_store, resolver, registry, call_timeout=5)

        first = asyncio.create_task(scheduler.run_sweep())
        await entered.wait()

        assert scheduler.sweeping is True
        assert await scheduler.run_sweep() is None

        release.set()
        report = await first
        assert report.idle == 1
        assert scheduler.sweeping is False

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self, area_store, resolver, make_area):
        active = 0
        peak = 0

        async def tracked(params, context):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.02)
            active -= 1
            return CheckResult.idle()

        registry = _scripted_registry({"a": tracked}, [])
        for _ in range(6):
            area_store.add(_scripted_area(make_area, "a"))

        report = await _scheduler(area_store, resolver, registry, max_concurrency=2).run_sweep()

        assert report.idle == 6
        assert peak == 2

    @pytest.mark.asyncio
    async def test_each_sweep_rereads_the_store(self, area_store, resolver, make_area):
        registry = _scripted_registry({"a": CheckResult(fired=False, metadata={"lastId": 1})}, [])
        scheduler = _scheduler(area_store, resolver, registry)

        first = await scheduler.run_sweep()
        area_store.add(_scripted_area(make_area, "a"))
        second = await scheduler.run_sweep()

        assert first.areas_total == 0
        assert second.areas_total == 1


# ── Timer lifecycle ──


class TestSchedulerLifecycle:

    def test_invalid_settings_raise(self, area_store, resolver):
        registry = ServiceRegistry()
        with pytest.raises(ValueError):
            SweepScheduler(area_store, resolver, registry, interval=0)
        with pytest.raises(ValueError):
            SweepScheduler(area_store, resolver, registry, max_concurrency=0)

    def test_built_outside_a_loop_sweeps_inside_one(self, area_store, resolver, make_area):
        registry = _scripted_registry({"a": CheckResult.idle()}, [])
        area_store.add(_scripted_area(make_area, "a", metadata={"lastId": 1}))
        scheduler = _scheduler(area_store, resolver, registry)

        assert scheduler.sweeping is False
        first = asyncio.run(scheduler.run_sweep())
        second = asyncio.run(scheduler.run_sweep())

        assert first.idle == 1
        assert second.idle == 1
        assert scheduler.status()["sweeps_completed"] == 2

    @pytest.mark.asyncio
    async def test_start_sweeps_immediately_and_is_idempotent(self, area_store, resolver):
        scheduler = _scheduler(area_store, resolver, _scripted_registry({}, []))

        await scheduler.start(interval=3600)
        loop_task = scheduler._loop_task
        await scheduler.start()
        try:
            assert scheduler._loop_task is loop_task
            assert scheduler.interval == 3600
            await _wait_for(lambda: scheduler.last_report is not None)
            assert scheduler.status()["sweeps_completed"] == 1
        finally:
            await scheduler.stop()

    @pytest.mark.asyncio
    async def test_start_rejects_bad_interval(self, area_store, resolver):
        scheduler = _scheduler(area_store, resolver, _scripted_registry({}, []))
        with pytest.raises(ValueError):
            await scheduler.start(interval=-1)
        assert scheduler.running is False

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self, area_store, resolver):
        scheduler = _scheduler(area_store, resolver, _scripted_registry({}, []))

        await scheduler.stop()
        await scheduler.start(interval=3600)
        await scheduler.stop()
        await scheduler.stop()

        assert scheduler.running is False
        assert scheduler.status()["running"] is False

    @pytest.mark.asyncio
    async def test_stop_leaves_in_flight_sweep_running(self, area_store, resolver, make_area):
        release = asyncio.Event()
        entered = asyncio.Event()

        async def blocked(params, context):
            entered.set()
            await release.wait()
            return CheckResult(fired=False, metadata={"lastId": 1})

        registry = _scripted_registry({"a": blocked}, [])
        area = area_store.add(_scripted_area(make_area, "a"))
        scheduler = _scheduler(area_store, resolver, registry, call_timeout=5)

        await scheduler.start(interval=3600)
        await entered.wait()
        await scheduler.stop()

        assert scheduler.running is False
        assert scheduler.sweeping is True

        release.set()
        assert await scheduler.wait_idle(timeout=1) is True
        assert area_store.areas[area.id].trigger.metadata == {"lastId": 1}

    @pytest.mark.asyncio
    async def test_wait_idle_abandons_slow_sweep(self, area_store, resolver, make_area):
        entered = asyncio.Event()

        async def stuck(params, context):
            entered.set()
            await asyncio.sleep(10)
            return CheckResult.idle()

        registry = _scripted_registry({"a": stuck}, [])
        area_store.add(_scripted_area(make_area, "a"))
        scheduler = _scheduler(area_store, resolver, registry, call_timeout=30)

        await scheduler.start(interval=3600)
        await entered.wait()
        await scheduler.stop()

        assert await scheduler.wait_idle(timeout=0.05) is False
        assert scheduler.sweeping is False

    @pytest.mark.asyncio
    async def test_ticks_are_dropped_while_sweep_runs(self, area_store, resolver, make_area):
        release = asyncio.Event()
        calls = []

        async def blocked(params, context):
            calls.append(1)
            await release.wait()
            return CheckResult.idle()

        registry = _scripted_registry({"a": blocked}, [])
        area_store.add(_scripted_area(make_area, "a"))
        scheduler = _scheduler(area_store, resolver, registry, interval=0.01, call_timeout=5)

        await scheduler.start()
        try:
            await _wait_for(lambda: scheduler.status()["ticks_dropped"] >= 2)
            assert len(calls) == 1
        finally:
            await scheduler.stop()
            release.set()
            await scheduler.wait_idle(timeout=1)

    @pytest.mark.asyncio
    async def test_status_shape(self, area_store, resolver):
        scheduler = _scheduler(area_store, resolver, _scripted_registry({}, []), interval=30, max_concurrency=3)
        await scheduler.run_sweep()

        status = scheduler.status()

        assert status["running"] is False
        assert status["sweeping"] is False
        assert status["interval_seconds"] == 30
        assert status["max_concurrency"] == 3
        assert status["last_report"]["areas_total"] == 0
        assert status["last_report"]["load_failed"] is False
