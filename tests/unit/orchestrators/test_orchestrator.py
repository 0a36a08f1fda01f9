"""
Orchestrator 모듈 단위 테스트

이 모듈은 위치 파이프라인, 위치 큐, drain 연동을 테스트합니다.
"""

import pytest
import asyncio
from datetime import datetime, timezone
from safeguard.core.geofence import GeofenceMonitor
from safeguard.core.panic import PanicStateMachine
from safeguard.dispatch.queue import AlertDispatchQueue
from safeguard.services.zone_cache import ZoneCache
from safeguard.orchestrators.orchestrator import Orchestrator
from fakes import T0, FakeLocationSource, FakeProfileStore, FakeSender, point, square

NOON = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
NIGHT = datetime(2024, 6, 1, 2, 0, tzinfo=timezone.utc)


class FakeWatcher:
    """주어진 위치를 보낸 뒤 대기하는 위치 스트림"""

    def __init__(self, locations):
        self.locations = list(locations)

    async def watch(self):
        for location in self.locations:
            yield location
        await asyncio.Event().wait()


def build(sample_zones, scheduler, contacts, *, sender=None, watcher=None, clock=lambda: NOON, **kwargs):
    zones = ZoneCache()
    zones.replace(sample_zones)
    queue = AlertDispatchQueue(sender or FakeSender(), clock=lambda: T0)
    location = FakeLocationSource(point(1, 1))
    panic = PanicStateMachine(scheduler, location, FakeProfileStore(contacts), queue)
    geofence = GeofenceMonitor(zones, queue)
    return Orchestrator(zones, queue, geofence, panic, watcher=watcher, clock=clock, **kwargs)


class TestOrchestrator:
    """Orchestrator 테스트"""

    @pytest.mark.asyncio
    async def test_process_location_scores_with_local_time(self, sample_zones, scheduler, contacts):
        orch = build(sample_zones, scheduler, contacts, clock=lambda: NIGHT)
        assessment = await orch.process_location(point(3.5, 3.5, accuracy=50))

        assert assessment.safety_level == "restricted"
        assert assessment.score == 0
        assert assessment.risk_level == "critical"
        assert orch.last_assessment is assessment
        assert await orch.get_current_location() == point(3.5, 3.5, accuracy=50)

    @pytest.mark.asyncio
    async def test_scenario_safe_square(self, scheduler, contacts):
        orch = build([square("z1", "safe", 0.0, 0.0, 10.0)], scheduler, contacts)
        assessment = await orch.process_location(point(5, 5, accuracy=5))
        assert (assessment.safety_level, assessment.matched_zone.id) == ("safe", "z1")
        assert assessment.score == 100

    @pytest.mark.asyncio
    async def test_worsening_transition_wakes_drain(self, sample_zones, scheduler, contacts):
        orch = build(sample_zones, scheduler, contacts)
        await orch.process_location(point(1, 1))
        assert not orch._wake.is_set()

        await orch.process_location(point(3.5, 3.5))
        assert orch._wake.is_set()
        assert len(orch.queue) == 1

    @pytest.mark.asyncio
    async def test_active_panic_shares_location(self, sample_zones, scheduler, contacts):
        orch = build(sample_zones, scheduler, contacts)
        await orch.panic.trigger()
        await scheduler.advance(3)
        assert orch.panic.state == "active"
        assert orch._wake.is_set()

        orch._wake.clear()
        await orch.process_location(point(1, 1))
        assert orch._wake.is_set()
        types = sorted(t.type for t in orch.queue.tasks())
        assert types == ["emergency_alert", "location_update"]

    @pytest.mark.asyncio
    async def test_submit_location_drops_oldest(self, sample_zones, scheduler, contacts):
        orch = build(sample_zones, scheduler, contacts, queue_maxsize=2)
        for lat in (1, 2, 3):
            assert orch.submit_location(point(lat, lat)) is True

        assert orch.q.qsize() == 2
        assert orch.q.get_nowait().latitude == 2
        assert orch.q.get_nowait().latitude == 3

    @pytest.mark.asyncio
    async def test_submit_location_rejects_when_full(self, sample_zones, scheduler, contacts):
        orch = build(sample_zones, scheduler, contacts, queue_maxsize=1, drop_on_full=False)
        assert orch.submit_location(point(1, 1)) is True
        assert orch.submit_location(point(2, 2)) is False
        assert orch.q.get_nowait().latitude == 1

    @pytest.mark.asyncio
    async def test_drain_once_records_result(self, sample_zones, scheduler, contacts):
        sender = FakeSender(default=False)
        orch = build(sample_zones, scheduler, contacts, sender=sender)
        orch.queue.max_attempts = 1
        await orch.process_location(point(1, 1))
        await orch.process_location(point(2.5, 2.5))

        result = await orch.drain_once()
        assert orch.last_drain is result
        assert len(result.failed_permanent) == 1
        assert orch.queue.status().sync_state == "attention_required"

    @pytest.mark.asyncio
    async def test_start_runs_pipeline(self, sample_zones, scheduler, contacts):
        """시작 후 스트림 위치가 처리되고 알림이 발송됨"""
        sender = FakeSender()
        watcher = FakeWatcher([point(1, 1), point(3.5, 3.5)])
        orch = build(sample_zones, scheduler, contacts, sender=sender, watcher=watcher,
                     drain_interval_sec=0.01)

        running = asyncio.create_task(orch.start())
        for _ in range(200):
            if sender.sent:
                break
            await asyncio.sleep(0.01)

        assert orch.ready is True
        assert [t.type for t in sender.sent] == ["geofence_notice"]
        assert orch.last_assessment.safety_level == "restricted"

        await orch.stop()
        assert orch.ready is False
        with pytest.raises(asyncio.CancelledError):
            await running

    @pytest.mark.asyncio
    async def test_consumer_survives_processing_error(self, sample_zones, scheduler, contacts):
        orch = build(sample_zones, scheduler, contacts)
        calls = []

        async def flaky(location):
            calls.append(location)
            if len(calls) == 1:
                raise RuntimeError("boom")

        orch.process_location = flaky
        consumer = asyncio.create_task(orch._consumer())
        orch.submit_location(point(1, 1))
        orch.submit_location(point(2, 2))
        await asyncio.wait_for(orch.q.join(), timeout=1)

        assert len(calls) == 2
        consumer.cancel()
