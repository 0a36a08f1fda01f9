"""
geofence 모듈 테스트

이 모듈은 안전 등급 전환 감지와 악화 알림 작업 생성을 테스트합니다.
"""

import pytest
from datetime import datetime, timedelta, timezone
from safeguard.core.geofence import GeofenceMonitor, is_worsening
from safeguard.core.models import Coordinate
from fakes import T0, RecordingQueue, point


@pytest.fixture
def queue():
    return RecordingQueue()


@pytest.fixture
def monitor(zone_provider, queue):
    return GeofenceMonitor(zone_provider, queue)


class TestGeofenceMonitor:
    """GeofenceMonitor 테스트"""

    def test_is_worsening(self):
        assert is_worsening("safe", "caution")
        assert is_worsening("caution", "restricted")
        assert not is_worsening("restricted", "safe")
        assert not is_worsening("safe", "safe")

    @pytest.mark.asyncio
    async def test_first_fix_sets_baseline(self, monitor, queue):
        """첫 위치는 이벤트 없이 기준 등급만 설정"""
        assert await monitor.on_location_update(point(2.5, 2.5)) is None
        assert monitor.previous_level == "caution"
        assert monitor.previous_zone.id == "c1"
        assert queue.tasks == []

    def test_naive_timestamp_is_utc(self):
        """오프셋 없는 위치 시각은 UTC로 정규화"""
        location = Coordinate(latitude=1, longitude=1, timestamp=datetime(2024, 6, 1, 12, 0))
        assert location.timestamp == T0
        assert location.timestamp.tzinfo is not None

    @pytest.mark.asyncio
    async def test_mixed_timestamp_sources(self, monitor, queue):
        """aware 기준점 뒤의 naive 위치도 전환을 만들고 체류 시간을 계산"""
        await monitor.on_location_update(point(1, 1))
        naive = Coordinate(latitude=3.5, longitude=3.5, timestamp=datetime(2024, 6, 1, 12, 2))
        event = await monitor.on_location_update(naive)

        assert (event.previous_level, event.new_level) == ("safe", "restricted")
        assert event.seconds_in_previous_zone == 120
        assert [t.type for t in queue.tasks] == ["geofence_notice"]

    @pytest.mark.asyncio
    async def test_worsening_enqueues_notice(self, monitor, queue):
        """safe -> caution 은 알림 작업 생성"""
        await monitor.on_location_update(point(1, 1))
        event = await monitor.on_location_update(point(2.5, 2.5, at=T0 + timedelta(seconds=90)))

        assert event.type == "enter"
        assert event.zone.id == "c1"
        assert (event.previous_level, event.new_level) == ("safe", "caution")
        assert event.worsened is True
        assert event.seconds_in_previous_zone == 90

        assert len(queue.tasks) == 1
        task = queue.tasks[0]
        assert task.type == "geofence_notice"
        assert task.priority == "medium"
        assert task.payload["zone_id"] == "c1"
        assert task.payload["title"] == "Caution Area"
        assert task.payload["safety_tips"] == ["c1 tip"]
        assert task.payload["maps_url"].endswith("?q=2.5,2.5")

    @pytest.mark.asyncio
    async def test_improvement_has_no_task(self, monitor, queue):
        """개선 전환은 이력에만 남음"""
        await monitor.on_location_update(point(3.5, 3.5))
        event = await monitor.on_location_update(point(2.5, 2.5))

        assert event.worsened is False
        assert event.new_level == "caution"
        assert queue.tasks == []
        assert monitor.history == [event]

    @pytest.mark.asyncio
    async def test_exit_to_open_area(self, monitor, queue):
        """구역 밖으로 나가면 exit 이벤트 (이전 구역 보고)"""
        await monitor.on_location_update(point(2.5, 2.5))
        event = await monitor.on_location_update(point(20, 20))

        assert event.type == "exit"
        assert event.zone.id == "c1"
        assert event.new_level == "safe"
        assert queue.tasks == []

    @pytest.mark.asyncio
    async def test_same_level_zone_change_no_event(self, monitor):
        """같은 등급 사이의 이동은 이벤트 없음"""
        await monitor.on_location_update(point(1, 1))
        assert await monitor.on_location_update(point(20, 20)) is None
        assert monitor.previous_zone is None
        assert monitor.history == []

    @pytest.mark.asyncio
    async def test_listener_and_history_order(self, monitor):
        received = []
        unsubscribe = monitor.add_listener(received.append)

        await monitor.on_location_update(point(1, 1))
        first = await monitor.on_location_update(point(2.5, 2.5))
        second = await monitor.on_location_update(point(3.5, 3.5))

        assert received == [first, second]
        assert monitor.history == [second, first]

        unsubscribe()
        await monitor.on_location_update(point(1, 1))
        assert len(received) == 2

    @pytest.mark.asyncio
    async def test_listener_error_does_not_break_monitor(self, monitor, queue):
        def broken(event):
            raise RuntimeError("boom")

        monitor.add_listener(broken)
        await monitor.on_location_update(point(1, 1))
        event = await monitor.on_location_update(point(3.5, 3.5))
        assert event.new_level == "restricted"
        assert queue.tasks[0].payload["title"] == "Restricted Area Warning"

    @pytest.mark.asyncio
    async def test_reset(self, monitor):
        await monitor.on_location_update(point(1, 1))
        monitor.reset()
        assert await monitor.on_location_update(point(3.5, 3.5)) is None
        assert monitor.previous_level == "restricted"

    @pytest.mark.asyncio
    async def test_history_size(self, zone_provider, queue):
        monitor = GeofenceMonitor(zone_provider, queue, history_size=2)
        await monitor.on_location_update(point(1, 1))
        for lat in (2.5, 1, 3.5, 1):
            await monitor.on_location_update(point(lat, lat))
        assert len(monitor.history) == 2
        assert monitor.history[0].new_level == "safe"
