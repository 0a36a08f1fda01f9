"""
panic 모듈 테스트

이 모듈은 수동 스케줄러로 카운트다운, 전제 조건, 활성화/해제
전이를 결정적으로 테스트합니다.
"""

import asyncio
import pytest
from safeguard.core.panic import PanicStateMachine, TRANSITIONS
from safeguard.core.errors import PreconditionError
from safeguard.core.models import Contact
from fakes import FakeLocationSource, FakeProfileStore, RecordingQueue, point


class FailingLocationSource:
    """위치 조회가 항상 실패하는 위치 원천"""

    async def get_current_location(self):
        raise ConnectionError("gps offline")


class FailingQueue:
    """enqueue가 항상 실패하는 큐"""

    async def enqueue(self, task):
        raise OSError("queue unavailable")


class BlockingLocationSource:
    """release가 설정될 때까지 위치 조회를 붙잡는 위치 원천"""

    def __init__(self, location):
        self.location = location
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def get_current_location(self):
        self.entered.set()
        await self.release.wait()
        return self.location


@pytest.fixture
def queue():
    return RecordingQueue()


@pytest.fixture
def location():
    return FakeLocationSource(point(37.5, 127.0, accuracy=8))


@pytest.fixture
def machine(scheduler, location, contacts, queue):
    return PanicStateMachine(scheduler, location, FakeProfileStore(contacts), queue, countdown_sec=3)


class TestCountdown:
    """카운트다운 테스트"""

    @pytest.mark.asyncio
    async def test_trigger_starts_countdown(self, machine, scheduler):
        session = await machine.trigger()
        assert session.state == "counting_down"
        assert session.countdown_remaining == 3
        assert session.started_at == scheduler.now()

    @pytest.mark.asyncio
    async def test_countdown_ticks(self, machine, scheduler, queue):
        await machine.trigger()
        await scheduler.advance(1)
        assert machine.session.countdown_remaining == 2
        await scheduler.advance(1)
        assert machine.session.countdown_remaining == 1
        assert machine.state == "counting_down"
        assert queue.tasks == []

    @pytest.mark.asyncio
    async def test_second_trigger_cancels(self, machine, scheduler, queue):
        """카운트다운 중 두 번째 입력은 취소"""
        await machine.trigger()
        await scheduler.advance(2)
        session = await machine.trigger()
        assert session.state == "idle"
        assert session.countdown_remaining == 0

        # 취소된 카운트다운의 tick은 아무것도 하지 않음
        await scheduler.advance(10)
        assert machine.state == "idle"
        assert queue.tasks == []

    @pytest.mark.asyncio
    async def test_late_tick_of_cancelled_countdown_is_noop(self, machine, scheduler, queue):
        """취소 후 재시작해도 이전 tick은 새 카운트다운에 영향 없음"""
        await machine.trigger()
        stale = machine._countdown
        await machine.trigger()
        await machine.trigger()

        await machine._on_tick(stale)
        assert machine.session.countdown_remaining == 3

        await scheduler.advance(3)
        assert machine.state == "active"
        assert len(queue.tasks) == 1


class TestActivation:
    """활성화 테스트"""

    @pytest.mark.asyncio
    async def test_activation_enqueues_emergency_alert(self, machine, scheduler, queue):
        changes = []
        machine.add_listener(lambda s: changes.append(s.state))

        await machine.trigger()
        await scheduler.advance(3)

        assert machine.state == "active"
        assert changes == ["counting_down", "activating", "active"]

        assert len(queue.tasks) == 1
        task = queue.tasks[0]
        assert task.type == "emergency_alert"
        assert task.priority == "high"
        assert task.created_at == scheduler.now()
        assert machine.session.alert_task_id == task.id
        assert machine.session.activated_at == scheduler.now()

        payload = task.payload
        assert payload["user_name"] == "Alex"
        assert payload["location"] == {"latitude": 37.5, "longitude": 127.0, "accuracy": 8}
        assert payload["maps_url"] == "https://maps.google.com/?q=37.5,127.0"
        assert [c["id"] for c in payload["contacts"]] == ["c1", "c2"]
        assert payload["message"].startswith("EMERGENCY ALERT: Alex")

    @pytest.mark.asyncio
    async def test_location_required(self, scheduler, contacts, queue):
        machine = PanicStateMachine(scheduler, FakeLocationSource(None), FakeProfileStore(contacts), queue)
        await machine.trigger()
        await scheduler.advance(3)

        assert machine.state == "idle"
        assert machine.session.failure_reason == "location_required"
        assert isinstance(machine.last_error, PreconditionError)
        assert machine.last_error.title == "Location Required"
        assert queue.tasks == []

    @pytest.mark.asyncio
    async def test_no_contacts(self, scheduler, location, queue):
        machine = PanicStateMachine(scheduler, location, FakeProfileStore([]), queue)
        await machine.trigger()
        await scheduler.advance(3)

        assert machine.state == "idle"
        assert machine.session.failure_reason == "no_contacts"
        assert queue.tasks == []

    @pytest.mark.asyncio
    async def test_no_automatic_retry_after_failure(self, scheduler, location, queue):
        """전제 조건 실패 후에는 새 입력이 있어야 다시 시도"""
        profile = FakeProfileStore([])
        machine = PanicStateMachine(scheduler, location, profile, queue, countdown_sec=1)
        await machine.trigger()
        await scheduler.advance(5)
        assert machine.state == "idle"

        profile.profile.emergency_contacts.append(Contact(id="x", name="X", phone_number="1"))
        await scheduler.advance(5)
        assert machine.state == "idle"

        await machine.trigger()
        assert machine.session.failure_reason is None
        assert machine.last_error is None
        await scheduler.advance(1)
        assert machine.state == "active"

    @pytest.mark.asyncio
    async def test_trigger_ignored_while_active(self, machine, scheduler, queue):
        await machine.trigger()
        await scheduler.advance(3)
        session = await machine.trigger()
        assert session.state == "active"
        assert len(queue.tasks) == 1


class TestActiveSession:
    """활성 상태 동작 테스트"""

    @pytest.mark.asyncio
    async def test_location_updates_while_active(self, machine, scheduler, queue):
        assert await machine.on_location_update(point(1, 1)) is None

        await machine.trigger()
        await scheduler.advance(3)
        task = await machine.on_location_update(point(37.6, 127.1))

        assert task.type == "location_update"
        assert task.priority == "high"
        assert task.payload["emergency_task_id"] == machine.session.alert_task_id
        assert queue.tasks[-1] is task

    @pytest.mark.asyncio
    async def test_location_sharing_disabled(self, scheduler, location, contacts, queue):
        machine = PanicStateMachine(scheduler, location, FakeProfileStore(contacts), queue,
                                    share_location_updates=False)
        await machine.trigger()
        await scheduler.advance(3)
        assert await machine.on_location_update(point(1, 1)) is None
        assert len(queue.tasks) == 1

    @pytest.mark.asyncio
    async def test_deactivation(self, machine, scheduler):
        """active -> deactivating -> idle"""
        assert (await machine.request_deactivation()).state == "idle"

        await machine.trigger()
        await scheduler.advance(3)

        assert (await machine.confirm_deactivation()).state == "active"
        assert (await machine.request_deactivation()).state == "deactivating"
        assert (await machine.trigger()).state == "deactivating"
        assert (await machine.confirm_deactivation()).state == "idle"

        # 다시 시작할 수 있음
        assert (await machine.trigger()).state == "counting_down"

    def test_transition_graph(self):
        assert TRANSITIONS["idle"] == {"counting_down"}
        assert "active" not in TRANSITIONS["idle"]
        assert TRANSITIONS["deactivating"] == {"idle"}

    def test_invalid_transition_raises(self, machine):
        with pytest.raises(RuntimeError):
            machine._transition("active")

    @pytest.mark.asyncio
    async def test_session_is_copy(self, machine):
        session = machine.session
        session.state = "active"
        assert machine.state == "idle"


class TestActivationErrors:
    """활성화 중 협력자 오류 테스트"""

    @pytest.mark.asyncio
    async def test_location_port_error_returns_to_idle(self, scheduler, contacts, queue):
        """위치 조회 오류 후 idle로 돌아가 다시 트리거할 수 있음"""
        machine = PanicStateMachine(scheduler, FailingLocationSource(), FakeProfileStore(contacts), queue)
        await machine.trigger()
        await scheduler.advance(3)

        assert machine.state == "idle"
        assert machine.session.failure_reason == "activation_failed"
        assert machine.last_error.title == "Emergency Alert Failed"
        assert queue.tasks == []

        machine.location = FakeLocationSource(point(37.5, 127.0))
        assert (await machine.trigger()).state == "counting_down"
        await scheduler.advance(3)
        assert machine.state == "active"
        assert len(queue.tasks) == 1

    @pytest.mark.asyncio
    async def test_queue_error_returns_to_idle(self, scheduler, location, contacts):
        machine = PanicStateMachine(scheduler, location, FakeProfileStore(contacts), FailingQueue())
        await machine.trigger()
        await scheduler.advance(3)

        assert machine.state == "idle"
        assert machine.session.failure_reason == "activation_failed"
        assert machine.session.alert_task_id is None


class TestSerialization:
    """상태 전이 직렬화 테스트"""

    @pytest.mark.asyncio
    async def test_requests_during_activation_wait_in_order(self, scheduler, contacts, queue):
        """활성화 중 들어온 요청은 전이가 끝난 뒤 도착 순서대로 처리"""
        source = BlockingLocationSource(point(37.5, 127.0))
        machine = PanicStateMachine(scheduler, source, FakeProfileStore(contacts), queue, countdown_sec=1)
        changes = []
        machine.add_listener(lambda s: changes.append(s.state))

        await machine.trigger()
        activation = asyncio.create_task(scheduler.advance(1))
        await source.entered.wait()
        assert machine.state == "activating"

        trigger = asyncio.create_task(machine.trigger())
        deactivate = asyncio.create_task(machine.request_deactivation())
        await asyncio.sleep(0)
        assert not trigger.done()
        assert not deactivate.done()
        assert machine.state == "activating"

        source.release.set()
        await activation

        # 트리거는 active 상태에서 무시되고, 해제 요청은 그 뒤에 적용됨
        assert (await trigger).state == "active"
        assert (await deactivate).state == "deactivating"
        assert changes == ["counting_down", "activating", "active", "deactivating"]
        assert len(queue.tasks) == 1
        assert queue.tasks[0].type == "emergency_alert"


class TestEmergencyType:
    """긴급 유형 메시지 테스트"""

    @pytest.mark.asyncio
    async def test_emergency_type_selects_message(self, machine, scheduler, queue):
        session = await machine.trigger(emergency_type="lost")
        assert session.emergency_type == "lost"
        await scheduler.advance(3)

        payload = queue.tasks[0].payload
        assert payload["emergency_type"] == "lost"
        assert payload["message"].startswith("HELP: I am lost")
