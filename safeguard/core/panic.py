"""
Panic activation state machine for SafeGuard.

Lifecycle: idle -> counting_down -> activating -> active -> deactivating -> idle.

A trigger starts a countdown; a second trigger during the countdown
cancels it. When the countdown reaches zero the preconditions (known
location, at least one emergency contact) are checked and, on success,
a high-priority emergency alert is handed to the dispatch queue.

All transitions run under one lock, so concurrent requests are applied
in arrival order and never interleave.
"""

import asyncio
from typing import Callable, Dict, List, Optional, Set
from safeguard.core.models import AlertTask, Coordinate, EmergencyType, PanicSession, PanicState
from safeguard.core.errors import PreconditionError
from safeguard.core.messages import (
    emergency_message,
    location_update_message,
    maps_url,
    order_contacts,
)
from safeguard.common.scheduler import CancellationToken, Scheduler
from safeguard.ports.location import LocationSourcePort
from safeguard.ports.profile import ProfileStorePort
from safeguard.ports.dispatch import AlertQueuePort
from safeguard.observability import metrics
from safeguard.observability.logging_setup import get_logger

log = get_logger("safeguard.panic")

# 상태 전이 그래프
TRANSITIONS: Dict[str, Set[str]] = {
    "idle": {"counting_down"},
    "counting_down": {"idle", "activating"},
    "activating": {"active", "idle"},
    "active": {"deactivating"},
    "deactivating": {"idle"},
}

SessionListener = Callable[[PanicSession], None]

class PanicStateMachine:
    """패닉 버튼 상태 기계"""

    def __init__(self,
                 scheduler: Scheduler,
                 location: LocationSourcePort,
                 profile: ProfileStorePort,
                 queue: AlertQueuePort,
                 *,
                 countdown_sec: int = 3,
                 share_location_updates: bool = True):
        """
        초기화합니다.

        Args:
            scheduler: 카운트다운 타이머 스케줄러
            location: 현재 위치 포트
            profile: 프로필/긴급 연락처 포트
            queue: 알림 발송 큐
            countdown_sec: 활성화 전 카운트다운 (초)
            share_location_updates: 활성 상태에서 위치 갱신 알림 발송 여부
        """
        self.scheduler = scheduler
        self.location = location
        self.profile = profile
        self.queue = queue
        self.countdown_sec = countdown_sec
        self.share_location_updates = share_location_updates

        self._session = PanicSession()
        self._lock = asyncio.Lock()
        self._countdown: Optional[CancellationToken] = None
        self._listeners: List[SessionListener] = []
        self.last_error: Optional[PreconditionError] = None

    @property
    def session(self) -> PanicSession:
        """현재 세션의 복사본"""
        return self._session.model_copy()

    @property
    def state(self) -> PanicState:
        return self._session.state

    def add_listener(self, listener: SessionListener) -> Callable[[], None]:
        """세션 변경 리스너를 등록하고 해제 함수를 반환합니다."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _transition(self, new_state: PanicState, **changes) -> None:
        current = self._session.state
        if new_state not in TRANSITIONS[current]:
            raise RuntimeError(f"허용되지 않는 전이: {current} -> {new_state}")

        self._session = self._session.model_copy(update={"state": new_state, **changes})
        log.info(f"패닉 상태 전이 {current}->{new_state}")

        snapshot = self._session.model_copy()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                log.error(f"패닉 리스너 오류: {e}")

    async def trigger(self, emergency_type: Optional[EmergencyType] = None) -> PanicSession:
        """
        패닉 버튼 입력을 처리합니다.

        idle이면 카운트다운을 시작하고, 카운트다운 중이면 취소합니다.
        그 밖의 상태에서는 무시합니다.

        Args:
            emergency_type: 긴급 메시지 유형 (None이면 기본 메시지)

        Returns:
            처리 후 세션
        """
        async with self._lock:
            state = self._session.state
            if state == "idle":
                self._start_countdown(emergency_type)
            elif state == "counting_down":
                self._cancel_countdown()
                self._transition("idle", countdown_remaining=0, started_at=None)
            else:
                log.info(f"패닉 트리거 무시 state:{state}")
            return self.session

    def _start_countdown(self, emergency_type: Optional[EmergencyType]) -> None:
        token = CancellationToken()
        self._countdown = token
        self.last_error = None
        self._transition(
            "counting_down",
            countdown_remaining=self.countdown_sec,
            started_at=self.scheduler.now(),
            activated_at=None,
            alert_task_id=None,
            emergency_type=emergency_type,
            failure_reason=None,
        )
        self._schedule_tick(token)

    def _schedule_tick(self, token: CancellationToken) -> None:
        async def tick() -> None:
            await self._on_tick(token)

        self.scheduler.call_later(1.0, tick, token)

    def _cancel_countdown(self) -> None:
        if self._countdown is not None:
            self._countdown.cancel()
            self._countdown = None
        log.info("패닉 카운트다운 취소")

    async def _on_tick(self, token: CancellationToken) -> None:
        """카운트다운 1초 경과 처리"""
        async with self._lock:
            # 취소된 카운트다운의 늦은 tick은 무시
            if token.cancelled or token is not self._countdown:
                return
            if self._session.state != "counting_down":
                return

            remaining = self._session.countdown_remaining - 1
            if remaining > 0:
                self._session = self._session.model_copy(update={"countdown_remaining": remaining})
                self._schedule_tick(token)
                return

            self._countdown = None
            self._transition("activating", countdown_remaining=0)
            try:
                await self._activate()
            except Exception as e:
                log.opt(exception=e).error(f"긴급 모드 활성화 중 오류: {e}")
                if self._session.state == "activating":
                    self._fail("activation_failed")

    async def _activate(self) -> None:
        """전제 조건을 확인하고 긴급 알림을 큐에 넘깁니다."""
        location = await self.location.get_current_location()
        if location is None:
            self._fail("location_required")
            return

        contacts = await self.profile.get_emergency_contacts()
        if not contacts:
            self._fail("no_contacts")
            return

        profile = await self.profile.get_current_user_profile()
        now = self.scheduler.now()
        ordered = order_contacts(contacts)

        task = AlertTask(
            type="emergency_alert",
            priority="high",
            created_at=now,
            payload={
                "user_id": profile.user_id,
                "user_name": profile.name,
                "message": emergency_message(location, profile, when=now,
                                             template=self._session.emergency_type),
                "emergency_type": self._session.emergency_type,
                "location": {
                    "latitude": location.latitude,
                    "longitude": location.longitude,
                    "accuracy": location.accuracy,
                },
                "maps_url": maps_url(location),
                "contacts": [c.model_dump() for c in ordered],
                "timestamp": now.isoformat(),
            },
        )

        # 큐는 오프라인이어도 항상 작업을 받음
        await self.queue.enqueue(task)

        metrics.panic_activations.labels(outcome="activated").inc()
        self._transition("active", activated_at=now, alert_task_id=task.id)
        log.warning(f"긴급 모드 활성화 task_id:{task.id} contacts:{len(ordered)}")

    def _fail(self, reason: str) -> None:
        """활성화 실패: idle로 돌아가고 사유를 남깁니다 (자동 재시도 없음)."""
        self.last_error = PreconditionError(reason)
        metrics.panic_activations.labels(outcome=reason).inc()
        log.warning(f"긴급 모드 활성화 실패 reason:{reason}")
        self._transition("idle", failure_reason=reason, started_at=None)

    async def on_location_update(self, location: Coordinate) -> Optional[AlertTask]:
        """
        활성 상태에서 위치 갱신을 긴급 연락처에 공유합니다.

        Returns:
            생성된 location_update 작업 또는 None
        """
        async with self._lock:
            if self._session.state != "active" or not self.share_location_updates:
                return None

            now = self.scheduler.now()
            task = AlertTask(
                type="location_update",
                priority="high",
                created_at=now,
                payload={
                    "emergency_task_id": self._session.alert_task_id,
                    "message": location_update_message(location, now),
                    "location": {
                        "latitude": location.latitude,
                        "longitude": location.longitude,
                        "accuracy": location.accuracy,
                    },
                    "maps_url": maps_url(location),
                    "timestamp": now.isoformat(),
                },
            )
            await self.queue.enqueue(task)
            return task

    async def request_deactivation(self) -> PanicSession:
        """활성 상태 해제를 요청합니다 (active -> deactivating)."""
        async with self._lock:
            if self._session.state == "active":
                self._transition("deactivating")
            else:
                log.info(f"해제 요청 무시 state:{self._session.state}")
            return self.session

    async def confirm_deactivation(self) -> PanicSession:
        """해제를 확인합니다 (deactivating -> idle)."""
        async with self._lock:
            if self._session.state == "deactivating":
                self._transition("idle", countdown_remaining=0, started_at=None)
            else:
                log.info(f"해제 확인 무시 state:{self._session.state}")
            return self.session
