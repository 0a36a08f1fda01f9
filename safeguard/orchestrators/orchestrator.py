"""
Main orchestrator for SafeGuard.

This module wires the location pipeline (receive -> queue -> classify ->
score -> geofence -> panic location sharing), the dispatch drain loop
and the periodic zone refresh into one long-running service.
"""

import asyncio
import time
from datetime import datetime
from typing import Callable, List, Optional
from safeguard.core.models import Coordinate, GeofenceEvent, PanicSession, SafetyAssessment
from safeguard.core.classifier import classify
from safeguard.core.scoring import ScoreContext, score
from safeguard.core.geofence import GeofenceMonitor
from safeguard.core.panic import PanicStateMachine
from safeguard.dispatch.queue import AlertDispatchQueue, DrainResult
from safeguard.services.zone_cache import ZoneCache
from safeguard.ports.location import LocationWatchPort
from safeguard.observability import metrics
from safeguard.observability.logging_setup import get_logger

log = get_logger("safeguard.orchestrator")

# drain 루프의 최소 대기 (초)
MIN_DRAIN_WAIT = 0.05

def local_now() -> datetime:
    """시스템 로컬 시간대의 현재 시각"""
    return datetime.now().astimezone()

class Orchestrator:
    """위치 파이프라인 + 발송 + 구역 갱신 오케스트레이터"""

    def __init__(self,
                 zones: ZoneCache,
                 queue: AlertDispatchQueue,
                 geofence: GeofenceMonitor,
                 panic: PanicStateMachine,
                 *,
                 watcher: Optional[LocationWatchPort] = None,
                 drain_interval_sec: float = 5.0,
                 zone_refresh_sec: float = 900,
                 queue_maxsize: int = 1000,
                 drop_on_full: bool = True,
                 clock: Optional[Callable[[], datetime]] = None):
        """
        초기화합니다.

        Args:
            zones: 구역 스냅샷 캐시
            queue: 알림 발송 큐
            geofence: 지오펜스 감지기
            panic: 패닉 상태 기계
            watcher: 위치 스트림 (None이면 HTTP로만 위치 입력)
            drain_interval_sec: 발송 큐 drain 주기 (초)
            zone_refresh_sec: 구역 갱신 주기 (초)
            queue_maxsize: 위치 큐 최대 크기
            drop_on_full: 큐가 가득 차면 가장 오래된 위치를 버림
            clock: 점수 계산용 로컬 시각 함수
        """
        self.zones = zones
        self.queue = queue
        self.geofence = geofence
        self.panic = panic
        self.watcher = watcher
        self.drain_interval = drain_interval_sec
        self.zone_refresh = zone_refresh_sec
        self.drop_on_full = drop_on_full
        self._clock = clock or local_now

        self.q: asyncio.Queue = asyncio.Queue(maxsize=queue_maxsize)
        self.last_assessment: Optional[SafetyAssessment] = None
        self.last_location: Optional[Coordinate] = None
        self.last_drain: Optional[DrainResult] = None
        self.ready = False
        self.start_time = time.time()

        self._wake = asyncio.Event()
        self._tasks: List[asyncio.Task] = []

        # 새 알림이 생기면 다음 주기를 기다리지 않고 drain
        self.panic.add_listener(self._on_panic_change)
        self.geofence.add_listener(self._on_geofence_event)

        log.info("오케스트레이터 초기화됨")

    def _on_panic_change(self, session: PanicSession) -> None:
        if session.state == "active":
            self.request_drain()

    def _on_geofence_event(self, event: GeofenceEvent) -> None:
        if event.worsened:
            self.request_drain()

    def local_time(self) -> datetime:
        """점수 계산에 쓰는 로컬 시각"""
        return self._clock()

    def request_drain(self) -> None:
        """drain 루프를 즉시 깨웁니다."""
        self._wake.set()

    async def start(self) -> None:
        """
        오케스트레이터를 시작합니다.

        저장된 작업 복구와 구역 로드 후 워커 태스크들을 실행합니다.
        """
        await self.queue.load()
        await self.zones.refresh()
        self.ready = True

        self._tasks = [
            asyncio.create_task(self._consumer()),
            asyncio.create_task(self._drain_loop()),
            asyncio.create_task(self._zone_refresh_loop()),
            asyncio.create_task(self._update_metrics()),
        ]
        if self.watcher is not None:
            self._tasks.append(asyncio.create_task(self._producer()))

        log.info(f"오케스트레이터 시작됨 zones:{len(self.zones.current())} queued:{len(self.queue)}")
        await asyncio.gather(*self._tasks)

    async def stop(self) -> None:
        """워커 태스크를 취소합니다."""
        self.ready = False
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        log.info("오케스트레이터 중지됨")

    def submit_location(self, location: Coordinate) -> bool:
        """
        위치를 처리 큐에 넣습니다.

        Returns:
            큐에 들어갔으면 True
        """
        try:
            self.q.put_nowait(location)
            return True
        except asyncio.QueueFull:
            if not self.drop_on_full:
                log.warning("위치 큐가 가득 찼습니다. 새 위치를 버립니다.")
                return False
            # 위치는 최신값이 중요하므로 가장 오래된 항목을 버림
            self.q.get_nowait()
            self.q.task_done()
            self.q.put_nowait(location)
            log.warning("위치 큐가 가득 찼습니다. 가장 오래된 위치를 버립니다.")
            return True

    async def _producer(self):
        """위치 스트림을 큐에 추가하는 프로듀서"""
        async for location in self.watcher.watch():
            self.submit_location(location)

    async def _consumer(self):
        """큐에서 위치를 소비하는 컨슈머"""
        while True:
            location = await self.q.get()
            try:
                await self.process_location(location)
            except Exception as e:
                # 한 위치의 처리 실패가 파이프라인을 멈추지 않도록 기록 후 계속
                log.opt(exception=e).error(f"위치 처리 오류: {e}")
            finally:
                self.q.task_done()

    def assess(self, location: Coordinate) -> SafetyAssessment:
        """현재 스냅샷으로 위치를 분류하고 점수를 계산합니다."""
        assessment = classify(location, self.zones.current())
        return score(assessment, ScoreContext.for_location(location, self.local_time()))

    async def process_location(self, location: Coordinate) -> SafetyAssessment:
        """
        위치 하나를 파이프라인 전체에 통과시킵니다.

        Returns:
            점수가 계산된 평가 결과
        """
        assessment = self.assess(location)
        self.last_assessment = assessment
        self.last_location = location

        await self.geofence.on_location_update(location, assessment)
        if await self.panic.on_location_update(location) is not None:
            self.request_drain()

        log.debug(f"위치 처리 완료 level:{assessment.safety_level} score:{assessment.score}")
        return assessment

    async def get_current_location(self) -> Optional[Coordinate]:
        """파이프라인이 마지막으로 처리한 위치"""
        return self.last_location

    async def drain_once(self) -> DrainResult:
        """drain을 한 번 수행하고 영구 실패를 기록합니다."""
        result = await self.queue.drain()
        self.last_drain = result
        for failure in result.failed_permanent:
            log.error(f"{failure.title}: {failure}")
        return result

    async def _drain_loop(self):
        """주기적으로 (또는 요청 시) 발송 큐를 비웁니다."""
        while True:
            self._wake.clear()
            try:
                await self.drain_once()
            except Exception as e:
                log.opt(exception=e).error(f"drain 오류: {e}")

            due = self.queue.next_due_in()
            wait = self.drain_interval if due is None else min(self.drain_interval, due)
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=max(wait, MIN_DRAIN_WAIT))
            except asyncio.TimeoutError:
                pass

    async def _zone_refresh_loop(self):
        """구역 스냅샷을 주기적으로 갱신합니다."""
        while True:
            await asyncio.sleep(self.zone_refresh)
            await self.zones.refresh()

    async def _update_metrics(self):
        """메트릭을 주기적으로 업데이트합니다."""
        while True:
            metrics.uptime_seconds.set(time.time() - self.start_time)
            await asyncio.sleep(10)
