"""
Alert dispatch queue for SafeGuard.

This module implements an offline-first outbox for alert tasks:
producers enqueue tasks at any time, and drain passes deliver the
due tasks to the send collaborator in priority order. Failed attempts
are rescheduled with capped exponential backoff until the attempt cap,
after which the task is parked as permanently failed and surfaced.
"""

import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Set
from safeguard.core.models import AlertTask, QueueStatus, utcnow
from safeguard.core.errors import PERMANENT_FAILURE_MESSAGE, PermanentFailure
from safeguard.common.retry import backoff_delay
from safeguard.ports.dispatch import AlertSendPort
from safeguard.ports.storage import TaskStoragePort
from safeguard.observability import metrics
from safeguard.observability.logging_setup import get_logger

log = get_logger("safeguard.queue")

# 우선순위 정렬 순서
PRIORITY_ORDER: Dict[str, int] = {
    "high": 0,
    "medium": 1,
    "low": 2
}

StatusListener = Callable[[QueueStatus], None]

@dataclass
class DrainResult:
    """한 번의 drain 결과"""
    attempted: int = 0
    delivered: int = 0
    retrying: int = 0
    failed_permanent: List[PermanentFailure] = field(default_factory=list)
    skipped_not_due: int = 0

class AlertDispatchQueue:
    """오프라인 우선 알림 발송 큐"""

    def __init__(self,
                 sender: AlertSendPort,
                 storage: Optional[TaskStoragePort] = None,
                 *,
                 clock: Optional[Callable[[], datetime]] = None,
                 max_attempts: int = 5,
                 backoff_base: float = 1.0,
                 backoff_max: float = 60.0):
        """
        초기화합니다.

        Args:
            sender: 발송 협력자
            storage: 재시작 후에도 작업을 유지할 저장소 (None이면 메모리만)
            clock: 현재 시각 함수 (테스트에서 주입)
            max_attempts: 영구 실패로 전환되는 시도 횟수
            backoff_base: 첫 재시도 지연 (초)
            backoff_max: 최대 재시도 지연 (초)
        """
        if max_attempts < 1:
            raise ValueError("max_attempts는 1 이상이어야 합니다")

        self.sender = sender
        self.storage = storage
        self._clock = clock or utcnow
        self.max_attempts = max_attempts
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max

        self._tasks: Dict[str, AlertTask] = {}
        self._unsaved: Set[str] = set()            # 저장 실패, 다음 drain에서 재시도
        self._unremoved: Set[str] = set()          # 삭제 실패, 다음 drain에서 재시도
        self._listeners: List[StatusListener] = []

    def __len__(self) -> int:
        return len(self._tasks)

    def add_listener(self, listener: StatusListener) -> Callable[[], None]:
        """큐 상태 리스너를 등록하고 해제 함수를 반환합니다."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def load(self) -> int:
        """
        저장소에서 미완료 작업을 복구합니다.

        Returns:
            복구된 작업 수
        """
        if self.storage is None:
            return 0

        restored = 0
        for task in await self.storage.load_pending():
            if task.id in self._tasks:
                continue
            if task.status == "in_flight":
                # 발송 중 종료된 작업은 결과를 알 수 없으므로 다시 보냄
                task.status = "pending"
            self._tasks[task.id] = task
            restored += 1

        log.info(f"발송 큐 복구 tasks:{restored}")
        self._notify()
        return restored

    async def enqueue(self, task: AlertTask) -> None:
        """
        작업을 큐에 추가합니다.

        저장 실패는 기록 후 다음 drain에서 재시도하며, 호출자에게
        예외를 전달하지 않습니다.
        """
        if task.id in self._tasks:
            log.debug(f"이미 큐에 있는 작업 task_id:{task.id}")
            return

        self._tasks[task.id] = task
        metrics.alerts_enqueued.labels(type=task.type, priority=task.priority).inc()
        log.info(f"알림 작업 추가 task_id:{task.id} type:{task.type} priority:{task.priority}")

        await self._persist(task)
        self._notify()

    async def drain(self) -> DrainResult:
        """
        만기된 pending 작업을 우선순위 순서로 발송합니다.

        Returns:
            DrainResult
        """
        started = time.perf_counter()
        result = DrainResult()

        await self._flush_storage()

        now = self._clock()
        eligible: List[AlertTask] = []
        for task in self._tasks.values():
            if task.status != "pending":
                continue
            if task.next_retry_at is not None and task.next_retry_at > now:
                result.skipped_not_due += 1
                continue
            eligible.append(task)

        eligible.sort(key=lambda t: (PRIORITY_ORDER[t.priority], t.created_at))

        # 첫 await 이전에 모두 in_flight로 표시 (동시 drain 중복 발송 방지)
        for task in eligible:
            task.status = "in_flight"

        for task in eligible:
            result.attempted += 1
            await self._attempt(task, result)

        metrics.drain_seconds.observe(time.perf_counter() - started)
        if result.attempted:
            log.info(f"drain 완료 attempted:{result.attempted} delivered:{result.delivered} "
                     f"retrying:{result.retrying} failed:{len(result.failed_permanent)}")
        self._notify()
        return result

    async def _attempt(self, task: AlertTask, result: DrainResult) -> None:
        """작업 하나를 발송하고 결과에 따라 상태를 갱신합니다."""
        try:
            delivered = await self.sender.send(task)
            error = None if delivered else "send rejected"
        except Exception as e:
            delivered = False
            error = f"{type(e).__name__}: {e}"

        if delivered:
            task.status = "delivered"
            self._tasks.pop(task.id, None)
            self._unsaved.discard(task.id)
            await self._remove(task.id)
            result.delivered += 1
            metrics.alerts_delivered.labels(type=task.type).inc()
            log.info(f"알림 발송 성공 task_id:{task.id} type:{task.type}")
            return

        task.attempts += 1
        task.last_error = error

        if task.attempts >= self.max_attempts:
            task.status = "failed_permanent"
            task.next_retry_at = None
            result.failed_permanent.append(PermanentFailure(task.model_copy()))
            metrics.alerts_failed_permanent.labels(type=task.type).inc()
            log.error(f"알림 영구 실패 task_id:{task.id} attempts:{task.attempts} error:{error}")
        else:
            delay = backoff_delay(task.attempts, self.backoff_base, self.backoff_max)
            task.status = "pending"
            task.next_retry_at = self._clock() + timedelta(seconds=delay)
            result.retrying += 1
            metrics.delivery_retries.labels(type=task.type).inc()
            log.warning(f"알림 발송 실패, 재시도 예약 task_id:{task.id} "
                        f"attempts:{task.attempts} delay:{delay}s error:{error}")

        await self._persist(task)

    async def _persist(self, task: AlertTask) -> None:
        if self.storage is None:
            return
        try:
            await self.storage.persist(task)
            self._unsaved.discard(task.id)
        except Exception as e:
            self._unsaved.add(task.id)
            log.error(f"작업 저장 실패 task_id:{task.id} error:{e}")

    async def _remove(self, task_id: str) -> None:
        if self.storage is None:
            return
        try:
            await self.storage.remove(task_id)
            self._unremoved.discard(task_id)
        except Exception as e:
            self._unremoved.add(task_id)
            log.error(f"작업 삭제 실패 task_id:{task_id} error:{e}")

    async def _flush_storage(self) -> None:
        """이전에 실패한 저장/삭제를 다시 시도합니다."""
        for task_id in list(self._unsaved):
            task = self._tasks.get(task_id)
            if task is None:
                self._unsaved.discard(task_id)
                continue
            await self._persist(task)

        for task_id in list(self._unremoved):
            await self._remove(task_id)

    def get(self, task_id: str) -> Optional[AlertTask]:
        return self._tasks.get(task_id)

    def tasks(self) -> List[AlertTask]:
        """현재 작업 스냅샷 (우선순위, 생성 시각 순)"""
        return sorted(
            (t.model_copy() for t in self._tasks.values()),
            key=lambda t: (PRIORITY_ORDER[t.priority], t.created_at),
        )

    def failed_tasks(self) -> List[AlertTask]:
        return [t.model_copy() for t in self._tasks.values() if t.status == "failed_permanent"]

    async def dismiss(self, task_id: str) -> bool:
        """
        영구 실패 작업을 확인 처리하고 제거합니다.

        Returns:
            제거 여부
        """
        task = self._tasks.get(task_id)
        if task is None or task.status != "failed_permanent":
            return False

        del self._tasks[task_id]
        self._unsaved.discard(task_id)
        await self._remove(task_id)
        log.info(f"영구 실패 작업 제거 task_id:{task_id}")
        self._notify()
        return True

    async def requeue(self, task_id: str) -> Optional[AlertTask]:
        """
        영구 실패 작업을 새 작업으로 다시 큐에 넣습니다.

        원래 작업은 제거되고, 새 id와 0회 시도로 시작합니다.

        Returns:
            새 작업 또는 None (영구 실패 작업이 아닌 경우)
        """
        task = self._tasks.get(task_id)
        if task is None or task.status != "failed_permanent":
            return None

        fresh = AlertTask(
            type=task.type,
            priority=task.priority,
            payload=dict(task.payload),
            created_at=self._clock(),
        )
        del self._tasks[task_id]
        self._unsaved.discard(task_id)
        await self._remove(task_id)

        log.info(f"영구 실패 작업 재등록 old:{task_id} new:{fresh.id}")
        await self.enqueue(fresh)
        return fresh

    def next_due_in(self, now: Optional[datetime] = None) -> Optional[float]:
        """
        다음 pending 작업이 만기될 때까지 남은 시간 (초).

        Returns:
            남은 초 (이미 만기면 0) 또는 pending 작업이 없으면 None
        """
        now = now or self._clock()
        waits = [
            0.0 if t.next_retry_at is None else max(0.0, (t.next_retry_at - now).total_seconds())
            for t in self._tasks.values()
            if t.status == "pending"
        ]
        return min(waits) if waits else None

    def status(self) -> QueueStatus:
        """사용자에게 보여줄 큐 상태를 계산합니다."""
        pending = sum(1 for t in self._tasks.values() if t.status == "pending")
        in_flight = sum(1 for t in self._tasks.values() if t.status == "in_flight")
        failed = sum(1 for t in self._tasks.values() if t.status == "failed_permanent")

        if failed:
            sync_state = "attention_required"
            message = PERMANENT_FAILURE_MESSAGE[1]
        elif pending or in_flight:
            # 일시적 재시도는 오류가 아닌 "동기화 대기"로 표시
            sync_state = "pending_sync"
            message = f"{pending + in_flight} alert(s) pending sync"
        else:
            sync_state = "idle"
            message = "All alerts delivered"

        return QueueStatus(
            pending=pending,
            in_flight=in_flight,
            failed_permanent=failed,
            sync_state=sync_state,
            message=message,
        )

    def _notify(self) -> None:
        status = self.status()
        metrics.queue_pending.set(status.pending + status.in_flight)
        metrics.queue_failed.set(status.failed_permanent)

        for listener in list(self._listeners):
            try:
                listener(status)
            except Exception as e:
                log.error(f"큐 리스너 오류: {e}")
