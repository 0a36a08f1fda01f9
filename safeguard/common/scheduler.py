"""
Scheduled-task utilities for SafeGuard.

Timers (the panic countdown, the dispatch drain loop) are expressed as
scheduled callbacks with cancellation tokens instead of raw sleeps, so
tests can drive time deterministically with ManualScheduler.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, List, Optional, Protocol, Set
from safeguard.observability.logging_setup import get_logger

log = get_logger("safeguard.scheduler")

Callback = Callable[[], Awaitable[None]]

class CancellationToken:
    """한 번 취소되면 되돌릴 수 없는 취소 토큰"""

    def __init__(self) -> None:
        self._cancelled = False
        self._callbacks: List[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        for cb in self._callbacks:
            cb()
        self._callbacks.clear()

    def on_cancel(self, cb: Callable[[], None]) -> None:
        """취소 시 호출할 콜백을 등록합니다 (이미 취소되었으면 즉시 호출)."""
        if self._cancelled:
            cb()
        else:
            self._callbacks.append(cb)

@dataclass
class ScheduledHandle:
    """예약된 콜백 핸들"""
    when: datetime
    callback: Callback
    token: CancellationToken = field(default_factory=CancellationToken)

    @property
    def cancelled(self) -> bool:
        return self.token.cancelled

    def cancel(self) -> None:
        self.token.cancel()

class Scheduler(Protocol):
    """시간 원천 및 지연 실행 인터페이스"""

    def now(self) -> datetime:
        ...

    def call_later(self, delay: float, callback: Callback,
                   token: Optional[CancellationToken] = None) -> ScheduledHandle:
        ...

class AsyncioScheduler:
    """asyncio 이벤트 루프 기반 스케줄러"""

    def __init__(self) -> None:
        self._tasks: Set[asyncio.Task] = set()

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def call_later(self, delay: float, callback: Callback,
                   token: Optional[CancellationToken] = None) -> ScheduledHandle:
        handle = ScheduledHandle(
            when=self.now() + timedelta(seconds=delay),
            callback=callback,
            token=token or CancellationToken(),
        )
        loop = asyncio.get_running_loop()
        timer = loop.call_later(delay, self._fire, handle)
        handle.token.on_cancel(timer.cancel)
        return handle

    def _fire(self, handle: ScheduledHandle) -> None:
        if handle.cancelled:
            return
        task = asyncio.ensure_future(handle.callback())
        self._tasks.add(task)
        task.add_done_callback(self._on_done)

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            log.opt(exception=task.exception()).error("예약 작업 실패")

    async def close(self) -> None:
        """실행 중인 예약 작업을 취소합니다."""
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()

class ManualScheduler:
    """
    테스트용 수동 스케줄러.

    시간은 advance() 호출로만 흐르며, 만기된 콜백은 예약 순서대로
    await 됩니다.
    """

    def __init__(self, start: Optional[datetime] = None) -> None:
        self._now = start or datetime.now(timezone.utc)
        self.handles: List[ScheduledHandle] = []

    def now(self) -> datetime:
        return self._now

    def call_later(self, delay: float, callback: Callback,
                   token: Optional[CancellationToken] = None) -> ScheduledHandle:
        handle = ScheduledHandle(
            when=self._now + timedelta(seconds=delay),
            callback=callback,
            token=token or CancellationToken(),
        )
        self.handles.append(handle)
        return handle

    @property
    def pending(self) -> List[ScheduledHandle]:
        return [h for h in self.handles if not h.cancelled]

    async def advance(self, seconds: float) -> None:
        """시간을 앞으로 이동시키며 만기된 콜백을 실행합니다."""
        target = self._now + timedelta(seconds=seconds)
        while True:
            due = [h for h in self.handles if not h.cancelled and h.when <= target]
            if not due:
                break
            handle = min(due, key=lambda h: h.when)
            self.handles.remove(handle)
            self._now = max(self._now, handle.when)
            await handle.callback()
        self._now = target
