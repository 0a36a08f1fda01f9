"""
Geofence event monitoring for SafeGuard.

This module watches location updates and raises enter/exit events
when the resolved safety level changes. Only transitions that worsen
safety produce a notification task; improvements are kept in history.
"""

from collections import deque
from datetime import datetime
from typing import Callable, Deque, List, Optional
from safeguard.core.models import (
    LEVEL_ORDER,
    AlertTask,
    Coordinate,
    GeofenceEvent,
    SafetyAssessment,
    SafetyZone,
)
from safeguard.core.classifier import classify
from safeguard.core.messages import maps_url, safety_message
from safeguard.ports.zones import ZoneProviderPort
from safeguard.ports.dispatch import AlertQueuePort
from safeguard.observability import metrics
from safeguard.observability.logging_setup import get_logger

log = get_logger("safeguard.geofence")

NOTICE_TITLES = {
    "caution": "Caution Area",
    "restricted": "Restricted Area Warning",
}

EventListener = Callable[[GeofenceEvent], None]

def is_worsening(previous_level: str, new_level: str) -> bool:
    return LEVEL_ORDER[new_level] > LEVEL_ORDER[previous_level]

class GeofenceMonitor:
    """안전 등급 전환 감지기"""

    def __init__(self,
                 zones: ZoneProviderPort,
                 queue: AlertQueuePort,
                 *,
                 history_size: int = 50):
        """
        초기화합니다.

        Args:
            zones: 현재 구역 스냅샷 제공자
            queue: 알림 작업을 받을 발송 큐
            history_size: 보관할 전환 이력 수
        """
        self.zones = zones
        self.queue = queue
        self.previous_level: Optional[str] = None
        self.previous_zone: Optional[SafetyZone] = None
        self._entered_at: Optional[datetime] = None
        self._history: Deque[GeofenceEvent] = deque(maxlen=history_size)
        self._listeners: List[EventListener] = []

    @property
    def history(self) -> List[GeofenceEvent]:
        """최근 전환 이력 (최신 순)"""
        return list(self._history)

    def add_listener(self, listener: EventListener) -> Callable[[], None]:
        """전환 이벤트 리스너를 등록하고 해제 함수를 반환합니다."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def on_location_update(self, location: Coordinate,
                                 assessment: Optional[SafetyAssessment] = None) -> Optional[GeofenceEvent]:
        """
        위치 갱신을 처리합니다.

        Args:
            location: 새 위치
            assessment: 이미 계산된 분류 결과 (없으면 다시 분류)

        Returns:
            등급이 바뀐 경우 전환 이벤트, 아니면 None
        """
        if assessment is None:
            assessment = classify(location, self.zones.current())

        new_level = assessment.safety_level
        new_zone = assessment.matched_zone

        if self.previous_level is None:
            # 첫 위치는 기준점으로만 사용
            self.previous_level = new_level
            self.previous_zone = new_zone
            self._entered_at = location.timestamp
            log.info(f"지오펜스 기준 등급 설정 level:{new_level}")
            return None

        if new_level == self.previous_level:
            # 같은 등급 안에서 구역만 바뀐 경우 이벤트 없음
            self.previous_zone = new_zone
            return None

        previous_level = self.previous_level
        worsened = is_worsening(previous_level, new_level)
        seconds_in_previous = None
        if self._entered_at is not None:
            seconds_in_previous = max(0.0, (location.timestamp - self._entered_at).total_seconds())

        event = GeofenceEvent(
            type="enter" if new_zone is not None else "exit",
            zone=new_zone if new_zone is not None else self.previous_zone,
            previous_level=previous_level,
            new_level=new_level,
            worsened=worsened,
            location=location,
            timestamp=location.timestamp,
            seconds_in_previous_zone=seconds_in_previous,
        )

        self.previous_level = new_level
        self.previous_zone = new_zone
        self._entered_at = location.timestamp
        self._history.appendleft(event)

        metrics.geofence_transitions.labels(direction="worsened" if worsened else "improved").inc()
        log.info(f"안전 등급 전환 {previous_level}->{new_level} type:{event.type} "
                 f"zone:{event.zone.id if event.zone else None}")

        if worsened:
            await self.queue.enqueue(self._notice_task(event))

        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                log.error(f"지오펜스 리스너 오류: {e}")

        return event

    def _notice_task(self, event: GeofenceEvent) -> AlertTask:
        """악화 전환 알림 작업을 생성합니다."""
        zone = event.zone
        return AlertTask(
            type="geofence_notice",
            priority="medium",
            payload={
                "title": NOTICE_TITLES.get(event.new_level, "Safety Notice"),
                "message": safety_message(event.new_level),
                "event": event.type,
                "previous_level": event.previous_level,
                "new_level": event.new_level,
                "zone_id": zone.id if zone else None,
                "zone_name": zone.name if zone else None,
                "safety_tips": list(zone.safety_tips) if zone else [],
                "location": {
                    "latitude": event.location.latitude,
                    "longitude": event.location.longitude,
                },
                "maps_url": maps_url(event.location),
                "timestamp": event.timestamp.isoformat(),
            },
        )

    def reset(self) -> None:
        """기준 등급을 초기화합니다 (구역 데이터 교체 후 등)."""
        self.previous_level = None
        self.previous_zone = None
        self._entered_at = None
