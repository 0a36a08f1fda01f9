"""
Zone snapshot cache for SafeGuard.

Readers always see one complete, immutable snapshot of the zone list.
A refresh fetches from the primary source (zone API) and falls back to
the local file when the network is unavailable; the snapshot is swapped
only after a successful fetch, so a failed refresh keeps serving the
previous data.
"""

from datetime import datetime, timedelta
from typing import Callable, Optional, Sequence, Tuple
from safeguard.core.models import Coordinate, SafetyZone, utcnow
from safeguard.core.classifier import zones_near
from safeguard.ports.zones import ZoneSourcePort
from safeguard.observability import metrics
from safeguard.observability.logging_setup import get_logger

log = get_logger("safeguard.zone_cache")

class ZoneCache:
    """원자적으로 교체되는 구역 스냅샷 캐시"""

    def __init__(self,
                 primary: Optional[ZoneSourcePort] = None,
                 fallback: Optional[ZoneSourcePort] = None,
                 *,
                 max_age_sec: float = 86400,
                 clock: Optional[Callable[[], datetime]] = None):
        """
        초기화합니다.

        Args:
            primary: 우선 구역 원천 (보통 API)
            fallback: 폴백 구역 원천 (보통 파일)
            max_age_sec: 이 시간이 지나면 stale로 표시
            clock: 현재 시각 함수
        """
        self.primary = primary
        self.fallback = fallback
        self.max_age = timedelta(seconds=max_age_sec)
        self._clock = clock or utcnow

        self._snapshot: Tuple[SafetyZone, ...] = ()
        self.updated_at: Optional[datetime] = None
        self.source: Optional[str] = None

    def current(self) -> Sequence[SafetyZone]:
        """현재 스냅샷 (불변 튜플)"""
        return self._snapshot

    def replace(self, zones: Sequence[SafetyZone], source: str = "manual") -> None:
        """스냅샷을 통째로 교체합니다."""
        self._snapshot = tuple(zones)
        self.updated_at = self._clock()
        self.source = source
        metrics.zone_count.set(len(self._snapshot))

    @property
    def is_stale(self) -> bool:
        if self.updated_at is None:
            return True
        return self._clock() - self.updated_at > self.max_age

    async def refresh(self) -> bool:
        """
        원천에서 구역을 다시 읽어 스냅샷을 교체합니다.

        Returns:
            교체 성공 여부 (실패하면 기존 스냅샷 유지)
        """
        if self.primary is not None:
            try:
                zones = await self.primary.fetch_zones()
                self.replace(zones, source="primary")
                metrics.zone_refreshes.labels(outcome="primary").inc()
                log.info(f"구역 스냅샷 갱신 source:primary count:{len(zones)}")
                await self._save_snapshot(zones)
                return True
            except Exception as e:
                log.warning(f"구역 원천 조회 실패, 폴백 시도 error:{e}")

        if self.fallback is not None:
            try:
                zones = await self.fallback.fetch_zones()
                self.replace(zones, source="fallback")
                metrics.zone_refreshes.labels(outcome="fallback").inc()
                log.info(f"구역 스냅샷 갱신 source:fallback count:{len(zones)}")
                return True
            except Exception as e:
                log.error(f"폴백 구역 조회 실패 error:{e}")

        metrics.zone_refreshes.labels(outcome="failed").inc()
        log.warning(f"구역 스냅샷 유지 count:{len(self._snapshot)} stale:{self.is_stale}")
        return False

    async def _save_snapshot(self, zones: Sequence[SafetyZone]) -> None:
        """폴백 원천이 저장을 지원하면 최신 스냅샷을 기록합니다."""
        save = getattr(self.fallback, "save_zones", None)
        if save is None:
            return
        try:
            await save(zones)
        except (OSError, ValueError) as e:
            log.error(f"구역 스냅샷 저장 실패 error:{e}")

    def nearby(self, location: Coordinate, radius_m: float) -> Sequence[SafetyZone]:
        """반경 내 구역 (가까운 순)"""
        return zones_near(location, self._snapshot, radius_m)

class StaticZoneProvider:
    """고정 구역 목록 제공자 (테스트/단순 구성용)"""

    def __init__(self, zones: Sequence[SafetyZone] = ()):
        self._snapshot: Tuple[SafetyZone, ...] = tuple(zones)

    def current(self) -> Sequence[SafetyZone]:
        return self._snapshot
