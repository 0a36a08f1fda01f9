"""
Safety zone port interfaces.

This module defines the protocols for fetching zones from the network
(or a cache) and for reading the current in-memory snapshot.
"""

from typing import List, Protocol, Sequence
from safeguard.core.models import SafetyZone

class ZoneSourcePort(Protocol):
    """안전 구역 원천 포트 인터페이스"""

    async def fetch_zones(self) -> List[SafetyZone]:
        """
        안전 구역 목록을 가져옵니다.

        Returns:
            안전 구역 목록

        Raises:
            원천에 접근할 수 없으면 예외
        """
        ...

class ZoneProviderPort(Protocol):
    """현재 구역 스냅샷 제공 포트"""

    def current(self) -> Sequence[SafetyZone]:
        """현재 스냅샷 (읽기 전용)을 반환합니다."""
        ...
