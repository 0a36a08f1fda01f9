"""
Location source port interfaces.

This module defines the protocols for the device location collaborator.
"""

from typing import AsyncIterator, Optional, Protocol
from safeguard.core.models import Coordinate

class LocationSourcePort(Protocol):
    """현재 위치 조회 포트"""

    async def get_current_location(self) -> Optional[Coordinate]:
        """
        마지막으로 알려진 현재 위치를 반환합니다.

        Returns:
            Coordinate 또는 위치를 알 수 없으면 None
        """
        ...

class LocationWatchPort(Protocol):
    """위치 스트림 포트"""

    async def watch(self) -> AsyncIterator[Coordinate]:
        """
        위치 갱신을 비동기적으로 수신합니다.

        Yields:
            Coordinate
        """
        ...
