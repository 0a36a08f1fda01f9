"""
Current-location resolution for SafeGuard.

The panic machine needs a single "where is the user now" port, while
the deployment may have several sources (MQTT location feed, Home
Assistant device tracker, locations posted over HTTP). The first
source that knows the location wins.
"""

from typing import List, Optional
from safeguard.core.models import Coordinate
from safeguard.ports.location import LocationSourcePort
from safeguard.observability.logging_setup import get_logger

log = get_logger("safeguard.location")

class FallbackLocationSource:
    """여러 위치 원천을 순서대로 조회하는 포트"""

    def __init__(self, sources: Optional[List[LocationSourcePort]] = None):
        self.sources: List[LocationSourcePort] = list(sources or [])

    def add(self, source: LocationSourcePort) -> None:
        self.sources.append(source)

    async def get_current_location(self) -> Optional[Coordinate]:
        for source in self.sources:
            try:
                location = await source.get_current_location()
            except Exception as e:
                log.warning(f"위치 원천 조회 실패 source:{type(source).__name__} error:{e}")
                continue
            if location is not None:
                return location
        return None
