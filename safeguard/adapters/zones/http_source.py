"""
HTTP safety zone source for SafeGuard.

This module fetches the zone list from the zone API. The response is
either a JSON list of zones or an object with a ``zones`` list.
"""

import aiohttp
from typing import Any, Dict, List, Optional
from safeguard.core.models import SafetyZone
from safeguard.core.normalize import to_zones, zone_document
from safeguard.common.retry import retry_with_backoff
from safeguard.observability.logging_setup import get_logger

log = get_logger("safeguard.zone_api")

class HttpZoneSource:
    """구역 API 클라이언트"""

    def __init__(self,
                 url: str,
                 token: str = "",
                 timeout: int = 15,
                 max_retries: int = 2,
                 session: Optional[aiohttp.ClientSession] = None):
        """
        초기화합니다.

        Args:
            url: 구역 목록 API URL
            token: Bearer 토큰 (없으면 인증 헤더 생략)
            timeout: 요청 타임아웃 (초)
            max_retries: 요청 재시도 횟수
            session: 외부에서 관리하는 세션 (None이면 요청마다 생성)
        """
        self.url = url
        self.token = token
        self.timeout = timeout
        self.max_retries = max_retries
        self.session = session

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _get_json(self, session: aiohttp.ClientSession) -> Any:
        async def _request():
            async with session.get(self.url, headers=self._headers()) as response:
                response.raise_for_status()
                return await response.json()

        return await retry_with_backoff(_request, max_retries=self.max_retries)

    async def fetch_zones(self) -> List[SafetyZone]:
        """
        API에서 구역 목록을 가져옵니다.

        Raises:
            aiohttp.ClientError: 네트워크/HTTP 오류 (재시도 후)
            ValueError: 응답 형식 오류
        """
        if self.session is not None:
            data = await self._get_json(self.session)
        else:
            timeout = aiohttp.ClientTimeout(total=self.timeout)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                data = await self._get_json(session)

        zones, skipped = to_zones(zone_document(data))
        log.info(f"구역 API 조회 완료 count:{len(zones)} skipped:{skipped}")
        return zones
