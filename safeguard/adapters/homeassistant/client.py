"""
Home Assistant API client for SafeGuard.

This module provides a client for the Home Assistant REST API and the
two adapters built on it: a device-tracker location source and a
mobile-app notify send collaborator.
"""

import aiohttp
from typing import Any, Dict, List, Optional
from safeguard.core.models import AlertTask, Coordinate
from safeguard.core.errors import ValidationError
from safeguard.core.normalize import to_coordinate
from safeguard.common.retry import retry_with_backoff
from safeguard.observability.logging_setup import get_logger

log = get_logger("safeguard.ha")

# 작업 유형별 알림 제목
NOTIFY_TITLES = {
    "emergency_alert": "EMERGENCY ALERT",
    "location_update": "Emergency Location Update",
    "geofence_notice": "Safety Notice",
}

# 작업 유형별 알림 액션 버튼
NOTIFY_ACTIONS = {
    "emergency_alert": [
        {"action": "URI", "title": "Open Map", "uri": ""},
        {"action": "CALL_POLICE", "title": "Call Police"},
    ],
    "geofence_notice": [
        {"action": "URI", "title": "Open Map", "uri": ""},
    ],
}

class HAClient:
    """Home Assistant API 클라이언트"""

    def __init__(self,
                 base_url: str,
                 token: str,
                 timeout: int = 30,
                 max_retries: int = 3):
        """
        초기화합니다.

        Args:
            base_url: Home Assistant API 기본 URL
            token: Home Assistant 장기 토큰
            timeout: 요청 타임아웃 (초)
            max_retries: 요청 재시도 횟수
        """
        self.base_url = base_url.rstrip('/')
        self.token = token
        self.timeout = timeout
        self.max_retries = max_retries
        self.session: Optional[aiohttp.ClientSession] = None

        log.info("Home Assistant 클라이언트 초기화됨")

    async def __aenter__(self):
        """비동기 컨텍스트 매니저 진입"""
        self.session = aiohttp.ClientSession(
            headers={
                "Authorization": f"Bearer {self.token}",
                "Content-Type": "application/json"
            },
            timeout=aiohttp.ClientTimeout(total=self.timeout)
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """비동기 컨텍스트 매니저 종료"""
        if self.session:
            await self.session.close()
            self.session = None

    async def _make_request(self, method: str, endpoint: str, **kwargs) -> Any:
        """
        API 요청을 수행합니다.

        Args:
            method: HTTP 메서드
            endpoint: API 엔드포인트
            **kwargs: 추가 요청 매개변수

        Returns:
            응답 데이터
        """
        if not self.session:
            raise RuntimeError("세션이 초기화되지 않았습니다. async with를 사용하세요.")

        url = f"{self.base_url}{endpoint}"

        async def _request():
            async with self.session.request(method, url, **kwargs) as response:
                response.raise_for_status()
                return await response.json()

        return await retry_with_backoff(_request, max_retries=self.max_retries)

    async def get_state(self, entity_id: str) -> Optional[Dict]:
        """
        엔티티 상태를 가져옵니다.

        Returns:
            상태 딕셔너리 또는 None
        """
        try:
            return await self._make_request("GET", f"/api/states/{entity_id}")
        except Exception as e:
            log.error(f"엔티티 상태 가져오기 실패 entity_id:{entity_id} error:{str(e)}")
            return None

    async def get_device_trackers(self) -> List[Dict]:
        """위치 추적 가능한 디바이스 목록을 가져옵니다."""
        try:
            states = await self._make_request("GET", "/api/states")
            devices = []
            for st in states:
                if st.get("entity_id", "").startswith("device_tracker."):
                    attrs = st.get("attributes", {})
                    if "latitude" in attrs and "longitude" in attrs:
                        devices.append({
                            "entity_id": st["entity_id"],
                            "name": attrs.get("friendly_name", st["entity_id"]),
                            "lat": float(attrs["latitude"]),
                            "lon": float(attrs["longitude"]),
                        })
            log.info(f"위치 추적 디바이스 목록 가져옴 count:{len(devices)}")
            return devices
        except Exception as e:
            log.error(f"위치 추적 디바이스 목록 가져오기 실패 error:{str(e)}")
            return []

    async def notify(self, service: str, title: str, message: str, url: str,
                     actions: Optional[List[Dict]] = None) -> Any:
        """모바일 앱에 푸시 알림을 발송합니다."""
        payload: Dict[str, Any] = {
            "title": title,
            "message": message,
            "data": {"url": url, "clickAction": url, "priority": "high"},
        }
        if actions:
            payload["data"]["actions"] = actions

        try:
            result = await self._make_request(
                "POST", f"/api/services/notify/{service}", json=payload
            )
        except Exception as e:
            log.error(f"푸시 알림 발송 실패 service:{service} error:{str(e)}")
            raise

        log.info(f"푸시 알림 발송 성공 service:{service} title:{title}")
        return result

class HALocationSource:
    """device_tracker 엔티티 기반 현재 위치 포트"""

    def __init__(self, client: HAClient, device_tracker: str):
        self.client = client
        self.device_tracker = device_tracker

    async def get_current_location(self) -> Optional[Coordinate]:
        """
        device_tracker 속성에서 현재 위치를 읽습니다.

        Returns:
            Coordinate 또는 위치를 알 수 없으면 None
        """
        state = await self.client.get_state(self.device_tracker)
        if not state:
            return None

        attrs = dict(state.get("attributes", {}))
        if "latitude" not in attrs or "longitude" not in attrs:
            log.warning(f"device_tracker 위치 속성 없음 entity_id:{self.device_tracker}")
            return None

        attrs.setdefault("timestamp", state.get("last_updated"))
        try:
            return to_coordinate(attrs)
        except ValidationError as e:
            log.warning(f"device_tracker 위치 변환 실패 entity_id:{self.device_tracker} error:{e}")
            return None

class HANotifySender:
    """모바일 앱 notify 서비스 기반 발송 어댑터"""

    def __init__(self, client: HAClient, service: str):
        self.client = client
        self.service = service

    async def send(self, task: AlertTask) -> bool:
        """
        작업을 푸시 알림으로 발송합니다.

        Returns:
            발송 성공 시 True (실패는 예외로 전달되어 큐가 재시도)
        """
        url = task.payload.get("maps_url", "")
        title = task.payload.get("title") or NOTIFY_TITLES.get(task.type, "SafeGuard")
        message = task.payload.get("message", "")

        actions = []
        for action in NOTIFY_ACTIONS.get(task.type, []):
            action = dict(action)
            if action["action"] == "URI":
                action["uri"] = url
            actions.append(action)

        await self.client.notify(self.service, title, message, url, actions=actions or None)
        return True
