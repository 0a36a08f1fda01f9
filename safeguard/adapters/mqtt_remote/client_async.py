"""
MQTT location ingestion adapter for SafeGuard.

This module subscribes to the device location topic (for example an
OwnTracks or companion-app feed) and turns each JSON message into a
Coordinate. The last received fix also serves the current-location port.
"""

import json
import ssl
from typing import AsyncIterator, Optional
from aiomqtt import Client, MqttError, Will
from safeguard.core.models import Coordinate
from safeguard.core.errors import ValidationError
from safeguard.core.normalize import to_coordinate
from safeguard.common.retry import exponential_backoff
from safeguard.observability.logging_setup import get_logger

log = get_logger("safeguard.mqtt_location")

class MqttLocationWatcher:
    """MQTT 위치 수신 어댑터"""

    def __init__(
        self,
        host: str,
        port: int,
        topic: str,
        *,
        username: str | None = None,
        password: str | None = None,
        tls: bool = False,
        client_id: str | None = None,
        keepalive: int = 30,
        clean_session: bool = False,
        lwt_topic: str = "safeguard/state",
        lwt_payload: str = "offline",
        lwt_qos: int = 1,
        lwt_retain: bool = True,
        reconnect_delay: float = 5.0,
        max_reconnect_delay: float = 60.0,
    ):
        self.host = host
        self.port = port
        self.topic = topic
        self.username = username
        self.password = password
        self.tls = tls
        self.client_id = client_id
        self.keepalive = keepalive
        self.clean_session = clean_session
        self.lwt_topic = lwt_topic
        self.lwt_payload = lwt_payload
        self.lwt_qos = lwt_qos
        self.lwt_retain = lwt_retain
        self.reconnect_delay = reconnect_delay
        self.max_reconnect_delay = max_reconnect_delay

        self.last_location: Optional[Coordinate] = None
        self._running = False

    def _client(self) -> Client:
        tls_context = ssl.create_default_context() if self.tls else None
        return Client(
            hostname=self.host,
            port=self.port,
            username=self.username,
            password=self.password,
            identifier=self.client_id,
            keepalive=self.keepalive,
            clean_session=self.clean_session,
            tls_context=tls_context,
            will=Will(
                topic=self.lwt_topic,
                payload=self.lwt_payload.encode("utf-8"),
                qos=self.lwt_qos,
                retain=self.lwt_retain,
            ),
        )

    def parse(self, payload: bytes | str) -> Optional[Coordinate]:
        """
        메시지 페이로드를 좌표로 변환합니다.

        Returns:
            Coordinate 또는 위치 메시지가 아니면 None
        """
        try:
            text = payload.decode("utf-8") if isinstance(payload, (bytes, bytearray)) else str(payload)
            raw = json.loads(text)
        except UnicodeDecodeError as e:
            log.error(f"문자열 디코딩 오류: {e}")
            return None
        except json.JSONDecodeError as e:
            log.error(f"JSON 파싱 오류: {e}")
            return None

        if not isinstance(raw, dict):
            log.warning(f"위치 메시지 형식 아님 type:{type(raw).__name__}")
            return None
        # OwnTracks는 위치 외 메시지(_type != location)도 같은 토픽에 보냄
        if raw.get("_type") not in (None, "location"):
            return None

        try:
            return to_coordinate(raw)
        except ValidationError as e:
            log.warning(f"잘못된 위치 메시지 무시: {e}")
            return None

    async def watch(self) -> AsyncIterator[Coordinate]:
        """위치 갱신을 수신합니다 (연결이 끊기면 지수 백오프로 재연결)."""
        self._running = True
        failures = 0
        while self._running:
            try:
                async with self._client() as client:
                    await client.subscribe(self.topic)
                    log.info(f"위치 토픽 구독됨: {self.topic} broker:{self.host}:{self.port}")
                    failures = 0

                    async for message in client.messages:
                        if not self._running:
                            break
                        location = self.parse(message.payload)
                        if location is None:
                            continue
                        self.last_location = location
                        yield location

            except MqttError as e:
                failures += 1
                log.error(f"MQTT 오류 failures:{failures} error:{e}")
                if self._running:
                    await exponential_backoff(failures, self.reconnect_delay, self.max_reconnect_delay)

    async def get_current_location(self) -> Optional[Coordinate]:
        """마지막으로 수신한 위치를 반환합니다."""
        return self.last_location

    async def stop(self) -> None:
        self._running = False
        log.info("위치 MQTT 수신 중지")
