"""
MQTT alert publisher adapter for SafeGuard.

This module implements the send collaborator of the dispatch queue:
each alert task is published as one JSON message. Retry and durability
are owned by the queue, so a failed publish is simply reported.
"""

import json
import ssl
from contextlib import AsyncExitStack
from typing import Any, Dict, Optional
from aiomqtt import Client, MqttError, Will
from safeguard.core.models import AlertTask
from safeguard.core.errors import DeliveryError
from safeguard.observability.logging_setup import get_logger

log = get_logger("safeguard.mqtt_alerts")

def task_message(task: AlertTask) -> Dict[str, Any]:
    """작업을 발송 메시지 본문으로 변환합니다."""
    return {
        "id": task.id,
        "type": task.type,
        "priority": task.priority,
        "created_at": task.created_at.isoformat(),
        "attempt": task.attempts + 1,
        "payload": task.payload,
    }

class MqttAlertSender:
    """MQTT 알림 발송 어댑터"""

    def __init__(self,
                 *,
                 broker_host: str,
                 broker_port: int,
                 topic_prefix: str,
                 username: str | None = None,
                 password: str | None = None,
                 tls: bool = False,
                 client_id: str | None = None,
                 keepalive: int = 30,
                 lwt_topic: str = "safeguard/state",
                 lwt_payload_online: str = "online",
                 lwt_payload_offline: str = "offline",
                 qos: int = 1,
                 retain: bool = False):
        """
        초기화합니다.

        Args:
            broker_host: MQTT 브로커 호스트
            broker_port: MQTT 브로커 포트
            topic_prefix: 토픽 접두사 (작업 유형이 뒤에 붙음)
            username: 사용자명
            password: 비밀번호
            tls: TLS 사용 여부
            client_id: 클라이언트 ID
            keepalive: keepalive 시간
            lwt_topic: Last Will and Testament 토픽
            lwt_payload_online: 온라인 상태 페이로드
            lwt_payload_offline: 오프라인 상태 페이로드
            qos: 발송 QoS
            retain: retain 플래그
        """
        self.broker_host = broker_host
        self.broker_port = broker_port
        self.topic_prefix = topic_prefix.rstrip("/")
        self.username = username
        self.password = password
        self.tls = tls
        self.client_id = client_id
        self.keepalive = keepalive
        self.lwt_topic = lwt_topic
        self.lwt_payload_online = lwt_payload_online
        self.lwt_payload_offline = lwt_payload_offline
        self.qos = qos
        self.retain = retain

        self.client: Client | None = None
        self._stack: Optional[AsyncExitStack] = None

    def topic_for(self, task: AlertTask) -> str:
        return f"{self.topic_prefix}/{task.type}"

    async def _connect(self) -> None:
        """MQTT 브로커에 연결합니다."""
        tls_context = ssl.create_default_context() if self.tls else None

        client = Client(
            hostname=self.broker_host,
            port=self.broker_port,
            username=self.username,
            password=self.password,
            identifier=self.client_id,
            keepalive=self.keepalive,
            tls_context=tls_context,
            will=Will(
                topic=self.lwt_topic,
                payload=self.lwt_payload_offline.encode("utf-8"),
                qos=1,
                retain=True,
            ),
        )

        stack = AsyncExitStack()
        await stack.enter_async_context(client)
        self._stack = stack
        self.client = client

        # 온라인 상태 발송
        await client.publish(self.lwt_topic, self.lwt_payload_online, qos=1, retain=True)
        log.info(f"알림 MQTT 브로커 연결됨: {self.broker_host}:{self.broker_port}")

    async def _reset(self) -> None:
        stack, self._stack, self.client = self._stack, None, None
        if stack is not None:
            try:
                await stack.aclose()
            except MqttError as e:
                log.debug(f"MQTT 연결 정리 중 오류: {e}")

    async def send(self, task: AlertTask) -> bool:
        """
        작업을 MQTT로 발송합니다.

        Returns:
            발송 성공 시 True

        Raises:
            DeliveryError: 브로커 연결/발송 실패
        """
        topic = self.topic_for(task)
        payload = json.dumps(task_message(task), ensure_ascii=False).encode("utf-8")

        try:
            if self.client is None:
                await self._connect()
            await self.client.publish(topic, payload, qos=self.qos, retain=self.retain)
        except MqttError as e:
            log.error(f"알림 발송 실패: id:{task.id} topic:{topic} error:{e}")
            await self._reset()
            raise DeliveryError(str(e)) from e

        log.info(f"알림 발송 성공: id:{task.id} topic:{topic}")
        return True

    async def stop(self) -> None:
        """연결을 종료합니다."""
        if self.client is not None:
            log.info("알림 MQTT 연결 종료됨")
        await self._reset()
