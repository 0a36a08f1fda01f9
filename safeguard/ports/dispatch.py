"""
Alert dispatch port interfaces.

This module defines the protocol for the send collaborator and the
queue-side protocol used by task producers.
"""

from typing import Protocol
from safeguard.core.models import AlertTask

class AlertSendPort(Protocol):
    """알림 발송 포트 인터페이스"""

    async def send(self, task: AlertTask) -> bool:
        """
        알림 작업을 발송합니다.

        Args:
            task: 발송할 작업

        Returns:
            발송 성공 여부 (실패는 False 또는 DeliveryError)
        """
        ...

class AlertQueuePort(Protocol):
    """알림 작업 생산자가 사용하는 큐 포트"""

    async def enqueue(self, task: AlertTask) -> None:
        """작업을 큐에 추가합니다 (항상 성공)."""
        ...
