"""
Dry-run alert sender.

This module provides an implementation of AlertSendPort that only
logs what would have been published.
"""

from safeguard.core.models import AlertTask
from safeguard.observability.logging_setup import get_logger

log = get_logger("safeguard.dry_run")

class DryRunAlertSender:
    """발송하지 않고 기록만 하는 어댑터"""

    def __init__(self, topic_prefix: str):
        """
        초기화합니다.

        Args:
            topic_prefix: 발송되었을 토픽 접두사
        """
        self.topic_prefix = topic_prefix.rstrip("/")
        self.sent: list[AlertTask] = []

    async def send(self, task: AlertTask) -> bool:
        # 드라이 런 모드에서는 로그만 출력
        log.info(f"[DRY_RUN] Would publish to {self.topic_prefix}/{task.type} "
                 f"id:{task.id} priority:{task.priority}")
        self.sent.append(task)
        return True
