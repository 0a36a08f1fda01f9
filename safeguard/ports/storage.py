"""
Durable task storage port interface.

This module defines the protocol for persisting alert tasks
across process restarts.
"""

from typing import List, Protocol
from safeguard.core.models import AlertTask

class TaskStoragePort(Protocol):
    """작업 저장소 포트 인터페이스"""

    async def persist(self, task: AlertTask) -> None:
        """
        작업을 저장합니다 (같은 id면 덮어씀).

        Args:
            task: 저장할 작업
        """
        ...

    async def remove(self, task_id: str) -> None:
        """
        작업을 삭제합니다.

        Args:
            task_id: 삭제할 작업 ID
        """
        ...

    async def load_pending(self) -> List[AlertTask]:
        """
        재시작 후 복구할 작업(pending, failed_permanent)을 불러옵니다.

        Returns:
            작업 목록
        """
        ...
