"""
In-memory alert task store for SafeGuard.

Used in dry-run mode and in tests where durability is not needed.
"""

from typing import Dict, List
from safeguard.core.models import AlertTask

class InMemoryTaskStore:
    """메모리 기반 작업 저장소"""

    def __init__(self) -> None:
        self.rows: Dict[str, AlertTask] = {}

    async def persist(self, task: AlertTask) -> None:
        self.rows[task.id] = task.model_copy(deep=True)

    async def remove(self, task_id: str) -> None:
        self.rows.pop(task_id, None)

    async def load_pending(self) -> List[AlertTask]:
        tasks = [t.model_copy(deep=True) for t in self.rows.values() if t.status != "delivered"]
        return sorted(tasks, key=lambda t: t.created_at)
