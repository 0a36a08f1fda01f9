"""
SQLite-based alert task store for SafeGuard.

This module persists alert tasks so that queued alerts survive
process restarts while the device is offline.
"""

import aiosqlite
import json
from datetime import datetime
from typing import List, Optional
from safeguard.core.models import AlertTask
from safeguard.observability.logging_setup import get_logger

log = get_logger("safeguard.task_store")

# SQLite 스키마
SCHEMA = """
CREATE TABLE IF NOT EXISTS alert_tasks (
    id TEXT PRIMARY KEY,
    type TEXT NOT NULL,
    priority TEXT NOT NULL,
    payload TEXT NOT NULL,
    created_at TEXT NOT NULL,
    attempts INTEGER NOT NULL DEFAULT 0,
    next_retry_at TEXT,
    status TEXT NOT NULL DEFAULT 'pending',
    last_error TEXT
);
CREATE INDEX IF NOT EXISTS idx_alert_tasks_status ON alert_tasks(status);
"""

COLUMNS = "id, type, priority, payload, created_at, attempts, next_retry_at, status, last_error"

def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None

class SQLiteTaskStore:
    """SQLite 기반 알림 작업 저장소"""

    def __init__(self, path: str):
        """
        초기화합니다.

        Args:
            path: SQLite 데이터베이스 파일 경로
        """
        self.path = path
        log.info(f"SQLiteTaskStore 초기화: {path}")

    async def init(self) -> None:
        """데이터베이스를 초기화합니다."""
        async with aiosqlite.connect(self.path) as db:
            await db.executescript(SCHEMA)
            await db.commit()
        log.info(f"SQLiteTaskStore 스키마 초기화 완료: {self.path}")

    async def persist(self, task: AlertTask) -> None:
        """
        작업을 저장합니다 (같은 id면 덮어씀).

        Args:
            task: 저장할 작업
        """
        async with aiosqlite.connect(self.path) as db:
            await db.execute(
                f"INSERT OR REPLACE INTO alert_tasks ({COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    task.id,
                    task.type,
                    task.priority,
                    json.dumps(task.payload, ensure_ascii=False, default=str),
                    _iso(task.created_at),
                    task.attempts,
                    _iso(task.next_retry_at),
                    task.status,
                    task.last_error,
                )
            )
            await db.commit()

    async def remove(self, task_id: str) -> None:
        """
        작업을 삭제합니다 (발송 완료 또는 확인 처리된 경우).

        Args:
            task_id: 삭제할 작업 ID
        """
        async with aiosqlite.connect(self.path) as db:
            await db.execute("DELETE FROM alert_tasks WHERE id = ?", (task_id,))
            await db.commit()

    async def load_pending(self) -> List[AlertTask]:
        """
        미완료 작업을 생성 순서대로 불러옵니다.

        Returns:
            pending, in_flight, failed_permanent 상태의 작업 목록
        """
        async with aiosqlite.connect(self.path) as db:
            cursor = await db.execute(
                f"SELECT {COLUMNS} FROM alert_tasks "
                "WHERE status IN ('pending', 'in_flight', 'failed_permanent') "
                "ORDER BY created_at ASC"
            )
            rows = await cursor.fetchall()

        tasks = []
        for row in rows:
            try:
                tasks.append(AlertTask(
                    id=row[0],
                    type=row[1],
                    priority=row[2],
                    payload=json.loads(row[3]),
                    created_at=row[4],
                    attempts=row[5],
                    next_retry_at=row[6],
                    status=row[7],
                    last_error=row[8],
                ))
            except (ValueError, TypeError) as e:
                log.error(f"손상된 작업 행 무시 id:{row[0]} error:{e}")
        return tasks

