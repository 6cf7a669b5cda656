"""TaskEventStore SQLite 实现

事件表 append-only：只允许插入，不允许更新或删除。
task_seq 同一 task 内严格单调递增。
"""

import json

import aiosqlite

from ..models.enums import EventType
from ..models.event import TaskEvent
from .codec import from_db_ts, to_db_ts


class SqliteEventStore:
    """TaskEventStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def append_event(self, event: TaskEvent) -> None:
        """追加事件（append-only）

        注意：此方法不自动提交事务，需由调用方管理事务。
        """
        await self._conn.execute(
            """
            INSERT INTO task_events (event_id, task_id, task_seq, ts, type, actor_id, payload)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                event.event_id,
                event.task_id,
                event.task_seq,
                to_db_ts(event.ts),
                event.type.value,
                event.actor_id,
                json.dumps(event.payload, ensure_ascii=False, default=str),
            ),
        )

    async def get_events_for_task(
        self,
        task_id: str,
        event_type: EventType | None = None,
    ) -> list[TaskEvent]:
        """查询指定任务的事件，按 task_seq 正序，可按类型筛选"""
        if event_type is not None:
            cursor = await self._conn.execute(
                "SELECT * FROM task_events WHERE task_id = ? AND type = ? ORDER BY task_seq ASC",
                (task_id, event_type.value),
            )
        else:
            cursor = await self._conn.execute(
                "SELECT * FROM task_events WHERE task_id = ? ORDER BY task_seq ASC",
                (task_id,),
            )
        rows = await cursor.fetchall()
        return [self._row_to_event(row) for row in rows]

    async def get_next_task_seq(self, task_id: str) -> int:
        """获取指定任务的下一个 task_seq（MAX+1）

        在写锁内调用以确保原子性。
        """
        cursor = await self._conn.execute(
            "SELECT COALESCE(MAX(task_seq), 0) FROM task_events WHERE task_id = ?",
            (task_id,),
        )
        row = await cursor.fetchone()
        return (row[0] if row else 0) + 1

    @staticmethod
    def _row_to_event(row: aiosqlite.Row) -> TaskEvent:
        """将数据库行转换为 TaskEvent 模型"""
        return TaskEvent(
            event_id=row["event_id"],
            task_id=row["task_id"],
            task_seq=row["task_seq"],
            ts=from_db_ts(row["ts"]),
            type=EventType(row["type"]),
            actor_id=row["actor_id"],
            payload=json.loads(row["payload"]) if row["payload"] else {},
        )
