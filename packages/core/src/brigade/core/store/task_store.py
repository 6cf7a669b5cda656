"""TaskStore SQLite 实现

所有更新都是以 version 为前置条件的条件写入（乐观并发），
此处仅提供数据库操作，事务由 transaction 模块管理。
"""

import json
from datetime import datetime

import aiosqlite

from ..models.enums import TaskStatus
from ..models.task import Task
from .codec import from_db_ts, to_db_ts

_COLUMNS = (
    "task_id, restaurant_id, title, description, status, priority, task_type, "
    "due_date, scheduled_for, assigned_to, assigned_at, created_by, dependencies, "
    "version, escalation_level, started_at, completed_at, cancelled_at, "
    "estimated_duration_minutes, actual_duration_minutes, metadata, "
    "created_at, updated_at"
)


class SqliteTaskStore:
    """TaskStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def create_task(self, task: Task) -> None:
        """创建任务记录（不自动提交）"""
        await self._conn.execute(
            f"""
            INSERT INTO tasks ({_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                task.task_id,
                task.restaurant_id,
                task.title,
                task.description,
                task.status.value,
                task.priority.value,
                task.task_type.value,
                to_db_ts(task.due_date),
                to_db_ts(task.scheduled_for),
                task.assigned_to,
                to_db_ts(task.assigned_at),
                task.created_by,
                json.dumps(task.dependencies),
                task.version,
                task.escalation_level,
                to_db_ts(task.started_at),
                to_db_ts(task.completed_at),
                to_db_ts(task.cancelled_at),
                task.estimated_duration_minutes,
                task.actual_duration_minutes,
                json.dumps(task.metadata, ensure_ascii=False),
                to_db_ts(task.created_at),
                to_db_ts(task.updated_at),
            ),
        )

    async def get_task(self, task_id: str) -> Task | None:
        """根据 task_id 查询任务"""
        cursor = await self._conn.execute(
            f"SELECT {_COLUMNS} FROM tasks WHERE task_id = ?",
            (task_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return self._row_to_task(row)

    async def get_tasks(self, task_ids: list[str]) -> dict[str, Task]:
        """批量查询任务，返回 task_id -> Task（不存在的 ID 不出现在结果中）"""
        if not task_ids:
            return {}
        placeholders = ", ".join("?" for _ in task_ids)
        cursor = await self._conn.execute(
            f"SELECT {_COLUMNS} FROM tasks WHERE task_id IN ({placeholders})",
            tuple(task_ids),
        )
        rows = await cursor.fetchall()
        return {row["task_id"]: self._row_to_task(row) for row in rows}

    async def list_tasks(
        self,
        restaurant_id: str,
        status: str | None = None,
        assigned_to: str | None = None,
    ) -> list[Task]:
        """查询餐厅任务列表，支持按状态/负责人筛选，按 created_at 倒序"""
        clauses = ["restaurant_id = ?"]
        params: list[str] = [restaurant_id]
        if status:
            clauses.append("status = ?")
            params.append(status)
        if assigned_to:
            clauses.append("assigned_to = ?")
            params.append(assigned_to)
        cursor = await self._conn.execute(
            f"SELECT {_COLUMNS} FROM tasks WHERE {' AND '.join(clauses)} "
            "ORDER BY created_at DESC",
            tuple(params),
        )
        rows = await cursor.fetchall()
        return [self._row_to_task(row) for row in rows]

    async def list_blocked_dependents(self, restaurant_id: str, task_id: str) -> list[Task]:
        """查询同餐厅中依赖 task_id 且处于 blocked 的任务"""
        cursor = await self._conn.execute(
            f"""
            SELECT {_COLUMNS} FROM tasks
            WHERE restaurant_id = ?
              AND status = ?
              AND EXISTS (
                  SELECT 1 FROM json_each(tasks.dependencies) WHERE json_each.value = ?
              )
            ORDER BY created_at ASC
            """,
            (restaurant_id, TaskStatus.BLOCKED.value, task_id),
        )
        rows = await cursor.fetchall()
        return [self._row_to_task(row) for row in rows]

    async def list_overdue(
        self,
        restaurant_id: str,
        now: datetime,
        exclude_statuses: set[TaskStatus],
        limit: int,
        after: tuple[datetime, str] | None = None,
    ) -> list[Task]:
        """查询已过截止时间且不在 exclude_statuses 中的任务，按 (due_date, task_id) 正序

        after 为上一页最后一条的 (due_date, task_id)，用于分页遍历。
        """
        excluded = sorted(s.value for s in exclude_statuses)
        placeholders = ", ".join("?" for _ in excluded)
        cursor_sql = ""
        cursor_params: tuple[str, ...] = ()
        if after is not None:
            after_due = to_db_ts(after[0])
            cursor_sql = "AND (due_date > ? OR (due_date = ? AND task_id > ?))"
            cursor_params = (after_due, after_due, after[1])
        cursor = await self._conn.execute(
            f"""
            SELECT {_COLUMNS} FROM tasks
            WHERE restaurant_id = ?
              AND due_date IS NOT NULL
              AND due_date < ?
              AND status NOT IN ({placeholders})
              {cursor_sql}
            ORDER BY due_date ASC, task_id ASC
            LIMIT ?
            """,
            (restaurant_id, to_db_ts(now), *excluded, *cursor_params, limit),
        )
        rows = await cursor.fetchall()
        return [self._row_to_task(row) for row in rows]

    async def update_task(self, task: Task, expected_version: int) -> bool:
        """条件写入：仅当库中 version == expected_version 时更新

        task.version 应为 expected_version + 1。

        Returns:
            True 写入成功；False 版本不匹配（并发修改）或任务不存在
        """
        cursor = await self._conn.execute(
            """
            UPDATE tasks
            SET title = ?, description = ?, status = ?, priority = ?, task_type = ?,
                due_date = ?, scheduled_for = ?, assigned_to = ?, assigned_at = ?,
                dependencies = ?, version = ?, escalation_level = ?,
                started_at = ?, completed_at = ?, cancelled_at = ?,
                estimated_duration_minutes = ?, actual_duration_minutes = ?,
                metadata = ?, updated_at = ?
            WHERE task_id = ? AND version = ?
            """,
            (
                task.title,
                task.description,
                task.status.value,
                task.priority.value,
                task.task_type.value,
                to_db_ts(task.due_date),
                to_db_ts(task.scheduled_for),
                task.assigned_to,
                to_db_ts(task.assigned_at),
                json.dumps(task.dependencies),
                task.version,
                task.escalation_level,
                to_db_ts(task.started_at),
                to_db_ts(task.completed_at),
                to_db_ts(task.cancelled_at),
                task.estimated_duration_minutes,
                task.actual_duration_minutes,
                json.dumps(task.metadata, ensure_ascii=False),
                to_db_ts(task.updated_at),
                task.task_id,
                expected_version,
            ),
        )
        return cursor.rowcount == 1

    @staticmethod
    def _row_to_task(row: aiosqlite.Row) -> Task:
        """将数据库行转换为 Task 模型"""
        return Task(
            task_id=row["task_id"],
            restaurant_id=row["restaurant_id"],
            title=row["title"],
            description=row["description"],
            status=row["status"],
            priority=row["priority"],
            task_type=row["task_type"],
            due_date=from_db_ts(row["due_date"]),
            scheduled_for=from_db_ts(row["scheduled_for"]),
            assigned_to=row["assigned_to"],
            assigned_at=from_db_ts(row["assigned_at"]),
            created_by=row["created_by"],
            dependencies=json.loads(row["dependencies"]),
            version=row["version"],
            escalation_level=row["escalation_level"],
            started_at=from_db_ts(row["started_at"]),
            completed_at=from_db_ts(row["completed_at"]),
            cancelled_at=from_db_ts(row["cancelled_at"]),
            estimated_duration_minutes=row["estimated_duration_minutes"],
            actual_duration_minutes=row["actual_duration_minutes"],
            metadata=json.loads(row["metadata"]) if row["metadata"] else {},
            created_at=from_db_ts(row["created_at"]),
            updated_at=from_db_ts(row["updated_at"]),
        )
