"""TaskWriter -- 任务写入与审计事件的统一入口

每次写入都在 StoreGroup.write_lock 内完成：
分配 task_seq -> 构建事件 -> 同一事务内条件更新任务并追加事件。
"""

from datetime import UTC, datetime
from typing import Any

from brigade.core.models import EventType, Task, TaskEvent
from brigade.core.store import (
    StoreGroup,
    append_event_and_update_task,
    append_event_only,
    create_task_with_event,
)
from ulid import ULID


class TaskWriter:
    """以 version 为前置条件写入任务，并记录对应事件"""

    def __init__(self, store_group: StoreGroup) -> None:
        self._stores = store_group

    @staticmethod
    def _build_event(
        task_id: str,
        seq: int,
        event_type: EventType,
        actor_id: str,
        payload: dict[str, Any],
        ts: datetime | None = None,
    ) -> TaskEvent:
        return TaskEvent(
            event_id=str(ULID()),
            task_id=task_id,
            task_seq=seq,
            ts=ts or datetime.now(UTC),
            type=event_type,
            actor_id=actor_id,
            payload=payload,
        )

    async def create(self, task: Task, actor_id: str, payload: dict[str, Any]) -> TaskEvent:
        """写入新任务及 TASK_CREATED 事件（task_seq = 1）"""
        event = self._build_event(
            task.task_id, 1, EventType.TASK_CREATED, actor_id, payload, task.created_at
        )
        async with self._stores.write_lock:
            await create_task_with_event(
                self._stores.conn,
                self._stores.task_store,
                self._stores.event_store,
                task,
                event,
            )
        return event

    async def update(
        self,
        task: Task,
        expected_version: int,
        event_type: EventType,
        actor_id: str,
        payload: dict[str, Any],
    ) -> tuple[Task, TaskEvent]:
        """条件更新任务

        Args:
            task: 已修改字段（含 updated_at）的任务，version 会被覆盖为 expected_version + 1
            expected_version: 调用方读取时的版本号
            event_type: 事件类型
            actor_id: 操作者
            payload: 事件 payload

        Returns:
            (写入后的任务, 事件)

        Raises:
            ConcurrentModification: 版本号不匹配，未写入任何内容
        """
        updated = task.model_copy(update={"version": expected_version + 1})
        async with self._stores.write_lock:
            seq = await self._stores.event_store.get_next_task_seq(task.task_id)
            event = self._build_event(
                task.task_id, seq, event_type, actor_id, payload, updated.updated_at
            )
            await append_event_and_update_task(
                self._stores.conn,
                self._stores.event_store,
                self._stores.task_store,
                event,
                updated,
                expected_version,
            )
        return updated, event

    async def append(
        self,
        task_id: str,
        event_type: EventType,
        actor_id: str,
        payload: dict[str, Any],
    ) -> TaskEvent:
        """仅追加事件，不修改任务行"""
        async with self._stores.write_lock:
            seq = await self._stores.event_store.get_next_task_seq(task_id)
            event = self._build_event(task_id, seq, event_type, actor_id, payload)
            await append_event_only(self._stores.conn, self._stores.event_store, event)
        return event
