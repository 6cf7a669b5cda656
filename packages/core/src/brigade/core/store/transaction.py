"""事件 + 任务条件写入的原子事务封装

在同一 SQLite 事务内提交任务更新和对应的审计事件：
版本号不匹配时整体回滚并抛出 ConcurrentModification。
调用方需持有 StoreGroup.write_lock。
"""

import aiosqlite

from ..exceptions import ConcurrentModification
from ..models.event import TaskEvent
from ..models.task import Task
from .event_store import SqliteEventStore
from .task_store import SqliteTaskStore


async def create_task_with_event(
    conn: aiosqlite.Connection,
    task_store: SqliteTaskStore,
    event_store: SqliteEventStore,
    task: Task,
    event: TaskEvent,
) -> None:
    """单事务写入新任务及其 TASK_CREATED 事件"""
    try:
        await task_store.create_task(task)
        await event_store.append_event(event)
        await conn.commit()
    except Exception:
        await conn.rollback()
        raise


async def append_event_and_update_task(
    conn: aiosqlite.Connection,
    event_store: SqliteEventStore,
    task_store: SqliteTaskStore,
    event: TaskEvent,
    task: Task,
    expected_version: int,
) -> None:
    """在同一事务内原子提交任务条件更新和事件写入

    Args:
        conn: 数据库连接（需在同一连接上操作以保证事务性）
        event_store: EventStore 实例
        task_store: TaskStore 实例
        event: 要写入的事件
        task: 更新后的任务（version 已 +1）
        expected_version: 调用方读取时的版本号

    Raises:
        ConcurrentModification: 库中版本号已变化，事务已回滚
    """
    try:
        updated = await task_store.update_task(task, expected_version)
        if not updated:
            raise ConcurrentModification(task.task_id, expected_version)

        await event_store.append_event(event)

        # 原子提交
        await conn.commit()
    except Exception:
        await conn.rollback()
        raise


async def append_event_only(
    conn: aiosqlite.Connection,
    event_store: SqliteEventStore,
    event: TaskEvent,
) -> None:
    """仅写事件（不改任务行，不递增 version）"""
    try:
        await event_store.append_event(event)
        await conn.commit()
    except Exception:
        await conn.rollback()
        raise
