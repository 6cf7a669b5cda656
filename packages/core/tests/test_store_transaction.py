"""事务一致性单元测试

测试内容：
1. 任务条件更新 + 事件写入原子性
2. 版本冲突时整体回滚
3. 事件写入失败时任务更新回滚
"""

from datetime import UTC, datetime

import pytest
from brigade.core.exceptions import ConcurrentModification
from brigade.core.models import EventType, TaskEvent, TaskStatus
from brigade.core.store import append_event_and_update_task, create_task_with_event


def _event(event_id: str, task_id: str, seq: int, event_type=EventType.STATE_TRANSITION):
    return TaskEvent(
        event_id=event_id,
        task_id=task_id,
        task_seq=seq,
        ts=datetime.now(UTC),
        type=event_type,
        actor_id="u-1",
    )


class TestTransactionAtomicity:
    """事务一致性测试"""

    async def test_create_task_with_event(self, store_group, make_task):
        sg = store_group
        await create_task_with_event(
            sg.conn,
            sg.task_store,
            sg.event_store,
            make_task("t-1"),
            _event("e-1", "t-1", 1, EventType.TASK_CREATED),
        )
        events = await sg.event_store.get_events_for_task("t-1")
        assert [e.type for e in events] == [EventType.TASK_CREATED]
        assert await sg.event_store.get_next_task_seq("t-1") == 2

    async def test_update_and_event_commit_together(self, store_group, make_task):
        sg = store_group
        task = make_task("t-1")
        await create_task_with_event(
            sg.conn, sg.task_store, sg.event_store, task, _event("e-1", "t-1", 1)
        )

        updated = task.model_copy(update={"status": TaskStatus.IN_PROGRESS, "version": 2})
        await append_event_and_update_task(
            sg.conn, sg.event_store, sg.task_store, _event("e-2", "t-1", 2), updated, 1
        )

        assert (await sg.task_store.get_task("t-1")).status == TaskStatus.IN_PROGRESS
        assert len(await sg.event_store.get_events_for_task("t-1")) == 2

    async def test_version_conflict_rolls_back(self, store_group, make_task):
        """版本不匹配：不写事件，抛出 ConcurrentModification"""
        sg = store_group
        task = make_task("t-1")
        await create_task_with_event(
            sg.conn, sg.task_store, sg.event_store, task, _event("e-1", "t-1", 1)
        )

        stale = task.model_copy(update={"status": TaskStatus.CANCELLED, "version": 6})
        with pytest.raises(ConcurrentModification) as exc_info:
            await append_event_and_update_task(
                sg.conn, sg.event_store, sg.task_store, _event("e-2", "t-1", 2), stale, 5
            )

        assert exc_info.value.recoverable
        assert (await sg.task_store.get_task("t-1")).status == TaskStatus.PENDING
        assert len(await sg.event_store.get_events_for_task("t-1")) == 1

    async def test_event_failure_rolls_back_task_update(self, store_group, make_task):
        """重复 task_seq 导致事件写入失败时，任务更新一并回滚"""
        sg = store_group
        task = make_task("t-1")
        await create_task_with_event(
            sg.conn, sg.task_store, sg.event_store, task, _event("e-1", "t-1", 1)
        )

        updated = task.model_copy(update={"status": TaskStatus.IN_PROGRESS, "version": 2})
        with pytest.raises(Exception):
            await append_event_and_update_task(
                sg.conn, sg.event_store, sg.task_store, _event("e-2", "t-1", 1), updated, 1
            )

        loaded = await sg.task_store.get_task("t-1")
        assert loaded.status == TaskStatus.PENDING
        assert loaded.version == 1

    async def test_event_type_filter(self, store_group, make_task):
        sg = store_group
        task = make_task("t-1")
        await create_task_with_event(
            sg.conn,
            sg.task_store,
            sg.event_store,
            task,
            _event("e-1", "t-1", 1, EventType.TASK_CREATED),
        )
        updated = task.model_copy(update={"status": TaskStatus.ESCALATED, "version": 2})
        await append_event_and_update_task(
            sg.conn,
            sg.event_store,
            sg.task_store,
            _event("e-2", "t-1", 2, EventType.TASK_ESCALATED),
            updated,
            1,
        )
        escalations = await sg.event_store.get_events_for_task(
            "t-1", EventType.TASK_ESCALATED
        )
        assert [e.event_id for e in escalations] == ["e-2"]
