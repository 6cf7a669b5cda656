"""DependencyResolver 测试

测试内容：
1. A -> B 基本解锁场景
2. 多依赖任务只在全部完成后解锁
3. 并发完成两个依赖时只解锁一次
"""

import asyncio

from brigade.core.models import EventType, NotificationType, TaskDraft, TaskStatus


async def _create(service, actor, now, title: str, **kwargs):
    outcome = await service.create_task(
        TaskDraft(restaurant_id="r-1", title=title, **kwargs), actor, now
    )
    return outcome.task


async def _complete(service, actor, task, now):
    started = await service.transition_task(
        task.task_id, TaskStatus.IN_PROGRESS, actor, task.version, now=now
    )
    return await service.transition_task(
        task.task_id, TaskStatus.COMPLETED, actor, started.task.version, now=now
    )


class TestDependencyUnblock:
    """任务完成后的下游解锁"""

    async def test_completing_a_unblocks_b(self, service, store_group, manager, now):
        a = await _create(service, manager, now, "Defrost")
        b = await _create(
            service, manager, now, "Marinate", assigned_to="u-cook", dependencies=[a.task_id]
        )
        assert b.status == TaskStatus.BLOCKED

        outcome = await _complete(service, manager, a, now)

        # 开始 + 完成各递增一次
        assert outcome.task.version == a.version + 2
        assert outcome.unblocked == [b.task_id]
        ready = [i for i in outcome.intents if i.type == NotificationType.DEPENDENCY_READY]
        assert [i.recipient for i in ready] == ["u-cook"]

        reloaded = await service.get_task(b.task_id, manager)
        assert reloaded.status == TaskStatus.PENDING
        assert reloaded.assigned_to == "u-cook"

        events = await store_group.event_store.get_events_for_task(b.task_id)
        assert [e.type for e in events] == [
            EventType.TASK_CREATED,
            EventType.STATE_TRANSITION,
            EventType.DEPENDENCY_UNBLOCKED,
        ]
        assert events[1].actor_id == "system"
        assert events[2].payload["triggered_by"] == a.task_id

        inbox = await store_group.notification_store.list_for_user(
            "u-cook", notification_type=NotificationType.DEPENDENCY_READY
        )
        assert len(inbox) == 1

    async def test_waits_for_all_dependencies(self, service, manager, now):
        a = await _create(service, manager, now, "Chop")
        b = await _create(service, manager, now, "Boil")
        c = await _create(service, manager, now, "Plate", dependencies=[a.task_id, b.task_id])

        first = await _complete(service, manager, a, now)
        assert first.unblocked == []
        assert (await service.get_task(c.task_id, manager)).status == TaskStatus.BLOCKED

        second = await _complete(service, manager, b, now)
        assert second.unblocked == [c.task_id]
        assert (await service.get_task(c.task_id, manager)).status == TaskStatus.PENDING

    async def test_no_dependency_ready_without_assignee(self, service, manager, now):
        a = await _create(service, manager, now, "Chop")
        await _create(service, manager, now, "Plate", dependencies=[a.task_id])

        outcome = await _complete(service, manager, a, now)

        assert len(outcome.unblocked) == 1
        assert not [i for i in outcome.intents if i.type == NotificationType.DEPENDENCY_READY]

    async def test_cancelled_dependency_keeps_blocked(self, service, manager, now):
        """取消的依赖不算完成，下游保持 blocked 并如实显示未完成依赖"""
        a = await _create(service, manager, now, "Chop")
        b = await _create(service, manager, now, "Boil")
        c = await _create(service, manager, now, "Plate", dependencies=[a.task_id, b.task_id])

        await service.transition_task(a.task_id, TaskStatus.CANCELLED, manager, 1, now=now)
        await _complete(service, manager, b, now)

        assert (await service.get_task(c.task_id, manager)).status == TaskStatus.BLOCKED
        status = await service.dependency_status(c.task_id, manager)
        assert status.unresolved == [a.task_id]

    async def test_concurrent_completions_unblock_once(self, service, store_group, manager, now):
        a = await _create(service, manager, now, "Chop")
        b = await _create(service, manager, now, "Boil")
        c = await _create(service, manager, now, "Plate", dependencies=[a.task_id, b.task_id])

        results = await asyncio.gather(
            _complete(service, manager, a, now),
            _complete(service, manager, b, now),
        )

        unblocked = [task_id for r in results for task_id in r.unblocked]
        assert unblocked == [c.task_id]
        events = await store_group.event_store.get_events_for_task(
            c.task_id, EventType.DEPENDENCY_UNBLOCKED
        )
        assert len(events) == 1
        assert (await service.get_task(c.task_id, manager)).status == TaskStatus.PENDING
