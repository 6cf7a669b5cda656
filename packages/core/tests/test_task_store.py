"""TaskStore 单元测试

测试内容：
1. 创建 / 读取往返保持字段（含时区与 metadata）
2. 版本号条件更新
3. blocked 下游与超时任务查询
"""

from datetime import timedelta

from brigade.core.models import TaskPriority, TaskStatus


class TestTaskStoreBasics:
    """基础读写"""

    async def test_create_and_get(self, store_group, make_task, now):
        task = make_task(
            "t-1",
            priority=TaskPriority.HIGH,
            due_date=now + timedelta(hours=1),
            dependencies=["t-0"],
            metadata={"station": "grill"},
        )
        await store_group.task_store.create_task(task)
        await store_group.conn.commit()

        loaded = await store_group.task_store.get_task("t-1")
        assert loaded is not None
        assert loaded.priority == TaskPriority.HIGH
        assert loaded.due_date == now + timedelta(hours=1)
        assert loaded.dependencies == ["t-0"]
        assert loaded.metadata == {"station": "grill"}
        assert loaded.version == 1

    async def test_get_missing_returns_none(self, store_group):
        assert await store_group.task_store.get_task("nope") is None

    async def test_get_tasks_skips_missing(self, store_group, make_task):
        await store_group.task_store.create_task(make_task("t-1"))
        await store_group.conn.commit()
        found = await store_group.task_store.get_tasks(["t-1", "ghost"])
        assert list(found) == ["t-1"]

    async def test_list_tasks_filters(self, store_group, make_task):
        await store_group.task_store.create_task(make_task("t-1", assigned_to="u-1"))
        await store_group.task_store.create_task(
            make_task("t-2", status=TaskStatus.BLOCKED)
        )
        await store_group.task_store.create_task(make_task("t-3", restaurant_id="r-2"))
        await store_group.conn.commit()

        assert {t.task_id for t in await store_group.task_store.list_tasks("r-1")} == {
            "t-1",
            "t-2",
        }
        blocked = await store_group.task_store.list_tasks("r-1", status="blocked")
        assert [t.task_id for t in blocked] == ["t-2"]
        mine = await store_group.task_store.list_tasks("r-1", assigned_to="u-1")
        assert [t.task_id for t in mine] == ["t-1"]


class TestConditionalUpdate:
    """乐观并发写入"""

    async def test_update_with_matching_version(self, store_group, make_task):
        task = make_task("t-1")
        await store_group.task_store.create_task(task)
        await store_group.conn.commit()

        updated = task.model_copy(update={"status": TaskStatus.IN_PROGRESS, "version": 2})
        assert await store_group.task_store.update_task(updated, 1) is True
        await store_group.conn.commit()

        loaded = await store_group.task_store.get_task("t-1")
        assert loaded.status == TaskStatus.IN_PROGRESS
        assert loaded.version == 2

    async def test_stale_version_rejected(self, store_group, make_task):
        task = make_task("t-1")
        await store_group.task_store.create_task(task)
        await store_group.conn.commit()

        first = task.model_copy(update={"status": TaskStatus.IN_PROGRESS, "version": 2})
        assert await store_group.task_store.update_task(first, 1) is True
        stale = task.model_copy(update={"status": TaskStatus.CANCELLED, "version": 2})
        assert await store_group.task_store.update_task(stale, 1) is False
        await store_group.conn.commit()

        loaded = await store_group.task_store.get_task("t-1")
        assert loaded.status == TaskStatus.IN_PROGRESS


class TestQueries:
    """下游与超时查询"""

    async def test_list_blocked_dependents(self, store_group, make_task):
        store = store_group.task_store
        await store.create_task(make_task("a"))
        await store.create_task(make_task("b", status=TaskStatus.BLOCKED, dependencies=["a"]))
        await store.create_task(make_task("c", status=TaskStatus.PENDING, dependencies=["a"]))
        await store.create_task(make_task("d", status=TaskStatus.BLOCKED, dependencies=["x"]))
        await store_group.conn.commit()

        dependents = await store.list_blocked_dependents("r-1", "a")
        assert [t.task_id for t in dependents] == ["b"]

    async def test_list_overdue(self, store_group, make_task, now):
        store = store_group.task_store
        await store.create_task(make_task("late", due_date=now - timedelta(minutes=5)))
        await store.create_task(make_task("later", due_date=now - timedelta(hours=2)))
        await store.create_task(make_task("future", due_date=now + timedelta(minutes=5)))
        await store.create_task(make_task("no-due"))
        await store.create_task(
            make_task(
                "done",
                status=TaskStatus.COMPLETED,
                due_date=now - timedelta(hours=1),
            )
        )
        await store_group.conn.commit()

        overdue = await store.list_overdue("r-1", now, {TaskStatus.COMPLETED}, 100)
        assert [t.task_id for t in overdue] == ["later", "late"]

        limited = await store.list_overdue("r-1", now, {TaskStatus.COMPLETED}, 1)
        assert [t.task_id for t in limited] == ["later"]

    async def test_list_overdue_pages_with_cursor(self, store_group, make_task, now):
        store = store_group.task_store
        due = now - timedelta(hours=1)
        for task_id in ("t-b", "t-a", "t-c"):
            await store.create_task(make_task(task_id, due_date=due))
        await store.create_task(make_task("t-old", due_date=now - timedelta(hours=3)))
        await store_group.conn.commit()

        seen: list[str] = []
        after = None
        while True:
            page = await store.list_overdue("r-1", now, {TaskStatus.COMPLETED}, 2, after=after)
            seen.extend(t.task_id for t in page)
            if len(page) < 2:
                break
            after = (page[-1].due_date, page[-1].task_id)

        # 同一截止时间按 task_id 排序，不重复也不遗漏
        assert seen == ["t-old", "t-a", "t-b", "t-c"]
