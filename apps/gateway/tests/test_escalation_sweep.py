"""自动升级清扫测试

测试内容：
1. 超时标记
2. 关键任务超时 90 分钟：升级、自动改派、升级上限
3. 跳过原因（无规则 / 无目标 / 已升级）
4. 规则维护与待升级预览
5. 分页遍历：不可升级的旧任务不挤占批量额度
6. 改派写入冲突时升级结果仍然成立
"""

from datetime import timedelta

import pytest
from brigade.core.exceptions import PermissionDenied, ValidationError
from brigade.core.models import (
    DEFAULT_ESCALATION_RULES,
    EscalationRule,
    EscalationTarget,
    EventType,
    NotificationChannel,
    NotificationType,
    StaffRole,
    TaskDraft,
    TaskPriority,
    TaskStatus,
)
from brigade.gateway.services.escalation_engine import EscalationEngine
from brigade.gateway.services.lifecycle import TaskLifecycleManager


async def _overdue_task(service, manager, now, minutes: int, **kwargs):
    outcome = await service.create_task(
        TaskDraft(
            restaurant_id="r-1",
            title=kwargs.pop("title", "Check fryer oil"),
            due_date=now - timedelta(minutes=minutes),
            **kwargs,
        ),
        manager,
        now - timedelta(hours=3),
    )
    return outcome.task


class TestMarkOverdue:
    """超时标记"""

    async def test_marks_only_past_due_open_tasks(self, service, store_group, manager, now):
        late = await _overdue_task(service, manager, now, 10, assigned_to="u-cook")
        future = await _overdue_task(service, manager, now, -10, title="Later")
        blocked = await _overdue_task(
            service, manager, now, 10, title="Blocked", dependencies=[future.task_id]
        )

        result = await service.mark_overdue("r-1", now)

        assert result.marked == [late.task_id]
        assert (await service.get_task(late.task_id, manager)).status == TaskStatus.OVERDUE
        assert (await service.get_task(blocked.task_id, manager)).status == TaskStatus.BLOCKED

        # 负责人收到紧急类型的超时通知
        inbox = await store_group.notification_store.list_for_user(
            "u-cook", notification_type=NotificationType.TASK_OVERDUE
        )
        assert len(inbox) == 1

    async def test_idempotent(self, service, manager, now):
        await _overdue_task(service, manager, now, 10)
        await service.mark_overdue("r-1", now)
        second = await service.mark_overdue("r-1", now)
        assert second.marked == []


class TestCriticalTaskSweep:
    """关键任务超时 90 分钟，默认规则：升级到 admin，自动改派，最多两次"""

    async def test_escalate_reassign_and_cap(self, service, store_group, manager, echo, now):
        task = await _overdue_task(
            service, manager, now, 90, priority=TaskPriority.CRITICAL, assigned_to="u-cook"
        )
        await service.mark_overdue("r-1", now)

        first = await service.run_escalation_sweep("r-1", now)

        assert first.total_processed == 1
        assert len(first.escalated) == 1
        escalated = first.escalated[0]
        assert escalated.rule_id == "default-critical"
        assert escalated.overdue_minutes == 90
        assert escalated.escalation_level == 1
        assert escalated.escalated_to == ["u-admin"]
        assert escalated.reassigned_to == "u-admin"

        # 每个目标 × 每个渠道一条意图，加一条改派通知
        escalation_intents = [i for i in first.intents if i.type == NotificationType.ESCALATION]
        assert sorted(i.channel for i in escalation_intents) == sorted(
            [NotificationChannel.IN_APP, NotificationChannel.EMAIL, NotificationChannel.SMS]
        )
        assert [i.recipient for i in first.intents if i.type == NotificationType.TASK_ASSIGNED] == [
            "u-admin"
        ]

        # 短信默认关闭被丢弃；邮件经 echo 后端送达
        sms = await store_group.notification_store.list_for_user(
            "u-admin", channel=NotificationChannel.SMS
        )
        assert sms == []
        emails = await store_group.notification_store.list_for_user(
            "u-admin", channel=NotificationChannel.EMAIL
        )
        assert len(emails) == 1
        assert emails[0].sent_at is not None
        assert echo.sent == [emails[0].notification_id]

        reloaded = await service.get_task(task.task_id, manager)
        assert reloaded.status == TaskStatus.ASSIGNED
        assert reloaded.assigned_to == "u-admin"
        assert reloaded.escalation_level == 1
        assert reloaded.metadata["escalation"]["auto_escalated"] is True
        assert reloaded.metadata["escalation"]["rule_applied"] == "default-critical"

        history = await service.escalation_history(task.task_id, manager)
        assert [e.type for e in history] == [EventType.TASK_ESCALATED, EventType.TASK_REASSIGNED]
        assert history[1].payload["previous_assignee"] == "u-cook"

        second = await service.run_escalation_sweep("r-1", now + timedelta(minutes=30))
        assert [e.escalation_level for e in second.escalated] == [2]

        third = await service.run_escalation_sweep("r-1", now + timedelta(minutes=60))
        assert third.escalated == []
        assert [(s.task_id, s.reason) for s in third.skipped] == [
            (task.task_id, "max_escalations_reached")
        ]
        assert (await service.get_task(task.task_id, manager)).escalation_level == 2

    async def test_below_threshold_not_escalated(self, service, manager, now):
        await _overdue_task(service, manager, now, 20, priority=TaskPriority.CRITICAL)
        result = await service.run_escalation_sweep("r-1", now)
        assert result.escalated == []
        assert [s.reason for s in result.skipped] == ["no_matching_rule"]


class TestSweepSkips:
    """跳过与排除"""

    async def test_medium_priority_has_no_rule(self, service, manager, now):
        await _overdue_task(service, manager, now, 500)
        result = await service.run_escalation_sweep("r-1", now)
        assert [s.reason for s in result.skipped] == ["no_matching_rule"]

    async def test_already_escalated_excluded(self, service, manager, now):
        task = await _overdue_task(service, manager, now, 90, priority=TaskPriority.HIGH)
        await service.escalate_manually(
            task.task_id, EscalationTarget(), "Manual", False, manager, now
        )
        result = await service.run_escalation_sweep("r-1", now)
        assert result.total_processed == 0

    async def test_no_targets_skipped(self, service, admin, manager, now):
        rules = [
            EscalationRule(
                id="to-system",
                overdue_minutes=1,
                escalate_to_role=StaffRole.SYSTEM,
                notification_channels=[NotificationChannel.IN_APP],
            )
        ]
        await service.set_escalation_rules("r-1", rules, admin)
        await _overdue_task(service, manager, now, 30)

        result = await service.run_escalation_sweep("r-1", now)
        assert [s.reason for s in result.skipped] == ["no_escalation_targets"]

    async def test_other_restaurant_untouched(self, service, manager, now):
        await _overdue_task(service, manager, now, 90, priority=TaskPriority.CRITICAL)
        result = await service.run_escalation_sweep("r-2", now)
        assert result.total_processed == 0


class TestRulesAndPreview:
    """规则维护与待升级预览"""

    async def test_defaults_when_unconfigured(self, service):
        assert await service.get_escalation_rules("r-1") == DEFAULT_ESCALATION_RULES

    async def test_admin_can_replace_rules(self, service, admin):
        rule = EscalationRule(
            id="cleaning",
            overdue_minutes=15,
            escalate_to_role=StaffRole.MANAGER,
            notification_channels=[NotificationChannel.PUSH],
        )
        await service.set_escalation_rules("r-1", [rule], admin)
        assert await service.get_escalation_rules("r-1") == [rule]
        assert await service.get_escalation_rules("r-2") == DEFAULT_ESCALATION_RULES

    async def test_manager_cannot_replace_rules(self, service, manager):
        with pytest.raises(PermissionDenied):
            await service.set_escalation_rules("r-1", [], manager)

    async def test_duplicate_rule_ids_rejected(self, service, admin):
        rule = DEFAULT_ESCALATION_RULES[0]
        with pytest.raises(ValidationError):
            await service.set_escalation_rules("r-1", [rule, rule], admin)

    async def test_pending_preview_scoped_for_staff(self, service, manager, cook, now):
        mine = await _overdue_task(
            service, manager, now, 90, priority=TaskPriority.HIGH, assigned_to="u-cook"
        )
        await _overdue_task(service, manager, now, 90, priority=TaskPriority.LOW, title="Other")

        everything = await service.pending_escalations(manager, now)
        assert len(everything) == 2

        own = await service.pending_escalations(cook, now)
        assert [p.task_id for p in own] == [mine.task_id]
        assert own[0].rule_id == "default-high"
        assert own[0].requires_escalation is True
        assert own[0].overdue_minutes == 90


class TestSweepPaging:
    """批量额度只计升级成功的任务"""

    @pytest.fixture
    def engine(self, store_group):
        return EscalationEngine(store_group, TaskLifecycleManager(store_group), batch_size=1)

    async def test_unmatched_old_task_does_not_starve_newer(self, engine, service, manager, now):
        stale = await _overdue_task(service, manager, now, 240, title="Restock napkins")
        fresh = await _overdue_task(
            service, manager, now, 90, priority=TaskPriority.CRITICAL, assigned_to="u-cook"
        )

        result = await engine.run_sweep("r-1", now=now)

        assert [e.task_id for e in result.escalated] == [fresh.task_id]
        assert [(s.task_id, s.reason) for s in result.skipped] == [
            (stale.task_id, "no_matching_rule")
        ]
        assert result.total_processed == 2
        assert (await service.get_task(fresh.task_id, manager)).escalation_level == 1

    async def test_capped_task_does_not_starve_newer(self, engine, service, manager, now):
        capped = await _overdue_task(
            service, manager, now, 300, priority=TaskPriority.CRITICAL, title="Deep clean hood"
        )
        # 已达默认 critical 规则上限，改派后回到 assigned
        await engine.run_sweep("r-1", now=now)
        await engine.run_sweep("r-1", now=now)
        assert (await service.get_task(capped.task_id, manager)).escalation_level == 2

        fresh = await _overdue_task(
            service, manager, now, 45, priority=TaskPriority.CRITICAL, title="Cooler alarm"
        )
        result = await engine.run_sweep("r-1", now=now)

        assert [(s.task_id, s.reason) for s in result.skipped] == [
            (capped.task_id, "max_escalations_reached")
        ]
        assert [e.task_id for e in result.escalated] == [fresh.task_id]

    async def test_escalations_bounded_by_batch_size(self, engine, service, manager, now):
        first = await _overdue_task(service, manager, now, 120, priority=TaskPriority.CRITICAL)
        await _overdue_task(service, manager, now, 60, priority=TaskPriority.CRITICAL)

        result = await engine.run_sweep("r-1", now=now)

        assert [e.task_id for e in result.escalated] == [first.task_id]
        assert result.total_processed == 1


class TestReassignConflict:
    """升级已提交，改派写入遇到并发修改"""

    async def test_escalation_reported_when_reassign_conflicts(
        self, store_group, service, manager, now, monkeypatch
    ):
        lifecycle = TaskLifecycleManager(store_group)
        engine = EscalationEngine(store_group, lifecycle)
        writer = lifecycle.writer
        original_update = writer.update
        calls = 0

        async def update_with_competing_writer(task, expected_version, *args, **kwargs):
            nonlocal calls
            calls += 1
            if calls == 2:
                # 另一个写入者先把任务派给了 manager
                current = await store_group.task_store.get_task(task.task_id)
                await original_update(
                    current.model_copy(
                        update={
                            "status": TaskStatus.ASSIGNED,
                            "assigned_to": "u-manager",
                            "updated_at": now,
                        }
                    ),
                    current.version,
                    EventType.STATE_TRANSITION,
                    "u-manager",
                    {"from_status": "escalated", "to_status": "assigned"},
                )
            return await original_update(task, expected_version, *args, **kwargs)

        monkeypatch.setattr(writer, "update", update_with_competing_writer)

        task = await _overdue_task(
            service, manager, now, 90, priority=TaskPriority.CRITICAL, assigned_to="u-cook"
        )
        result = await engine.run_sweep("r-1", now=now)

        assert result.skipped == []
        assert len(result.escalated) == 1
        escalated = result.escalated[0]
        assert escalated.task_id == task.task_id
        assert escalated.escalation_level == 1
        assert escalated.reassigned_to is None
        assert {i.type for i in result.intents} == {NotificationType.ESCALATION}

        reloaded = await store_group.task_store.get_task(task.task_id)
        assert reloaded.escalation_level == 1
        assert reloaded.assigned_to == "u-manager"
