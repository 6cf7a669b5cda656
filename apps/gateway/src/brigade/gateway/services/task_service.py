"""TaskService -- 任务操作引擎的对外入口

组合 TaskLifecycleManager / EscalationEngine / NotificationDispatcher：
变更类操作产生的通知意图默认立即交给 dispatcher 派发。
HTTP 路由与清扫 CLI 都只通过本类调用引擎。
"""

from datetime import datetime

import structlog
from brigade.channels import ChannelRouter, EchoChannelAdapter
from brigade.core.models import (
    Actor,
    DependencyStatus,
    DispatchResult,
    EscalationResult,
    EscalationRule,
    EscalationTarget,
    NotificationAction,
    NotificationChannel,
    NotificationIntent,
    NotificationPage,
    NotificationType,
    OverdueMarkResult,
    PendingEscalation,
    RetrySweepResult,
    SweepResult,
    Task,
    TaskDraft,
    TaskEvent,
    TaskStatus,
    TransitionOutcome,
)
from brigade.core.store import StoreGroup

from .escalation_engine import EscalationEngine
from .lifecycle import TaskLifecycleManager
from .notification_dispatcher import NotificationDispatcher

log = structlog.get_logger()


class TaskService:
    """任务业务服务"""

    def __init__(
        self,
        store_group: StoreGroup,
        channel_router: ChannelRouter | None = None,
        auto_dispatch: bool = True,
    ) -> None:
        """
        Args:
            store_group: Store 实例组
            channel_router: 外部渠道路由器，None 时使用 echo 后端
            auto_dispatch: 变更操作后是否立即派发通知意图
        """
        self._stores = store_group
        self._lifecycle = TaskLifecycleManager(store_group)
        self._escalation = EscalationEngine(store_group, self._lifecycle)
        self._dispatcher = NotificationDispatcher(
            store_group,
            channel_router or ChannelRouter(default=EchoChannelAdapter()),
        )
        self._auto_dispatch = auto_dispatch

    async def _dispatch(
        self, intents: list[NotificationIntent], now: datetime | None
    ) -> DispatchResult | None:
        if not self._auto_dispatch or not intents:
            return None
        result = await self._dispatcher.dispatch(intents, now)
        log.debug("intents_auto_dispatched", intent_count=len(intents), sent=result.sent)
        return result

    # ---- 生命周期 ----

    async def create_task(
        self,
        draft: TaskDraft,
        actor: Actor,
        now: datetime | None = None,
    ) -> TransitionOutcome:
        outcome = await self._lifecycle.create_task(draft, actor, now)
        await self._dispatch(outcome.intents, now)
        return outcome

    async def get_task(self, task_id: str, actor: Actor) -> Task:
        return await self._lifecycle.get_task(task_id, actor)

    async def get_task_events(self, task_id: str, actor: Actor) -> list[TaskEvent]:
        """任务审计事件（按 task_seq 正序）"""
        await self._lifecycle.get_task(task_id, actor)
        return await self._stores.event_store.get_events_for_task(task_id)

    async def list_tasks(
        self,
        actor: Actor,
        status: str | None = None,
        assigned_to: str | None = None,
    ) -> list[Task]:
        return await self._stores.task_store.list_tasks(actor.restaurant_id, status, assigned_to)

    async def transition_task(
        self,
        task_id: str,
        new_status: TaskStatus,
        actor: Actor,
        expected_version: int,
        assign_to: str | None = None,
        actual_duration_minutes: int | None = None,
        reason: str = "",
        now: datetime | None = None,
    ) -> TransitionOutcome:
        outcome = await self._lifecycle.transition(
            task_id,
            new_status,
            actor,
            expected_version,
            assign_to=assign_to,
            actual_duration_minutes=actual_duration_minutes,
            reason=reason,
            now=now,
        )
        await self._dispatch(outcome.intents, now)
        return outcome

    async def update_dependencies(
        self,
        task_id: str,
        dependencies: list[str],
        actor: Actor,
        expected_version: int,
        now: datetime | None = None,
    ) -> TransitionOutcome:
        return await self._lifecycle.update_dependencies(
            task_id, dependencies, actor, expected_version, now
        )

    async def dependency_status(self, task_id: str, actor: Actor) -> DependencyStatus:
        return await self._lifecycle.dependency_status(task_id, actor)

    # ---- 升级 ----

    async def escalate_manually(
        self,
        task_id: str,
        target: EscalationTarget,
        reason: str,
        urgent: bool,
        actor: Actor,
        now: datetime | None = None,
    ) -> EscalationResult:
        result = await self._escalation.escalate(task_id, target, reason, urgent, actor, now)
        await self._dispatch(result.intents, now)
        return result

    async def run_escalation_sweep(
        self,
        restaurant_id: str,
        now: datetime | None = None,
    ) -> SweepResult:
        result = await self._escalation.run_sweep(restaurant_id, now=now)
        await self._dispatch(result.intents, now)
        return result

    async def mark_overdue(
        self,
        restaurant_id: str,
        now: datetime | None = None,
    ) -> OverdueMarkResult:
        result = await self._escalation.mark_overdue(restaurant_id, now)
        await self._dispatch(result.intents, now)
        return result

    async def pending_escalations(
        self,
        actor: Actor,
        now: datetime | None = None,
    ) -> list[PendingEscalation]:
        """员工只能看到分配给自己的超时任务"""
        assigned_to = None if actor.is_supervisor else actor.user_id
        return await self._escalation.pending_escalations(
            actor.restaurant_id, now=now, assigned_to=assigned_to
        )

    async def escalation_history(self, task_id: str, actor: Actor) -> list[TaskEvent]:
        return await self._escalation.escalation_history(task_id, actor)

    async def get_escalation_rules(self, restaurant_id: str) -> list[EscalationRule]:
        return await self._escalation.get_rules(restaurant_id)

    async def set_escalation_rules(
        self,
        restaurant_id: str,
        rules: list[EscalationRule],
        actor: Actor,
    ) -> list[EscalationRule]:
        return await self._escalation.set_rules(restaurant_id, rules, actor)

    # ---- 通知 ----

    async def run_notification_dispatch(
        self,
        intents: list[NotificationIntent],
        now: datetime | None = None,
    ) -> DispatchResult:
        return await self._dispatcher.dispatch(intents, now)

    async def run_notification_retry_sweep(
        self,
        restaurant_id: str,
        now: datetime | None = None,
    ) -> RetrySweepResult:
        return await self._dispatcher.retry_sweep(restaurant_id, now)

    async def mark_notifications(
        self,
        actor: Actor,
        notification_ids: list[str],
        action: NotificationAction,
        now: datetime | None = None,
    ) -> int:
        return await self._dispatcher.mark_notifications(actor, notification_ids, action, now)

    async def list_notifications(
        self,
        actor: Actor,
        unread_only: bool = False,
        channel: NotificationChannel | None = None,
        notification_type: NotificationType | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> NotificationPage:
        return await self._dispatcher.list_notifications(
            actor,
            unread_only=unread_only,
            channel=channel,
            notification_type=notification_type,
            limit=limit,
            offset=offset,
        )
