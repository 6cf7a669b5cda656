"""EscalationEngine -- 手动升级、超时清扫与升级规则

清扫是纯批处理函数，由外部调度触发（见 brigade.gateway.__main__）。
单个任务失败只记录到结果中，不中断整批处理。
"""

from datetime import UTC, datetime, timedelta

import structlog
from brigade.core.config import ESCALATION_REASON_MAX_LENGTH, get_sweep_batch_size
from brigade.core.exceptions import (
    BrigadeError,
    ConcurrentModification,
    InvalidTransition,
    PermissionDenied,
    ValidationError,
)
from brigade.core.models import (
    DEFAULT_ESCALATION_RULES,
    SUPERVISOR_ROLES,
    TERMINAL_STATES,
    Actor,
    EscalatedTask,
    EscalationResult,
    EscalationRule,
    EscalationTarget,
    EventType,
    NotificationType,
    OverdueMarkResult,
    PendingEscalation,
    SkippedTask,
    StaffRole,
    SweepError,
    SweepResult,
    Task,
    TaskEvent,
    TaskPriority,
    TaskStatus,
    find_applicable_rule,
    validate_transition,
)
from brigade.core.models.payloads import EscalationPayload, ReassignmentPayload
from brigade.core.store import StoreGroup

from .intents import build_intent
from .lifecycle import TaskLifecycleManager

log = structlog.get_logger()

# 清扫不处理的状态
_SWEEP_EXCLUDED: set[TaskStatus] = {
    TaskStatus.COMPLETED,
    TaskStatus.CANCELLED,
    TaskStatus.ESCALATED,
}

# 可被标记为 overdue 的状态
_OVERDUE_SOURCES: set[TaskStatus] = {
    TaskStatus.PENDING,
    TaskStatus.ASSIGNED,
    TaskStatus.IN_PROGRESS,
}


def overdue_minutes(task: Task, now: datetime) -> int:
    """超时分钟数（向下取整）"""
    if task.due_date is None:
        return 0
    return int((now - task.due_date) // timedelta(minutes=1))


class EscalationEngine:
    """升级引擎"""

    def __init__(
        self,
        store_group: StoreGroup,
        lifecycle: TaskLifecycleManager,
        batch_size: int | None = None,
    ) -> None:
        self._stores = store_group
        self._lifecycle = lifecycle
        self._batch_size = batch_size or get_sweep_batch_size()

    # ---- 规则 ----

    async def get_rules(self, restaurant_id: str) -> list[EscalationRule]:
        """餐厅配置的规则；未配置时返回默认规则"""
        rules = await self._stores.restaurant_store.get_escalation_rules(restaurant_id)
        if rules is None:
            return list(DEFAULT_ESCALATION_RULES)
        return rules

    async def set_rules(
        self,
        restaurant_id: str,
        rules: list[EscalationRule],
        actor: Actor,
    ) -> list[EscalationRule]:
        """覆盖餐厅规则（仅 admin）"""
        if actor.role != StaffRole.ADMIN or actor.restaurant_id != restaurant_id:
            raise PermissionDenied("Only administrators can update escalation rules")
        ids = [rule.id for rule in rules]
        if len(set(ids)) != len(ids):
            raise ValidationError("Escalation rule ids must be unique")

        async with self._stores.write_lock:
            try:
                await self._stores.restaurant_store.set_escalation_rules(restaurant_id, rules)
                await self._stores.conn.commit()
            except Exception:
                await self._stores.conn.rollback()
                raise
        log.info(
            "escalation_rules_updated",
            restaurant_id=restaurant_id,
            rule_count=len(rules),
            actor_id=actor.user_id,
        )
        return rules

    # ---- 手动升级 ----

    async def _resolve_targets(self, restaurant_id: str, target: EscalationTarget) -> list[str]:
        if target.user_id:
            member = await self._stores.staff_store.get_staff(target.user_id)
            if member is None or member.restaurant_id != restaurant_id or not member.is_active:
                raise ValidationError(f"Invalid escalation target: {target.user_id}")
            return [member.user_id]

        if target.role is not None:
            members = await self._stores.staff_store.list_active_by_roles(
                restaurant_id, {target.role}
            )
            if not members:
                raise ValidationError(f"No active users found with role: {target.role.value}")
            return [m.user_id for m in members]

        members = await self._stores.staff_store.list_active_by_roles(
            restaurant_id, SUPERVISOR_ROLES
        )
        if not members:
            raise ValidationError("No managers or admins available for escalation")
        return [m.user_id for m in members]

    async def escalate(
        self,
        task_id: str,
        target: EscalationTarget,
        reason: str,
        urgent: bool,
        actor: Actor,
        now: datetime | None = None,
    ) -> EscalationResult:
        """手动升级任务

        Raises:
            ValidationError: reason 长度不合法或目标无效
            NotFound: 任务不存在
            PermissionDenied: 非管理者/负责人/创建人
            InvalidTransition: 任务已在终态
            ConcurrentModification: 写入时任务已被修改
        """
        now = now or datetime.now(UTC)
        reason = reason.strip()
        if not 1 <= len(reason) <= ESCALATION_REASON_MAX_LENGTH:
            raise ValidationError(
                f"reason must be 1..{ESCALATION_REASON_MAX_LENGTH} characters"
            )

        task = await self._lifecycle.get_task(task_id, actor)
        if not (actor.is_supervisor or actor.user_id in (task.assigned_to, task.created_by)):
            raise PermissionDenied(f"User {actor.user_id} cannot escalate task {task_id}")
        if task.status in TERMINAL_STATES:
            raise InvalidTransition(task_id, task.status.value, TaskStatus.ESCALATED.value)

        escalated_to = await self._resolve_targets(task.restaurant_id, target)
        level = task.escalation_level + 1
        metadata = {
            **task.metadata,
            "escalation": {
                "escalated_at": now.isoformat(),
                "escalated_by": actor.user_id,
                "escalation_reason": reason,
                "escalation_level": level,
                "auto_escalated": False,
            },
        }
        updated, _ = await self._lifecycle.writer.update(
            task.model_copy(
                update={
                    "status": TaskStatus.ESCALATED,
                    "priority": TaskPriority.URGENT if urgent else task.priority,
                    "escalation_level": level,
                    "metadata": metadata,
                    "updated_at": now,
                }
            ),
            task.version,
            EventType.TASK_ESCALATED,
            actor.user_id,
            EscalationPayload(
                from_status=task.status,
                escalation_level=level,
                escalated_to=escalated_to,
                reason=reason,
                auto_escalated=False,
                escalate_to_role=target.role,
                urgent=urgent,
            ).model_dump(mode="json"),
        )
        log.info(
            "task_escalated",
            task_id=task_id,
            escalation_level=level,
            target_count=len(escalated_to),
            urgent=urgent,
            actor_id=actor.user_id,
        )

        intents = [
            build_intent(
                user_id,
                updated,
                NotificationType.ESCALATION,
                f"Task has been escalated. Reason: {reason}",
                escalated_by=actor.user_id,
                escalation_reason=reason,
                urgent=urgent,
            )
            for user_id in escalated_to
        ]
        return EscalationResult(
            task=updated,
            escalated_to=escalated_to,
            escalation_level=level,
            intents=intents,
        )

    # ---- 自动清扫 ----

    async def run_sweep(
        self,
        restaurant_id: str,
        rules: list[EscalationRule] | None = None,
        now: datetime | None = None,
    ) -> SweepResult:
        """按规则升级超时任务

        候选任务按 (due_date, task_id) 分页遍历，每个任务在一次清扫中最多处理一次。
        跳过的任务不占额度：升级满 batch_size 个或候选耗尽时结束。
        """
        now = now or datetime.now(UTC)
        if rules is None:
            rules = await self.get_rules(restaurant_id)

        result = SweepResult()
        after: tuple[datetime, str] | None = None
        while len(result.escalated) < self._batch_size:
            page = await self._stores.task_store.list_overdue(
                restaurant_id, now, _SWEEP_EXCLUDED, self._batch_size, after=after
            )
            for task in page:
                if len(result.escalated) >= self._batch_size:
                    break
                await self._sweep_isolated(task, rules, now, result)
            if len(page) < self._batch_size:
                break
            last = page[-1]
            after = (last.due_date, last.task_id)

        log.info(
            "escalation_sweep_completed",
            restaurant_id=restaurant_id,
            total_processed=result.total_processed,
            escalated=len(result.escalated),
            skipped=len(result.skipped),
            errors=len(result.errors),
        )
        return result

    async def _sweep_isolated(
        self,
        task: Task,
        rules: list[EscalationRule],
        now: datetime,
        result: SweepResult,
    ) -> None:
        """处理单个任务；异常记入 result，不向上抛出"""
        result.total_processed += 1
        try:
            await self._sweep_one(task, rules, now, result)
        except ConcurrentModification:
            result.skipped.append(
                SkippedTask(task_id=task.task_id, reason="concurrent_modification")
            )
        except Exception as e:
            log.error(
                "escalation_sweep_task_failed",
                task_id=task.task_id,
                error_type=type(e).__name__,
                error=str(e),
            )
            result.errors.append(
                SweepError(
                    task_id=task.task_id,
                    error_type=type(e).__name__,
                    message=e.message if isinstance(e, BrigadeError) else str(e),
                )
            )

    async def _sweep_one(
        self,
        task: Task,
        rules: list[EscalationRule],
        now: datetime,
        result: SweepResult,
    ) -> None:
        minutes = overdue_minutes(task, now)
        rule = find_applicable_rule(rules, task, minutes)
        if rule is None:
            result.skipped.append(SkippedTask(task_id=task.task_id, reason="no_matching_rule"))
            return
        if task.escalation_level >= rule.max_escalations:
            result.skipped.append(
                SkippedTask(task_id=task.task_id, reason="max_escalations_reached")
            )
            return

        targets = await self._stores.staff_store.list_active_by_roles(
            task.restaurant_id, {rule.escalate_to_role}
        )
        if not targets:
            result.skipped.append(
                SkippedTask(task_id=task.task_id, reason="no_escalation_targets")
            )
            return

        if not validate_transition(task.status, TaskStatus.ESCALATED):
            raise InvalidTransition(task.task_id, task.status.value, TaskStatus.ESCALATED.value)

        system = Actor.system(task.restaurant_id)
        target_ids = [m.user_id for m in targets]
        level = task.escalation_level + 1
        reason = f"Auto-escalated: {minutes} minutes overdue"
        metadata = {
            **task.metadata,
            "escalation": {
                "escalated_at": now.isoformat(),
                "escalation_reason": reason,
                "escalation_level": level,
                "auto_escalated": True,
                "rule_applied": rule.id,
                "overdue_minutes": minutes,
            },
        }
        escalated, _ = await self._lifecycle.writer.update(
            task.model_copy(
                update={
                    "status": TaskStatus.ESCALATED,
                    "escalation_level": level,
                    "metadata": metadata,
                    "updated_at": now,
                }
            ),
            task.version,
            EventType.TASK_ESCALATED,
            system.user_id,
            EscalationPayload(
                from_status=task.status,
                escalation_level=level,
                escalated_to=target_ids,
                reason=reason,
                auto_escalated=True,
                rule_applied=rule.id,
                escalate_to_role=rule.escalate_to_role,
            ).model_dump(mode="json"),
        )
        log.info(
            "task_auto_escalated",
            task_id=task.task_id,
            rule_id=rule.id,
            overdue_minutes=minutes,
            escalation_level=level,
            target_count=len(target_ids),
        )

        for user_id in target_ids:
            for channel in rule.notification_channels:
                result.intents.append(
                    build_intent(
                        user_id,
                        escalated,
                        NotificationType.ESCALATION,
                        f"Task automatically escalated due to being {minutes} minutes overdue",
                        channel=channel,
                        title=f"Auto-escalated task: {task.title}",
                        auto_escalated=True,
                        overdue_minutes=minutes,
                        escalation_rule=rule.id,
                    )
                )

        reassigned_to = None
        if rule.auto_reassign:
            reassigned_to = await self._auto_reassign(
                task, escalated, target_ids[0], rule, now, result
            )

        result.escalated.append(
            EscalatedTask(
                task_id=task.task_id,
                rule_id=rule.id,
                overdue_minutes=minutes,
                escalation_level=level,
                escalated_to=target_ids,
                reassigned_to=reassigned_to,
            )
        )

    async def _auto_reassign(
        self,
        task: Task,
        escalated: Task,
        assignee: str,
        rule: EscalationRule,
        now: datetime,
        result: SweepResult,
    ) -> str | None:
        """升级后的第二次写入：改派给第一个目标

        升级已提交；这里的版本冲突只放弃改派，任务保持 escalated。
        """
        system = Actor.system(task.restaurant_id)
        try:
            reassigned, _ = await self._lifecycle.writer.update(
                escalated.model_copy(
                    update={
                        "status": TaskStatus.ASSIGNED,
                        "assigned_to": assignee,
                        "assigned_at": now,
                        "updated_at": now,
                    }
                ),
                escalated.version,
                EventType.TASK_REASSIGNED,
                system.user_id,
                ReassignmentPayload(
                    previous_assignee=task.assigned_to,
                    new_assignee=assignee,
                    rule_applied=rule.id,
                ).model_dump(mode="json"),
            )
        except ConcurrentModification:
            log.warning(
                "auto_reassign_skipped",
                task_id=task.task_id,
                rule_id=rule.id,
                reason="concurrent_modification",
            )
            return None

        log.info(
            "task_auto_reassigned",
            task_id=task.task_id,
            previous_assignee=task.assigned_to,
            new_assignee=assignee,
        )
        result.intents.append(
            build_intent(
                assignee,
                reassigned,
                NotificationType.TASK_ASSIGNED,
                f"Task reassigned to you after escalation: {task.title}",
                rule_applied=rule.id,
            )
        )
        return assignee

    # ---- 超时标记与查询 ----

    async def mark_overdue(
        self,
        restaurant_id: str,
        now: datetime | None = None,
    ) -> OverdueMarkResult:
        """把已过截止时间的 pending/assigned/in_progress 任务标记为 overdue"""
        now = now or datetime.now(UTC)
        excluded = {status for status in TaskStatus} - _OVERDUE_SOURCES
        tasks = await self._stores.task_store.list_overdue(
            restaurant_id, now, excluded, self._batch_size
        )
        system = Actor.system(restaurant_id)
        result = OverdueMarkResult()

        for task in tasks:
            try:
                outcome = await self._lifecycle.transition(
                    task.task_id,
                    TaskStatus.OVERDUE,
                    system,
                    task.version,
                    reason=f"{overdue_minutes(task, now)} minutes past due",
                    now=now,
                )
            except ConcurrentModification:
                result.skipped.append(
                    SkippedTask(task_id=task.task_id, reason="concurrent_modification")
                )
                continue
            except Exception as e:
                log.error(
                    "mark_overdue_task_failed",
                    task_id=task.task_id,
                    error_type=type(e).__name__,
                    error=str(e),
                )
                result.errors.append(
                    SweepError(
                        task_id=task.task_id,
                        error_type=type(e).__name__,
                        message=e.message if isinstance(e, BrigadeError) else str(e),
                    )
                )
                continue
            result.marked.append(task.task_id)
            result.intents.extend(outcome.intents)

        log.info(
            "mark_overdue_completed",
            restaurant_id=restaurant_id,
            marked=len(result.marked),
            errors=len(result.errors),
        )
        return result

    async def pending_escalations(
        self,
        restaurant_id: str,
        rules: list[EscalationRule] | None = None,
        now: datetime | None = None,
        assigned_to: str | None = None,
    ) -> list[PendingEscalation]:
        """只读预览：超时任务及其命中的规则"""
        now = now or datetime.now(UTC)
        if rules is None:
            rules = await self.get_rules(restaurant_id)
        tasks = await self._stores.task_store.list_overdue(
            restaurant_id,
            now,
            {TaskStatus.COMPLETED, TaskStatus.CANCELLED},
            self._batch_size,
        )

        pending: list[PendingEscalation] = []
        for task in tasks:
            if assigned_to is not None and task.assigned_to != assigned_to:
                continue
            minutes = overdue_minutes(task, now)
            rule = find_applicable_rule(rules, task, minutes)
            pending.append(
                PendingEscalation(
                    task_id=task.task_id,
                    title=task.title,
                    status=task.status.value,
                    priority=task.priority.value,
                    overdue_minutes=minutes,
                    escalation_level=task.escalation_level,
                    rule_id=rule.id if rule else None,
                    requires_escalation=(
                        rule is not None
                        and task.status != TaskStatus.ESCALATED
                        and task.escalation_level < rule.max_escalations
                    ),
                )
            )
        return pending

    async def escalation_history(self, task_id: str, actor: Actor) -> list[TaskEvent]:
        """任务的升级与改派事件，按 task_seq 正序"""
        await self._lifecycle.get_task(task_id, actor)
        events = await self._stores.event_store.get_events_for_task(task_id)
        return [
            e for e in events if e.type in (EventType.TASK_ESCALATED, EventType.TASK_REASSIGNED)
        ]

