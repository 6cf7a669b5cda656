"""TaskLifecycleManager -- 任务创建、状态流转与依赖编辑

流转检查顺序：
1. 任务不存在或不在操作者餐厅 -> NotFound
2. 操作者不是负责人/创建人/管理者/系统 -> PermissionDenied
3. 状态机不允许 -> InvalidTransition
4. 参数不合法 -> ValidationError
5. 版本号不匹配 -> ConcurrentModification

任务完成时在同一调用内触发 DependencyResolver。
"""

from datetime import UTC, datetime

import structlog
from brigade.core.config import get_dependency_max_depth
from brigade.core.exceptions import (
    ConcurrentModification,
    InvalidTransition,
    NotFound,
    PermissionDenied,
    ValidationError,
)
from brigade.core.graph import validate_dependencies
from brigade.core.models import (
    TERMINAL_STATES,
    Actor,
    DependencyStatus,
    EventType,
    NotificationType,
    Task,
    TaskDraft,
    TaskStatus,
    TransitionOutcome,
    validate_transition,
)
from brigade.core.models.payloads import (
    DependenciesUpdatedPayload,
    StateTransitionPayload,
    TaskCreatedPayload,
)
from brigade.core.store import StoreGroup
from ulid import ULID

from .dependency_resolver import DependencyResolver
from .intents import build_intent, transition_intents
from .task_writer import TaskWriter

log = structlog.get_logger()


class TaskLifecycleManager:
    """任务生命周期管理"""

    def __init__(self, store_group: StoreGroup, max_depth: int | None = None) -> None:
        self._stores = store_group
        self._writer = TaskWriter(store_group)
        self._max_depth = max_depth or get_dependency_max_depth()
        self._resolver = DependencyResolver(store_group, self)

    @property
    def writer(self) -> TaskWriter:
        return self._writer

    async def get_task(self, task_id: str, actor: Actor) -> Task:
        """按操作者餐厅作用域读取任务

        Raises:
            NotFound: 任务不存在或属于其他餐厅
        """
        task = await self._stores.task_store.get_task(task_id)
        if task is None or (not actor.is_system and task.restaurant_id != actor.restaurant_id):
            raise NotFound(f"Task {task_id} not found")
        return task

    @staticmethod
    def _check_can_modify(task: Task, actor: Actor) -> None:
        if actor.is_supervisor or actor.user_id in (task.assigned_to, task.created_by):
            return
        raise PermissionDenied(f"User {actor.user_id} cannot modify task {task.task_id}")

    async def _check_assignee(self, restaurant_id: str, assignee: str, actor: Actor) -> None:
        """只有管理者可以把任务分配给他人；被分配人必须是本餐厅在职员工"""
        if assignee != actor.user_id and not actor.is_supervisor:
            raise PermissionDenied(f"User {actor.user_id} cannot assign tasks to others")
        member = await self._stores.staff_store.get_staff(assignee)
        if member is None or member.restaurant_id != restaurant_id or not member.is_active:
            raise ValidationError(f"Assignee {assignee} is not active staff of this restaurant")

    async def _unresolved(self, dependencies: list[str]) -> list[str]:
        """未完成（或已不存在）的依赖"""
        found = await self._stores.task_store.get_tasks(dependencies)
        return [
            dep
            for dep in dependencies
            if dep not in found or found[dep].status != TaskStatus.COMPLETED
        ]

    async def create_task(
        self,
        draft: TaskDraft,
        actor: Actor,
        now: datetime | None = None,
    ) -> TransitionOutcome:
        """创建任务

        初始状态：有未完成依赖 -> blocked；否则有负责人 -> assigned；否则 pending。
        """
        now = now or datetime.now(UTC)
        if not actor.is_system and draft.restaurant_id != actor.restaurant_id:
            raise PermissionDenied(
                f"User {actor.user_id} cannot create tasks for restaurant {draft.restaurant_id}"
            )
        if draft.assigned_to:
            await self._check_assignee(draft.restaurant_id, draft.assigned_to, actor)

        await validate_dependencies(
            None,
            draft.restaurant_id,
            draft.dependencies,
            self._stores.task_store.get_tasks,
            self._max_depth,
        )

        if await self._unresolved(draft.dependencies):
            status = TaskStatus.BLOCKED
        elif draft.assigned_to:
            status = TaskStatus.ASSIGNED
        else:
            status = TaskStatus.PENDING

        task = Task(
            task_id=str(ULID()),
            restaurant_id=draft.restaurant_id,
            title=draft.title,
            description=draft.description,
            status=status,
            priority=draft.priority,
            task_type=draft.task_type,
            due_date=draft.due_date,
            scheduled_for=draft.scheduled_for,
            assigned_to=draft.assigned_to,
            assigned_at=now if draft.assigned_to else None,
            created_by=actor.user_id,
            dependencies=draft.dependencies,
            estimated_duration_minutes=draft.estimated_duration_minutes,
            metadata=draft.metadata,
            created_at=now,
            updated_at=now,
        )
        await self._writer.create(
            task,
            actor.user_id,
            TaskCreatedPayload(
                title=task.title,
                status=task.status,
                priority=task.priority,
                assigned_to=task.assigned_to,
                dependencies=task.dependencies,
            ).model_dump(mode="json"),
        )
        log.info(
            "task_created",
            task_id=task.task_id,
            restaurant_id=task.restaurant_id,
            status=task.status,
            dependency_count=len(task.dependencies),
        )

        intents = []
        if task.assigned_to and task.assigned_to != actor.user_id:
            intents.append(
                build_intent(
                    task.assigned_to,
                    task,
                    NotificationType.TASK_ASSIGNED,
                    f"You have been assigned: {task.title}",
                )
            )
        return TransitionOutcome(task=task, intents=intents)

    async def transition(
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
        """状态流转

        Raises:
            NotFound / PermissionDenied / InvalidTransition / ValidationError /
            ConcurrentModification
        """
        now = now or datetime.now(UTC)
        task = await self.get_task(task_id, actor)
        self._check_can_modify(task, actor)

        if not validate_transition(task.status, new_status):
            raise InvalidTransition(task_id, task.status.value, new_status.value)

        if new_status == TaskStatus.ASSIGNED and not (assign_to or task.assigned_to):
            raise ValidationError(f"Task {task_id} has no assignee")
        if actual_duration_minutes is not None and actual_duration_minutes <= 0:
            raise ValidationError("actual_duration_minutes must be a positive integer")
        if assign_to and assign_to != task.assigned_to:
            await self._check_assignee(task.restaurant_id, assign_to, actor)

        if expected_version != task.version:
            raise ConcurrentModification(task_id, expected_version)

        updates: dict = {"status": new_status, "updated_at": now}
        if new_status == TaskStatus.IN_PROGRESS and task.started_at is None:
            updates["started_at"] = now
        elif new_status == TaskStatus.COMPLETED:
            updates["completed_at"] = now
            if actual_duration_minutes is None and task.started_at is not None:
                actual_duration_minutes = int((now - task.started_at).total_seconds() // 60)
            updates["actual_duration_minutes"] = actual_duration_minutes
        elif new_status == TaskStatus.CANCELLED:
            updates["cancelled_at"] = now
        elif new_status == TaskStatus.ASSIGNED and assign_to:
            updates["assigned_to"] = assign_to
            updates["assigned_at"] = now

        updated, _ = await self._writer.update(
            task.model_copy(update=updates),
            expected_version,
            EventType.STATE_TRANSITION,
            actor.user_id,
            StateTransitionPayload(
                from_status=task.status,
                to_status=new_status,
                version=expected_version + 1,
                reason=reason,
            ).model_dump(mode="json"),
        )
        log.info(
            "task_transitioned",
            task_id=task_id,
            from_status=task.status,
            to_status=new_status,
            version=updated.version,
            actor_id=actor.user_id,
        )

        outcome = TransitionOutcome(task=updated, intents=transition_intents(updated, actor.user_id))
        if new_status == TaskStatus.COMPLETED:
            unblocked, intents = await self._resolver.on_task_completed(updated)
            outcome.unblocked.extend(unblocked)
            outcome.intents.extend(intents)
        return outcome

    async def update_dependencies(
        self,
        task_id: str,
        dependencies: list[str],
        actor: Actor,
        expected_version: int,
        now: datetime | None = None,
    ) -> TransitionOutcome:
        """替换依赖列表

        pending/assigned 任务出现未完成依赖时转为 blocked；
        blocked 任务的依赖全部完成时转为 pending。
        """
        now = now or datetime.now(UTC)
        task = await self.get_task(task_id, actor)
        self._check_can_modify(task, actor)
        if task.status in TERMINAL_STATES:
            raise ValidationError(f"Task {task_id} is {task.status.value}; dependencies are frozen")

        dependencies = list(dict.fromkeys(dependencies))
        await validate_dependencies(
            task_id,
            task.restaurant_id,
            dependencies,
            self._stores.task_store.get_tasks,
            self._max_depth,
        )
        if expected_version != task.version:
            raise ConcurrentModification(task_id, expected_version)

        unresolved = await self._unresolved(dependencies)
        status = task.status
        if unresolved and task.status in (TaskStatus.PENDING, TaskStatus.ASSIGNED):
            status = TaskStatus.BLOCKED
        elif not unresolved and task.status == TaskStatus.BLOCKED:
            status = TaskStatus.PENDING

        updated, _ = await self._writer.update(
            task.model_copy(
                update={"dependencies": dependencies, "status": status, "updated_at": now}
            ),
            expected_version,
            EventType.DEPENDENCIES_UPDATED,
            actor.user_id,
            DependenciesUpdatedPayload(
                previous=task.dependencies,
                current=dependencies,
                from_status=task.status,
                to_status=status,
            ).model_dump(mode="json"),
        )
        log.info(
            "task_dependencies_updated",
            task_id=task_id,
            dependency_count=len(dependencies),
            unresolved_count=len(unresolved),
            from_status=task.status,
            to_status=status,
        )
        return TransitionOutcome(task=updated)

    async def dependency_status(self, task_id: str, actor: Actor) -> DependencyStatus:
        """依赖解析状态（环或缺失任务也如实反映为未完成）"""
        task = await self.get_task(task_id, actor)
        found = await self._stores.task_store.get_tasks(task.dependencies)
        completed: list[str] = []
        unresolved: list[str] = []
        missing: list[str] = []
        for dep in task.dependencies:
            dep_task = found.get(dep)
            if dep_task is None:
                missing.append(dep)
            elif dep_task.status == TaskStatus.COMPLETED:
                completed.append(dep)
            else:
                unresolved.append(dep)
        return DependencyStatus(
            task_id=task_id,
            total=len(task.dependencies),
            completed=completed,
            unresolved=unresolved,
            missing=missing,
        )
