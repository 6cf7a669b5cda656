"""DependencyResolver -- 任务完成后解锁下游任务

不缓存依赖状态：每个候选任务都在评估时重新读取其全部依赖。
解锁通过 TaskLifecycleManager 以系统身份执行 blocked -> pending，
版本冲突说明其他完成事件已处理过该任务，直接跳过。
"""

from typing import TYPE_CHECKING

import structlog
from brigade.core.exceptions import ConcurrentModification, InvalidTransition
from brigade.core.models import (
    Actor,
    EventType,
    NotificationIntent,
    NotificationType,
    Task,
    TaskStatus,
)
from brigade.core.models.payloads import DependencyUnblockedPayload
from brigade.core.store import StoreGroup

from .intents import build_intent

if TYPE_CHECKING:
    from .lifecycle import TaskLifecycleManager

log = structlog.get_logger()


class DependencyResolver:
    """依赖解析器"""

    def __init__(self, store_group: StoreGroup, lifecycle: "TaskLifecycleManager") -> None:
        self._stores = store_group
        self._lifecycle = lifecycle

    async def on_task_completed(
        self, completed: Task
    ) -> tuple[list[str], list[NotificationIntent]]:
        """处理 completed 任务的下游

        Returns:
            (解锁的任务 ID 列表, dependency_ready 通知意图)
        """
        candidates = await self._stores.task_store.list_blocked_dependents(
            completed.restaurant_id, completed.task_id
        )
        system = Actor.system(completed.restaurant_id)
        unblocked: list[str] = []
        intents: list[NotificationIntent] = []

        for candidate in candidates:
            deps = await self._stores.task_store.get_tasks(candidate.dependencies)
            unresolved = [
                dep
                for dep in candidate.dependencies
                if dep not in deps or deps[dep].status != TaskStatus.COMPLETED
            ]
            if unresolved:
                log.info(
                    "dependent_still_blocked",
                    task_id=candidate.task_id,
                    triggered_by=completed.task_id,
                    unresolved_count=len(unresolved),
                )
                continue

            try:
                outcome = await self._lifecycle.transition(
                    candidate.task_id,
                    TaskStatus.PENDING,
                    system,
                    candidate.version,
                    reason=f"dependencies completed (triggered by {completed.task_id})",
                )
            except (ConcurrentModification, InvalidTransition) as e:
                # 其他完成事件已经解锁（或任务已被改动）
                log.info(
                    "dependent_unblock_skipped",
                    task_id=candidate.task_id,
                    triggered_by=completed.task_id,
                    error_type=type(e).__name__,
                )
                continue

            await self._lifecycle.writer.append(
                candidate.task_id,
                EventType.DEPENDENCY_UNBLOCKED,
                system.user_id,
                DependencyUnblockedPayload(
                    triggered_by=completed.task_id,
                    dependencies=candidate.dependencies,
                ).model_dump(mode="json"),
            )
            unblocked.append(candidate.task_id)
            task = outcome.task
            log.info(
                "dependent_unblocked",
                task_id=task.task_id,
                triggered_by=completed.task_id,
            )
            if task.assigned_to:
                intents.append(
                    build_intent(
                        task.assigned_to,
                        task,
                        NotificationType.DEPENDENCY_READY,
                        f"All dependencies of '{task.title}' are completed",
                        triggered_by=completed.task_id,
                    )
                )

        return unblocked, intents
