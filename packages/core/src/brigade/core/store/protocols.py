"""Store Protocol 接口定义

使用 Python Protocol 实现结构化子类型（duck typing），
引擎只依赖这些接口，SQLite 实现只是其中一种。
"""

from datetime import datetime
from typing import Protocol

from ..models.actor import StaffMember
from ..models.enums import EventType, StaffRole, TaskStatus
from ..models.escalation import EscalationRule
from ..models.event import TaskEvent
from ..models.notification import Notification
from ..models.task import Task


class TaskStore(Protocol):
    """Task 存储接口"""

    async def create_task(self, task: Task) -> None:
        """创建任务记录"""
        ...

    async def get_task(self, task_id: str) -> Task | None:
        """根据 task_id 查询任务"""
        ...

    async def get_tasks(self, task_ids: list[str]) -> dict[str, Task]:
        """批量查询任务"""
        ...

    async def list_blocked_dependents(self, restaurant_id: str, task_id: str) -> list[Task]:
        """查询依赖 task_id 且处于 blocked 的任务"""
        ...

    async def list_overdue(
        self,
        restaurant_id: str,
        now: datetime,
        exclude_statuses: set[TaskStatus],
        limit: int,
        after: tuple[datetime, str] | None = None,
    ) -> list[Task]:
        """查询已过截止时间的任务"""
        ...

    async def update_task(self, task: Task, expected_version: int) -> bool:
        """以版本号为前置条件的条件写入"""
        ...


class EventStore(Protocol):
    """TaskEvent 存储接口

    事件表 append-only：只允许插入，不允许更新或删除。
    """

    async def append_event(self, event: TaskEvent) -> None:
        """追加事件（append-only）"""
        ...

    async def get_events_for_task(
        self,
        task_id: str,
        event_type: EventType | None = None,
    ) -> list[TaskEvent]:
        """查询指定任务的事件"""
        ...

    async def get_next_task_seq(self, task_id: str) -> int:
        """获取指定任务的下一个 task_seq（MAX+1）"""
        ...


class NotificationStore(Protocol):
    """Notification 存储接口"""

    async def create_notification(self, notification: Notification) -> None: ...

    async def mark_sent(
        self,
        notification_id: str,
        sent_at: datetime,
        delivered_at: datetime | None = None,
    ) -> None: ...

    async def record_failure(
        self,
        notification_id: str,
        failed_at: datetime,
        reason: str,
    ) -> int | None: ...

    async def list_due_for_retry(
        self,
        restaurant_id: str,
        now: datetime,
        limit: int,
    ) -> list[Notification]: ...

    async def count_created_since(self, user_id: str, since: datetime) -> int: ...


class StaffStore(Protocol):
    """员工目录接口"""

    async def get_staff(self, user_id: str) -> StaffMember | None: ...

    async def get_staff_many(self, user_ids: list[str]) -> dict[str, StaffMember]: ...

    async def list_active_by_roles(
        self,
        restaurant_id: str,
        roles: set[StaffRole],
    ) -> list[StaffMember]: ...


class RestaurantStore(Protocol):
    """餐厅设置接口"""

    async def get_escalation_rules(self, restaurant_id: str) -> list[EscalationRule] | None: ...

    async def set_escalation_rules(
        self,
        restaurant_id: str,
        rules: list[EscalationRule],
    ) -> None: ...
