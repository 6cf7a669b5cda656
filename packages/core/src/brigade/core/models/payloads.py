"""Task Event Payload 子类型"""

from pydantic import BaseModel, Field

from .enums import StaffRole, TaskPriority, TaskStatus


class TaskCreatedPayload(BaseModel):
    """TASK_CREATED 事件 payload"""

    title: str
    status: TaskStatus
    priority: TaskPriority
    assigned_to: str | None = None
    dependencies: list[str] = Field(default_factory=list)


class StateTransitionPayload(BaseModel):
    """STATE_TRANSITION 事件 payload"""

    from_status: TaskStatus
    to_status: TaskStatus
    version: int = Field(description="写入后的版本号")
    reason: str = Field(default="")


class DependenciesUpdatedPayload(BaseModel):
    """DEPENDENCIES_UPDATED 事件 payload"""

    previous: list[str]
    current: list[str]
    from_status: TaskStatus
    to_status: TaskStatus = Field(description="依赖变化可能导致 blocked <-> pending")


class EscalationPayload(BaseModel):
    """TASK_ESCALATED 事件 payload"""

    from_status: TaskStatus
    escalation_level: int
    escalated_to: list[str]
    reason: str
    auto_escalated: bool = Field(default=False)
    rule_applied: str | None = Field(default=None)
    escalate_to_role: StaffRole | None = Field(default=None)
    urgent: bool = Field(default=False)


class ReassignmentPayload(BaseModel):
    """TASK_REASSIGNED 事件 payload"""

    previous_assignee: str | None
    new_assignee: str
    rule_applied: str | None = Field(default=None)


class DependencyUnblockedPayload(BaseModel):
    """DEPENDENCY_UNBLOCKED 事件 payload"""

    triggered_by: str = Field(description="触发解锁的已完成任务 ID")
    dependencies: list[str]
