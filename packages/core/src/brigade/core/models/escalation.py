"""Escalation Rule 与升级结果模型

规则按餐厅配置保存，引擎只读取；匹配采用有序列表的首个命中。
"""

from pydantic import BaseModel, Field

from .enums import NotificationChannel, StaffRole, TaskPriority, TaskType
from .notification import NotificationIntent
from .task import Task


class EscalationRule(BaseModel):
    """升级规则"""

    id: str = Field(description="规则标识")
    task_type: TaskType | None = Field(default=None, description="为空匹配所有类型")
    priority: TaskPriority | None = Field(default=None, description="为空匹配所有优先级")
    overdue_minutes: int = Field(gt=0, description="超时阈值（分钟）")
    escalate_to_role: StaffRole
    notification_channels: list[NotificationChannel] = Field(min_length=1)
    auto_reassign: bool = Field(default=False)
    max_escalations: int = Field(default=3, ge=1, le=5)

    def matches(self, task: Task, overdue_minutes: int) -> bool:
        """任务是否命中本规则"""
        if self.task_type is not None and self.task_type != task.task_type:
            return False
        if self.priority is not None and self.priority != task.priority:
            return False
        return overdue_minutes >= self.overdue_minutes


# 餐厅未配置规则时使用
DEFAULT_ESCALATION_RULES: list[EscalationRule] = [
    EscalationRule(
        id="default-high",
        priority=TaskPriority.HIGH,
        overdue_minutes=60,
        escalate_to_role=StaffRole.MANAGER,
        notification_channels=[NotificationChannel.IN_APP, NotificationChannel.EMAIL],
        auto_reassign=False,
        max_escalations=3,
    ),
    EscalationRule(
        id="default-critical",
        priority=TaskPriority.CRITICAL,
        overdue_minutes=30,
        escalate_to_role=StaffRole.ADMIN,
        notification_channels=[
            NotificationChannel.IN_APP,
            NotificationChannel.EMAIL,
            NotificationChannel.SMS,
        ],
        auto_reassign=True,
        max_escalations=2,
    ),
]


def find_applicable_rule(
    rules: list[EscalationRule],
    task: Task,
    overdue_minutes: int,
) -> EscalationRule | None:
    """按顺序返回第一条命中的规则"""
    for rule in rules:
        if rule.matches(task, overdue_minutes):
            return rule
    return None


class EscalationTarget(BaseModel):
    """手动升级目标：指定用户或角色，二者都为空时升级到全部管理者"""

    user_id: str | None = Field(default=None)
    role: StaffRole | None = Field(default=None)


class EscalationResult(BaseModel):
    """手动升级结果"""

    task: Task
    escalated_to: list[str]
    escalation_level: int
    intents: list[NotificationIntent] = Field(default_factory=list)


class EscalatedTask(BaseModel):
    """自动清扫中成功升级的任务"""

    task_id: str
    rule_id: str
    overdue_minutes: int
    escalation_level: int
    escalated_to: list[str]
    reassigned_to: str | None = Field(default=None)


class SkippedTask(BaseModel):
    task_id: str
    reason: str


class SweepError(BaseModel):
    task_id: str
    error_type: str
    message: str


class SweepResult(BaseModel):
    """批量清扫结果：成功与失败同时汇报，不因单个任务失败而中断"""

    escalated: list[EscalatedTask] = Field(default_factory=list)
    skipped: list[SkippedTask] = Field(default_factory=list)
    errors: list[SweepError] = Field(default_factory=list)
    total_processed: int = Field(default=0)
    intents: list[NotificationIntent] = Field(default_factory=list)


class OverdueMarkResult(BaseModel):
    """超时标记结果"""

    marked: list[str] = Field(default_factory=list)
    skipped: list[SkippedTask] = Field(default_factory=list)
    errors: list[SweepError] = Field(default_factory=list)
    intents: list[NotificationIntent] = Field(default_factory=list)


class PendingEscalation(BaseModel):
    """待升级任务预览"""

    task_id: str
    title: str
    status: str
    priority: str
    overdue_minutes: int
    escalation_level: int
    rule_id: str | None = Field(default=None)
    requires_escalation: bool = Field(default=False)
