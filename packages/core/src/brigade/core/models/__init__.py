"""Brigade Core Domain Models -- 公共类型导出

所有公共模型类型从此入口导入。
"""

from .actor import SYSTEM_USER_ID, Actor, StaffMember
from .enums import (
    SUPERVISOR_ROLES,
    TERMINAL_STATES,
    URGENT_NOTIFICATION_TYPES,
    VALID_TRANSITIONS,
    EventType,
    NotificationAction,
    NotificationChannel,
    NotificationType,
    StaffRole,
    TaskPriority,
    TaskStatus,
    TaskType,
    validate_transition,
)
from .escalation import (
    DEFAULT_ESCALATION_RULES,
    EscalatedTask,
    EscalationResult,
    EscalationRule,
    EscalationTarget,
    OverdueMarkResult,
    PendingEscalation,
    SkippedTask,
    SweepError,
    SweepResult,
    find_applicable_rule,
)
from .event import TaskEvent
from .notification import (
    MAX_DELIVERY_RETRIES,
    FrequencyLimits,
    Notification,
    NotificationIntent,
    NotificationPreferences,
    QuietHours,
)
from .outcome import (
    DispatchResult,
    DropRecord,
    NotificationPage,
    RetrySweepResult,
    TransitionOutcome,
)
from .task import DependencyStatus, Task, TaskDraft

__all__ = [
    # 枚举
    "TaskStatus",
    "TaskPriority",
    "TaskType",
    "StaffRole",
    "NotificationType",
    "NotificationChannel",
    "NotificationAction",
    "EventType",
    # 状态机
    "VALID_TRANSITIONS",
    "TERMINAL_STATES",
    "SUPERVISOR_ROLES",
    "URGENT_NOTIFICATION_TYPES",
    "validate_transition",
    # Task
    "Task",
    "TaskDraft",
    "DependencyStatus",
    "TaskEvent",
    # 身份
    "Actor",
    "StaffMember",
    "SYSTEM_USER_ID",
    # Escalation
    "EscalationRule",
    "EscalationTarget",
    "EscalationResult",
    "EscalatedTask",
    "SkippedTask",
    "SweepError",
    "SweepResult",
    "OverdueMarkResult",
    "PendingEscalation",
    "DEFAULT_ESCALATION_RULES",
    "find_applicable_rule",
    # Notification
    "Notification",
    "NotificationIntent",
    "NotificationPreferences",
    "QuietHours",
    "FrequencyLimits",
    "MAX_DELIVERY_RETRIES",
    # 结果
    "TransitionOutcome",
    "DropRecord",
    "DispatchResult",
    "RetrySweepResult",
    "NotificationPage",
]
