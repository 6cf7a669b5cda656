"""枚举定义

包含 TaskStatus 状态机、优先级、任务类型、角色、通知类型与渠道枚举，
以及 VALID_TRANSITIONS 合法流转映射和 TERMINAL_STATES 终态集合。
"""

from enum import StrEnum


class TaskStatus(StrEnum):
    """Task 状态机"""

    # 主线
    PENDING = "pending"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"

    # 旁支（非终态，可重入）
    BLOCKED = "blocked"
    OVERDUE = "overdue"
    ESCALATED = "escalated"

    # 终态
    CANCELLED = "cancelled"


# 合法状态流转；任意非终态均可取消
VALID_TRANSITIONS: dict[TaskStatus, set[TaskStatus]] = {
    TaskStatus.PENDING: {
        TaskStatus.ASSIGNED,
        TaskStatus.IN_PROGRESS,
        TaskStatus.BLOCKED,
        TaskStatus.OVERDUE,
        TaskStatus.ESCALATED,
        TaskStatus.CANCELLED,
    },
    TaskStatus.ASSIGNED: {
        TaskStatus.PENDING,
        TaskStatus.IN_PROGRESS,
        TaskStatus.BLOCKED,
        TaskStatus.COMPLETED,
        TaskStatus.OVERDUE,
        TaskStatus.ESCALATED,
        TaskStatus.CANCELLED,
    },
    TaskStatus.IN_PROGRESS: {
        TaskStatus.ASSIGNED,
        TaskStatus.BLOCKED,
        TaskStatus.COMPLETED,
        TaskStatus.OVERDUE,
        TaskStatus.ESCALATED,
        TaskStatus.CANCELLED,
    },
    # blocked 只能由依赖解锁回到 pending
    TaskStatus.BLOCKED: {
        TaskStatus.PENDING,
        TaskStatus.OVERDUE,
        TaskStatus.ESCALATED,
        TaskStatus.CANCELLED,
    },
    TaskStatus.OVERDUE: {
        TaskStatus.ASSIGNED,
        TaskStatus.IN_PROGRESS,
        TaskStatus.BLOCKED,
        TaskStatus.COMPLETED,
        TaskStatus.ESCALATED,
        TaskStatus.CANCELLED,
    },
    # escalated -> escalated: 手动再次升级
    TaskStatus.ESCALATED: {
        TaskStatus.ASSIGNED,
        TaskStatus.IN_PROGRESS,
        TaskStatus.BLOCKED,
        TaskStatus.COMPLETED,
        TaskStatus.ESCALATED,
        TaskStatus.CANCELLED,
    },
    # 终态不可再流转
    TaskStatus.COMPLETED: set(),
    TaskStatus.CANCELLED: set(),
}

TERMINAL_STATES: set[TaskStatus] = {
    TaskStatus.COMPLETED,
    TaskStatus.CANCELLED,
}


class TaskPriority(StrEnum):
    """任务优先级"""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"
    URGENT = "urgent"


class TaskType(StrEnum):
    """任务类型"""

    SOP_EXECUTION = "sop_execution"
    CLEANING = "cleaning"
    MAINTENANCE = "maintenance"
    TRAINING = "training"
    AUDIT = "audit"
    INVENTORY = "inventory"
    CUSTOMER_SERVICE = "customer_service"
    ADMIN = "admin"
    CUSTOM = "custom"


class StaffRole(StrEnum):
    """员工角色；SYSTEM 仅用于定时清扫与依赖解锁"""

    ADMIN = "admin"
    MANAGER = "manager"
    STAFF = "staff"
    SYSTEM = "system"


# 可跨任务操作的管理角色
SUPERVISOR_ROLES: set[StaffRole] = {StaffRole.ADMIN, StaffRole.MANAGER}


class NotificationType(StrEnum):
    """通知类型"""

    TASK_ASSIGNED = "task_assigned"
    TASK_DUE = "task_due"
    TASK_OVERDUE = "task_overdue"
    TASK_COMPLETED = "task_completed"
    ESCALATION = "escalation"
    REMINDER = "reminder"
    DEPENDENCY_READY = "dependency_ready"
    WORKFLOW_TRIGGER = "workflow_trigger"


# 不受免打扰时段与频率上限约束的紧急类型
URGENT_NOTIFICATION_TYPES: set[NotificationType] = {
    NotificationType.ESCALATION,
    NotificationType.TASK_OVERDUE,
}


class NotificationChannel(StrEnum):
    """通知渠道"""

    PUSH = "push"
    EMAIL = "email"
    SMS = "sms"
    IN_APP = "in_app"


class NotificationAction(StrEnum):
    """接收者对通知的操作"""

    MARK_READ = "mark_read"
    MARK_CLICKED = "mark_clicked"
    MARK_UNREAD = "mark_unread"


class EventType(StrEnum):
    """任务事件类型"""

    TASK_CREATED = "TASK_CREATED"
    STATE_TRANSITION = "STATE_TRANSITION"
    DEPENDENCIES_UPDATED = "DEPENDENCIES_UPDATED"
    TASK_ESCALATED = "TASK_ESCALATED"
    TASK_REASSIGNED = "TASK_REASSIGNED"
    DEPENDENCY_UNBLOCKED = "DEPENDENCY_UNBLOCKED"


def validate_transition(from_status: TaskStatus, to_status: TaskStatus) -> bool:
    """验证状态流转是否合法

    Args:
        from_status: 当前状态
        to_status: 目标状态

    Returns:
        True 如果流转合法，否则 False
    """
    allowed = VALID_TRANSITIONS.get(from_status, set())
    return to_status in allowed
