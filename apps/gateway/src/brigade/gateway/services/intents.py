"""通知意图构建

各引擎只产生意图，是否发送由 NotificationDispatcher 决定。
"""

from brigade.core.config import MESSAGE_PREVIEW_LENGTH
from brigade.core.models import (
    NotificationChannel,
    NotificationIntent,
    NotificationType,
    Task,
    TaskStatus,
)

# 状态流转目标 -> 通知类型；未列出的目标不产生通知
TRANSITION_NOTIFICATION_TYPES: dict[TaskStatus, NotificationType] = {
    TaskStatus.COMPLETED: NotificationType.TASK_COMPLETED,
    TaskStatus.ASSIGNED: NotificationType.TASK_ASSIGNED,
    TaskStatus.OVERDUE: NotificationType.TASK_OVERDUE,
}

_TITLES: dict[NotificationType, str] = {
    NotificationType.TASK_ASSIGNED: "Task assigned: {title}",
    NotificationType.TASK_COMPLETED: "Task completed: {title}",
    NotificationType.TASK_OVERDUE: "Task overdue: {title}",
    NotificationType.DEPENDENCY_READY: "Task ready: {title}",
    NotificationType.ESCALATION: "Task escalated: {title}",
}


def build_intent(
    recipient: str,
    task: Task,
    notification_type: NotificationType,
    message: str,
    channel: NotificationChannel = NotificationChannel.IN_APP,
    title: str | None = None,
    **payload,
) -> NotificationIntent:
    """为任务构建一条通知意图"""
    if title is None:
        title = _TITLES.get(notification_type, "{title}").format(title=task.title)
    return NotificationIntent(
        recipient=recipient,
        restaurant_id=task.restaurant_id,
        type=notification_type,
        channel=channel,
        task_id=task.task_id,
        title=title[:MESSAGE_PREVIEW_LENGTH],
        message=message[:MESSAGE_PREVIEW_LENGTH],
        payload={"task_id": task.task_id, **payload},
    )


def transition_intents(task: Task, actor_id: str) -> list[NotificationIntent]:
    """状态流转后通知负责人与创建人（不通知操作者本人）"""
    notification_type = TRANSITION_NOTIFICATION_TYPES.get(task.status)
    if notification_type is None:
        return []

    message = f"Task '{task.title}' is now {task.status.value}"
    intents: list[NotificationIntent] = []
    if task.assigned_to and task.assigned_to != actor_id:
        intents.append(
            build_intent(task.assigned_to, task, notification_type, message, status=task.status)
        )
    if task.created_by not in (actor_id, task.assigned_to):
        intents.append(
            build_intent(task.created_by, task, notification_type, message, status=task.status)
        )
    return intents
