"""引擎操作结果模型

生命周期操作返回新任务与待发送的通知意图；
通知派发与重试清扫返回计数，部分失败不抛异常。
"""

from pydantic import BaseModel, Field

from .enums import NotificationChannel, NotificationType
from .notification import Notification, NotificationIntent
from .task import Task


class TransitionOutcome(BaseModel):
    """状态流转 / 创建任务 / 依赖编辑的结果"""

    task: Task
    intents: list[NotificationIntent] = Field(default_factory=list)
    unblocked: list[str] = Field(
        default_factory=list,
        description="本次完成触发解锁的下游任务 ID",
    )


class DropRecord(BaseModel):
    """被丢弃的通知意图（静默丢弃，不是失败）"""

    recipient: str
    notification_type: NotificationType
    channel: NotificationChannel
    reason: str = Field(description="unknown_recipient / preferences / frequency_limit")


class DispatchResult(BaseModel):
    """一次派发的汇总"""

    sent: int = Field(default=0)
    dropped: int = Field(default=0)
    failed: int = Field(default=0)
    scheduled: int = Field(default=0)
    notifications: list[Notification] = Field(default_factory=list)
    drops: list[DropRecord] = Field(default_factory=list)


class RetrySweepResult(BaseModel):
    """通知重试清扫的汇总"""

    retried: int = Field(default=0)
    succeeded: int = Field(default=0)
    failed: int = Field(default=0)
    permanently_failed: int = Field(default=0)


class NotificationPage(BaseModel):
    """用户通知分页"""

    notifications: list[Notification]
    total: int
    unread_count: int
