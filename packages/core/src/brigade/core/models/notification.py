"""Notification Domain Models

NotificationIntent 是生命周期/升级事件产生的临时意图，
经偏好过滤后要么被丢弃，要么持久化为 Notification。
"""

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator

from .enums import NotificationChannel, NotificationType

# 通知最大重试次数（达到后进入终态失败）
MAX_DELIVERY_RETRIES = 3

DEFAULT_CHANNELS: dict[NotificationChannel, bool] = {
    NotificationChannel.PUSH: True,
    NotificationChannel.EMAIL: True,
    NotificationChannel.SMS: False,
    NotificationChannel.IN_APP: True,
}


class QuietHours(BaseModel):
    """免打扰时段，start_time > end_time 表示跨午夜"""

    enabled: bool = Field(default=True)
    start_time: str = Field(default="22:00", pattern=r"^\d{2}:\d{2}$")
    end_time: str = Field(default="07:00", pattern=r"^\d{2}:\d{2}$")
    timezone: str = Field(default="Asia/Bangkok", description="IANA 时区名")

    @field_validator("start_time", "end_time")
    @classmethod
    def _check_hour(cls, value: str) -> str:
        hour, minute = (int(part) for part in value.split(":"))
        if hour > 23 or minute > 59:
            raise ValueError(f"invalid time of day: {value}")
        return value

    @property
    def start_hour(self) -> int:
        return int(self.start_time.split(":")[0])

    @property
    def end_hour(self) -> int:
        return int(self.end_time.split(":")[0])


class FrequencyLimits(BaseModel):
    """发送频率上限"""

    max_per_hour: int = Field(default=10, ge=0)
    max_per_day: int = Field(default=50, ge=0)


class NotificationPreferences(BaseModel):
    """用户通知偏好；缺失的键按默认值补齐，未列出的通知类型视为开启"""

    channels: dict[NotificationChannel, bool] = Field(
        default_factory=lambda: dict(DEFAULT_CHANNELS)
    )
    notification_types: dict[NotificationType, bool] = Field(default_factory=dict)
    quiet_hours: QuietHours = Field(default_factory=QuietHours)
    frequency_limits: FrequencyLimits = Field(default_factory=FrequencyLimits)

    @field_validator("channels")
    @classmethod
    def _merge_channel_defaults(
        cls, value: dict[NotificationChannel, bool]
    ) -> dict[NotificationChannel, bool]:
        return {**DEFAULT_CHANNELS, **value}

    def channel_enabled(self, channel: NotificationChannel) -> bool:
        return self.channels.get(channel, False)

    def type_enabled(self, notification_type: NotificationType) -> bool:
        return self.notification_types.get(notification_type, True)


class NotificationIntent(BaseModel):
    """通知意图（未持久化）"""

    recipient: str = Field(description="接收者 user_id")
    restaurant_id: str
    type: NotificationType
    channel: NotificationChannel = Field(default=NotificationChannel.IN_APP)
    task_id: str | None = Field(default=None)
    title: str = Field(default="")
    message: str = Field(default="")
    scheduled_for: datetime | None = Field(
        default=None,
        description="为空表示立即发送",
    )
    payload: dict[str, Any] = Field(default_factory=dict)

    @field_validator("scheduled_for")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value


class Notification(BaseModel):
    """已持久化的通知"""

    notification_id: str = Field(description="唯一标识，ULID 格式")
    restaurant_id: str
    user_id: str
    task_id: str | None = Field(default=None)
    notification_type: NotificationType
    channel: NotificationChannel
    title: str = Field(default="")
    message: str = Field(default="")
    payload: dict[str, Any] = Field(default_factory=dict)
    scheduled_for: datetime
    sent_at: datetime | None = Field(default=None)
    delivered_at: datetime | None = Field(default=None)
    read_at: datetime | None = Field(default=None)
    clicked_at: datetime | None = Field(default=None)
    failed_at: datetime | None = Field(default=None)
    failure_reason: str | None = Field(default=None)
    retry_count: int = Field(default=0, ge=0, le=MAX_DELIVERY_RETRIES)
    created_at: datetime

    @property
    def permanently_failed(self) -> bool:
        return self.sent_at is None and self.retry_count >= MAX_DELIVERY_RETRIES
