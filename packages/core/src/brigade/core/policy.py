"""通知发送策略 -- 纯函数

should_send 只依赖输入参数，不读写存储：
渠道开关 -> 类型开关 -> 免打扰时段（紧急类型豁免）。
"""

from datetime import UTC, datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog

from .models.enums import URGENT_NOTIFICATION_TYPES, NotificationChannel, NotificationType
from .models.notification import NotificationPreferences, QuietHours

log = structlog.get_logger()


def hour_in_window(hour: int, start_hour: int, end_hour: int) -> bool:
    """判断小时是否落在 [start, end) 窗口内

    start <= end 为同日窗口 [start, end)；
    start > end 为跨午夜窗口 [start, 24) ∪ [0, end)。
    """
    if start_hour <= end_hour:
        return start_hour <= hour < end_hour
    return hour >= start_hour or hour < end_hour


def local_hour(now: datetime, timezone: str) -> int:
    """将 now 转换到偏好时区后的小时；未知时区按 UTC 处理"""
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    try:
        zone = ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError):
        log.warning("unknown_timezone_fallback_utc", timezone=timezone)
        zone = ZoneInfo("UTC")
    return now.astimezone(zone).hour


def in_quiet_hours(quiet_hours: QuietHours, now: datetime) -> bool:
    """now 是否处于免打扰时段（未启用时恒为 False）"""
    if not quiet_hours.enabled:
        return False
    hour = local_hour(now, quiet_hours.timezone)
    return hour_in_window(hour, quiet_hours.start_hour, quiet_hours.end_hour)


def should_send(
    notification_type: NotificationType,
    channel: NotificationChannel,
    preferences: NotificationPreferences,
    now: datetime,
) -> bool:
    """是否应当向该用户发送此类通知

    Args:
        notification_type: 通知类型
        channel: 投递渠道
        preferences: 用户通知偏好
        now: 当前时间

    Returns:
        False 表示通知应被静默丢弃（不是失败）
    """
    if not preferences.channel_enabled(channel):
        return False

    if not preferences.type_enabled(notification_type):
        return False

    if notification_type not in URGENT_NOTIFICATION_TYPES and in_quiet_hours(
        preferences.quiet_hours, now
    ):
        return False

    return True


def exceeds_frequency_limit(
    notification_type: NotificationType,
    preferences: NotificationPreferences,
    sent_last_hour: int,
    sent_last_day: int,
) -> bool:
    """非紧急通知是否已达到每小时/每日上限"""
    if notification_type in URGENT_NOTIFICATION_TYPES:
        return False
    limits = preferences.frequency_limits
    return sent_last_hour >= limits.max_per_hour or sent_last_day >= limits.max_per_day
