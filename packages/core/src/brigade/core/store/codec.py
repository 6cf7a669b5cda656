"""时间戳编解码

所有时间统一以 UTC、微秒精度的 ISO 8601 字符串落盘，
保证 SQL 中按字符串比较与按时间比较一致。
"""

from datetime import UTC, datetime


def to_db_ts(value: datetime | None) -> str | None:
    """datetime -> 落盘字符串；naive 时间按 UTC 处理"""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="microseconds")


def from_db_ts(value: str | None) -> datetime | None:
    """落盘字符串 -> datetime"""
    if value is None:
        return None
    return datetime.fromisoformat(value)
