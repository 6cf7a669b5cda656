"""NotificationStore SQLite 实现

投递结果只由 dispatcher 写入；已读/点击状态只由接收者写入。
retry_count 达到上限后不再变更。
"""

import json
from datetime import datetime

import aiosqlite

from ..models.enums import NotificationChannel, NotificationType
from ..models.notification import MAX_DELIVERY_RETRIES, Notification
from .codec import from_db_ts, to_db_ts


class SqliteNotificationStore:
    """NotificationStore 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def create_notification(self, notification: Notification) -> None:
        """写入通知记录（不自动提交）"""
        await self._conn.execute(
            """
            INSERT INTO notifications (notification_id, restaurant_id, user_id, task_id,
                                       notification_type, channel, title, message, payload,
                                       scheduled_for, sent_at, delivered_at, read_at,
                                       clicked_at, failed_at, failure_reason, retry_count,
                                       created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                notification.notification_id,
                notification.restaurant_id,
                notification.user_id,
                notification.task_id,
                notification.notification_type.value,
                notification.channel.value,
                notification.title,
                notification.message,
                json.dumps(notification.payload, ensure_ascii=False, default=str),
                to_db_ts(notification.scheduled_for),
                to_db_ts(notification.sent_at),
                to_db_ts(notification.delivered_at),
                to_db_ts(notification.read_at),
                to_db_ts(notification.clicked_at),
                to_db_ts(notification.failed_at),
                notification.failure_reason,
                notification.retry_count,
                to_db_ts(notification.created_at),
            ),
        )

    async def get_notification(self, notification_id: str) -> Notification | None:
        cursor = await self._conn.execute(
            "SELECT * FROM notifications WHERE notification_id = ?",
            (notification_id,),
        )
        row = await cursor.fetchone()
        return self._row_to_notification(row) if row else None

    async def get_owned_ids(self, notification_ids: list[str], user_id: str) -> set[str]:
        """返回 notification_ids 中属于 user_id 的那部分"""
        if not notification_ids:
            return set()
        placeholders = ", ".join("?" for _ in notification_ids)
        cursor = await self._conn.execute(
            f"SELECT notification_id FROM notifications "
            f"WHERE user_id = ? AND notification_id IN ({placeholders})",
            (user_id, *notification_ids),
        )
        rows = await cursor.fetchall()
        return {row[0] for row in rows}

    async def mark_sent(
        self,
        notification_id: str,
        sent_at: datetime,
        delivered_at: datetime | None = None,
    ) -> None:
        """记录投递成功"""
        await self._conn.execute(
            """
            UPDATE notifications
            SET sent_at = ?, delivered_at = ?
            WHERE notification_id = ? AND sent_at IS NULL
            """,
            (to_db_ts(sent_at), to_db_ts(delivered_at or sent_at), notification_id),
        )

    async def record_failure(
        self,
        notification_id: str,
        failed_at: datetime,
        reason: str,
    ) -> int | None:
        """记录投递失败并递增 retry_count（达到上限后不再变更）

        Returns:
            更新后的 retry_count；已达上限或不存在时返回 None
        """
        cursor = await self._conn.execute(
            """
            UPDATE notifications
            SET failed_at = ?, failure_reason = ?, retry_count = retry_count + 1
            WHERE notification_id = ? AND sent_at IS NULL AND retry_count < ?
            """,
            (to_db_ts(failed_at), reason, notification_id, MAX_DELIVERY_RETRIES),
        )
        if cursor.rowcount != 1:
            return None
        cursor = await self._conn.execute(
            "SELECT retry_count FROM notifications WHERE notification_id = ?",
            (notification_id,),
        )
        row = await cursor.fetchone()
        return row[0] if row else None

    async def list_due_for_retry(
        self,
        restaurant_id: str,
        now: datetime,
        limit: int,
    ) -> list[Notification]:
        """未发送、已到期、retry_count 未达上限的通知"""
        cursor = await self._conn.execute(
            """
            SELECT * FROM notifications
            WHERE restaurant_id = ?
              AND sent_at IS NULL
              AND scheduled_for <= ?
              AND retry_count < ?
            ORDER BY scheduled_for ASC, notification_id ASC
            LIMIT ?
            """,
            (restaurant_id, to_db_ts(now), MAX_DELIVERY_RETRIES, limit),
        )
        rows = await cursor.fetchall()
        return [self._row_to_notification(row) for row in rows]

    async def count_created_since(self, user_id: str, since: datetime) -> int:
        """统计 since 之后为该用户创建的通知数（频率上限）"""
        cursor = await self._conn.execute(
            "SELECT COUNT(*) FROM notifications WHERE user_id = ? AND created_at >= ?",
            (user_id, to_db_ts(since)),
        )
        row = await cursor.fetchone()
        return row[0] if row else 0

    async def mark_read(self, notification_ids: list[str], now: datetime) -> None:
        """标记已读；已读的保持原 read_at"""
        await self._update_many(
            "read_at = COALESCE(read_at, ?)", (to_db_ts(now),), notification_ids
        )

    async def mark_clicked(self, notification_ids: list[str], now: datetime) -> None:
        """标记点击，同时视为已读"""
        ts = to_db_ts(now)
        await self._update_many(
            "clicked_at = COALESCE(clicked_at, ?), read_at = COALESCE(read_at, ?)",
            (ts, ts),
            notification_ids,
        )

    async def mark_unread(self, notification_ids: list[str]) -> None:
        """清除已读状态"""
        await self._update_many("read_at = NULL", (), notification_ids)

    async def list_for_user(
        self,
        user_id: str,
        unread_only: bool = False,
        channel: NotificationChannel | None = None,
        notification_type: NotificationType | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Notification]:
        """查询用户通知，按 scheduled_for 倒序"""
        clauses = ["user_id = ?"]
        params: list = [user_id]
        if unread_only:
            clauses.append("read_at IS NULL")
        if channel is not None:
            clauses.append("channel = ?")
            params.append(channel.value)
        if notification_type is not None:
            clauses.append("notification_type = ?")
            params.append(notification_type.value)
        cursor = await self._conn.execute(
            f"SELECT * FROM notifications WHERE {' AND '.join(clauses)} "
            "ORDER BY scheduled_for DESC, notification_id DESC LIMIT ? OFFSET ?",
            (*params, limit, offset),
        )
        rows = await cursor.fetchall()
        return [self._row_to_notification(row) for row in rows]

    async def count_for_user(self, user_id: str) -> tuple[int, int]:
        """返回 (总数, 未读数)"""
        cursor = await self._conn.execute(
            """
            SELECT COUNT(*), COALESCE(SUM(CASE WHEN read_at IS NULL THEN 1 ELSE 0 END), 0)
            FROM notifications WHERE user_id = ?
            """,
            (user_id,),
        )
        row = await cursor.fetchone()
        return (row[0], row[1]) if row else (0, 0)

    async def _update_many(
        self,
        assignments: str,
        params: tuple,
        notification_ids: list[str],
    ) -> None:
        if not notification_ids:
            return
        placeholders = ", ".join("?" for _ in notification_ids)
        await self._conn.execute(
            f"UPDATE notifications SET {assignments} WHERE notification_id IN ({placeholders})",
            (*params, *notification_ids),
        )

    @staticmethod
    def _row_to_notification(row: aiosqlite.Row) -> Notification:
        """将数据库行转换为 Notification 模型"""
        return Notification(
            notification_id=row["notification_id"],
            restaurant_id=row["restaurant_id"],
            user_id=row["user_id"],
            task_id=row["task_id"],
            notification_type=row["notification_type"],
            channel=row["channel"],
            title=row["title"],
            message=row["message"],
            payload=json.loads(row["payload"]) if row["payload"] else {},
            scheduled_for=from_db_ts(row["scheduled_for"]),
            sent_at=from_db_ts(row["sent_at"]),
            delivered_at=from_db_ts(row["delivered_at"]),
            read_at=from_db_ts(row["read_at"]),
            clicked_at=from_db_ts(row["clicked_at"]),
            failed_at=from_db_ts(row["failed_at"]),
            failure_reason=row["failure_reason"],
            retry_count=row["retry_count"],
            created_at=from_db_ts(row["created_at"]),
        )
