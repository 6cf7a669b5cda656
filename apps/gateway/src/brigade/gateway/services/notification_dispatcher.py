"""NotificationDispatcher -- 通知意图过滤、持久化与投递

派发流程：
1. 接收者不存在/离职 -> 丢弃（unknown_recipient）
2. should_send 为 False -> 丢弃（preferences），不落库
3. 超过频率上限（紧急类型豁免）-> 丢弃（frequency_limit）
4. 落库；in_app 立即视为送达，其它渠道并发交给 ChannelRouter
投递失败记录 failed_at/failure_reason 并递增 retry_count，由重试清扫继续处理。
"""

import asyncio
from collections import defaultdict
from datetime import UTC, datetime, timedelta

import structlog
from brigade.channels import ChannelRouter, DeliveryReceipt
from brigade.core.config import get_notification_batch_size
from brigade.core.exceptions import NotFound
from brigade.core.models import (
    MAX_DELIVERY_RETRIES,
    Actor,
    DispatchResult,
    DropRecord,
    Notification,
    NotificationAction,
    NotificationChannel,
    NotificationIntent,
    NotificationPage,
    NotificationPreferences,
    NotificationType,
    RetrySweepResult,
    StaffMember,
)
from brigade.core.policy import exceeds_frequency_limit, should_send
from brigade.core.store import StoreGroup
from ulid import ULID

log = structlog.get_logger()


class NotificationDispatcher:
    """通知派发器"""

    def __init__(
        self,
        store_group: StoreGroup,
        router: ChannelRouter,
        batch_size: int | None = None,
    ) -> None:
        self._stores = store_group
        self._router = router
        self._batch_size = batch_size or get_notification_batch_size()

    async def _recent_counts(self, user_id: str, now: datetime) -> tuple[int, int]:
        store = self._stores.notification_store
        last_hour = await store.count_created_since(user_id, now - timedelta(hours=1))
        last_day = await store.count_created_since(user_id, now - timedelta(days=1))
        return last_hour, last_day

    @staticmethod
    def _recipient_ok(member: StaffMember | None, intent: NotificationIntent) -> bool:
        return (
            member is not None
            and member.is_active
            and member.restaurant_id == intent.restaurant_id
        )

    async def dispatch(
        self,
        intents: list[NotificationIntent],
        now: datetime | None = None,
    ) -> DispatchResult:
        """派发一批通知意图（部分失败不抛异常）"""
        now = now or datetime.now(UTC)
        result = DispatchResult()
        if not intents:
            return result

        members = await self._stores.staff_store.get_staff_many(
            list(dict.fromkeys(i.recipient for i in intents))
        )
        counts: dict[str, tuple[int, int]] = {}
        added: dict[str, int] = defaultdict(int)
        accepted: list[Notification] = []

        for intent in intents:
            member = members.get(intent.recipient)
            if not self._recipient_ok(member, intent):
                self._drop(result, intent, "unknown_recipient")
                continue

            prefs = member.notification_preferences or NotificationPreferences()
            if not should_send(intent.type, intent.channel, prefs, now):
                self._drop(result, intent, "preferences")
                continue

            if intent.recipient not in counts:
                counts[intent.recipient] = await self._recent_counts(intent.recipient, now)
            last_hour, last_day = counts[intent.recipient]
            extra = added[intent.recipient]
            if exceeds_frequency_limit(intent.type, prefs, last_hour + extra, last_day + extra):
                self._drop(result, intent, "frequency_limit")
                continue

            added[intent.recipient] += 1
            accepted.append(
                Notification(
                    notification_id=str(ULID()),
                    restaurant_id=intent.restaurant_id,
                    user_id=intent.recipient,
                    task_id=intent.task_id,
                    notification_type=intent.type,
                    channel=intent.channel,
                    title=intent.title,
                    message=intent.message,
                    payload=intent.payload,
                    scheduled_for=intent.scheduled_for or now,
                    created_at=now,
                )
            )

        if not accepted:
            return result

        due: list[Notification] = []
        async with self._stores.write_lock:
            try:
                for notification in accepted:
                    await self._stores.notification_store.create_notification(notification)
                    if notification.scheduled_for > now:
                        result.scheduled += 1
                        result.notifications.append(notification)
                    elif notification.channel == NotificationChannel.IN_APP:
                        # 站内通知写库即送达
                        await self._stores.notification_store.mark_sent(
                            notification.notification_id, now
                        )
                        result.sent += 1
                        result.notifications.append(
                            notification.model_copy(update={"sent_at": now, "delivered_at": now})
                        )
                    else:
                        due.append(notification)
                await self._stores.conn.commit()
            except Exception:
                await self._stores.conn.rollback()
                raise

        if due:
            receipts = await self._deliver_all(due)
            delivered = await self._record_receipts(due, receipts, now)
            for notification in delivered:
                if notification.sent_at is not None:
                    result.sent += 1
                else:
                    result.failed += 1
                result.notifications.append(notification)

        log.info(
            "notifications_dispatched",
            intent_count=len(intents),
            sent=result.sent,
            dropped=result.dropped,
            failed=result.failed,
            scheduled=result.scheduled,
        )
        return result

    @staticmethod
    def _drop(result: DispatchResult, intent: NotificationIntent, reason: str) -> None:
        result.dropped += 1
        result.drops.append(
            DropRecord(
                recipient=intent.recipient,
                notification_type=intent.type,
                channel=intent.channel,
                reason=reason,
            )
        )
        log.debug(
            "notification_dropped",
            recipient=intent.recipient,
            notification_type=intent.type,
            channel=intent.channel,
            reason=reason,
        )

    async def _deliver_all(self, notifications: list[Notification]) -> list[DeliveryReceipt]:
        """并发投递；router 把异常转换为失败回执，单个渠道失败不影响其它"""
        return await asyncio.gather(*(self._router.deliver(n) for n in notifications))

    async def _record_receipts(
        self,
        notifications: list[Notification],
        receipts: list[DeliveryReceipt],
        now: datetime,
    ) -> list[Notification]:
        """写入投递结果，返回更新后的通知"""
        updated: list[Notification] = []
        store = self._stores.notification_store
        async with self._stores.write_lock:
            try:
                for notification, receipt in zip(notifications, receipts, strict=True):
                    if receipt.success:
                        delivered_at = receipt.delivered_at or now
                        await store.mark_sent(notification.notification_id, now, delivered_at)
                        updated.append(
                            notification.model_copy(
                                update={"sent_at": now, "delivered_at": delivered_at}
                            )
                        )
                        continue

                    retry_count = await store.record_failure(
                        notification.notification_id, now, receipt.error
                    )
                    if retry_count is None:
                        retry_count = notification.retry_count
                    updated.append(
                        notification.model_copy(
                            update={
                                "failed_at": now,
                                "failure_reason": receipt.error,
                                "retry_count": retry_count,
                            }
                        )
                    )
                await self._stores.conn.commit()
            except Exception:
                await self._stores.conn.rollback()
                raise
        return updated

    async def retry_sweep(
        self,
        restaurant_id: str,
        now: datetime | None = None,
    ) -> RetrySweepResult:
        """重试未送达且已到期的通知，retry_count 达到上限后不再处理"""
        now = now or datetime.now(UTC)
        due = await self._stores.notification_store.list_due_for_retry(
            restaurant_id, now, self._batch_size
        )
        result = RetrySweepResult(retried=len(due))
        if not due:
            return result

        in_app = [n for n in due if n.channel == NotificationChannel.IN_APP]
        external = [n for n in due if n.channel != NotificationChannel.IN_APP]

        if in_app:
            async with self._stores.write_lock:
                try:
                    for notification in in_app:
                        await self._stores.notification_store.mark_sent(
                            notification.notification_id, now
                        )
                    await self._stores.conn.commit()
                except Exception:
                    await self._stores.conn.rollback()
                    raise
            result.succeeded += len(in_app)

        if external:
            receipts = await self._deliver_all(external)
            for notification in await self._record_receipts(external, receipts, now):
                if notification.sent_at is not None:
                    result.succeeded += 1
                    continue
                result.failed += 1
                if notification.retry_count >= MAX_DELIVERY_RETRIES:
                    result.permanently_failed += 1
                    log.error(
                        "notification_permanently_failed",
                        notification_id=notification.notification_id,
                        user_id=notification.user_id,
                        channel=notification.channel,
                        failure_reason=notification.failure_reason,
                    )

        log.info(
            "notification_retry_sweep_completed",
            restaurant_id=restaurant_id,
            retried=result.retried,
            succeeded=result.succeeded,
            failed=result.failed,
            permanently_failed=result.permanently_failed,
        )
        return result

    async def mark_notifications(
        self,
        actor: Actor,
        notification_ids: list[str],
        action: NotificationAction,
        now: datetime | None = None,
    ) -> int:
        """接收者更新已读/点击状态（幂等）

        Raises:
            NotFound: 任一通知不存在或不属于操作者
        """
        now = now or datetime.now(UTC)
        ids = list(dict.fromkeys(notification_ids))
        store = self._stores.notification_store
        owned = await store.get_owned_ids(ids, actor.user_id)
        if len(owned) != len(ids):
            raise NotFound("Notification not found")

        async with self._stores.write_lock:
            try:
                if action == NotificationAction.MARK_READ:
                    await store.mark_read(ids, now)
                elif action == NotificationAction.MARK_CLICKED:
                    await store.mark_clicked(ids, now)
                else:
                    await store.mark_unread(ids)
                await self._stores.conn.commit()
            except Exception:
                await self._stores.conn.rollback()
                raise
        log.info(
            "notifications_marked",
            user_id=actor.user_id,
            action=action,
            count=len(ids),
        )
        return len(ids)

    async def list_notifications(
        self,
        actor: Actor,
        unread_only: bool = False,
        channel: NotificationChannel | None = None,
        notification_type: NotificationType | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> NotificationPage:
        """操作者自己的通知列表及未读数"""
        store = self._stores.notification_store
        notifications = await store.list_for_user(
            actor.user_id,
            unread_only=unread_only,
            channel=channel,
            notification_type=notification_type,
            limit=limit,
            offset=offset,
        )
        total, unread = await store.count_for_user(actor.user_id)
        return NotificationPage(notifications=notifications, total=total, unread_count=unread)
