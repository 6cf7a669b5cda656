"""NotificationDispatcher 派发测试

测试内容：
1. 偏好过滤（渠道 / 免打扰）与未知接收者丢弃
2. 频率上限（含同批次累计）与紧急类型豁免
3. 外部渠道失败记录与延后发送
4. 接收者标记已读 / 点击 / 未读
"""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest
from brigade.channels import ChannelRouter, DeliveryReceipt
from brigade.core.exceptions import NotFound
from brigade.core.models import (
    FrequencyLimits,
    NotificationAction,
    NotificationChannel,
    NotificationIntent,
    NotificationPreferences,
    NotificationType,
    QuietHours,
    StaffMember,
    StaffRole,
)
from brigade.gateway.services.notification_dispatcher import NotificationDispatcher


def _intent(recipient: str = "u-cook", **kwargs) -> NotificationIntent:
    return NotificationIntent(
        recipient=recipient,
        restaurant_id=kwargs.pop("restaurant_id", "r-1"),
        type=kwargs.pop("type", NotificationType.REMINDER),
        channel=kwargs.pop("channel", NotificationChannel.IN_APP),
        title=kwargs.pop("title", "Reminder"),
        message=kwargs.pop("message", "Close-out checklist"),
        **kwargs,
    )


async def _set_prefs(store_group, user_id: str, prefs: NotificationPreferences) -> None:
    await store_group.staff_store.upsert_staff(
        StaffMember(
            user_id=user_id,
            restaurant_id="r-1",
            role=StaffRole.STAFF,
            notification_preferences=prefs,
        )
    )
    await store_group.conn.commit()


@pytest.fixture
def failing_router():
    """所有外部投递都失败的路由器"""
    router = AsyncMock(spec=ChannelRouter)

    async def deliver(notification):
        return DeliveryReceipt(
            notification_id=notification.notification_id,
            channel=notification.channel.value,
            success=False,
            error="relay returned HTTP 502",
        )

    router.deliver.side_effect = deliver
    return router


class TestDispatchFiltering:
    """过滤与丢弃"""

    async def test_in_app_sent_immediately(self, service, store_group, now):
        result = await service.run_notification_dispatch([_intent()], now)

        assert (result.sent, result.dropped, result.failed) == (1, 0, 0)
        stored = await store_group.notification_store.get_notification(
            result.notifications[0].notification_id
        )
        assert stored.sent_at == now
        assert stored.delivered_at == now

    async def test_sms_disabled_by_default_is_dropped(self, service, store_group, now):
        result = await service.run_notification_dispatch(
            [_intent(channel=NotificationChannel.SMS)], now
        )

        assert result.dropped == 1
        assert result.drops[0].reason == "preferences"
        # 丢弃不是失败，也不落库
        assert result.failed == 0
        assert await store_group.notification_store.list_for_user("u-cook") == []

    @pytest.mark.parametrize("recipient", ["u-ghost", "u-gone", "u-other"])
    async def test_unknown_recipient_dropped(self, service, recipient, now):
        result = await service.run_notification_dispatch([_intent(recipient)], now)
        assert result.dropped == 1
        assert result.drops[0].reason == "unknown_recipient"

    async def test_quiet_hours_suppress_non_urgent(self, service, store_group):
        await _set_prefs(
            store_group,
            "u-cook",
            NotificationPreferences(quiet_hours=QuietHours(timezone="UTC")),
        )
        late_night = datetime(2025, 3, 1, 23, 15, tzinfo=UTC)

        result = await service.run_notification_dispatch(
            [_intent(), _intent(type=NotificationType.ESCALATION)], late_night
        )

        assert result.sent == 1
        assert result.notifications[0].notification_type == NotificationType.ESCALATION
        assert [d.reason for d in result.drops] == ["preferences"]

    async def test_disabled_type_dropped(self, service, store_group, now):
        await _set_prefs(
            store_group,
            "u-cook",
            NotificationPreferences(
                quiet_hours=QuietHours(enabled=False),
                notification_types={NotificationType.REMINDER: False},
            ),
        )
        result = await service.run_notification_dispatch([_intent()], now)
        assert result.drops[0].reason == "preferences"


class TestFrequencyLimit:
    """频率上限"""

    async def test_batch_counts_toward_limit(self, service, store_group, now):
        await _set_prefs(
            store_group,
            "u-cook",
            NotificationPreferences(
                quiet_hours=QuietHours(enabled=False),
                frequency_limits=FrequencyLimits(max_per_hour=2, max_per_day=50),
            ),
        )

        result = await service.run_notification_dispatch([_intent() for _ in range(3)], now)

        assert result.sent == 2
        assert [d.reason for d in result.drops] == ["frequency_limit"]

    async def test_history_counts_toward_limit(self, service, store_group, now):
        await _set_prefs(
            store_group,
            "u-cook",
            NotificationPreferences(
                quiet_hours=QuietHours(enabled=False),
                frequency_limits=FrequencyLimits(max_per_hour=1, max_per_day=50),
            ),
        )
        await service.run_notification_dispatch([_intent()], now - timedelta(minutes=30))

        blocked = await service.run_notification_dispatch([_intent()], now)
        assert blocked.drops[0].reason == "frequency_limit"

        # 一小时窗口过后恢复
        later = await service.run_notification_dispatch([_intent()], now + timedelta(hours=1))
        assert later.sent == 1

    async def test_urgent_types_exempt(self, service, store_group, now):
        await _set_prefs(
            store_group,
            "u-cook",
            NotificationPreferences(
                quiet_hours=QuietHours(enabled=False),
                frequency_limits=FrequencyLimits(max_per_hour=0, max_per_day=0),
            ),
        )
        result = await service.run_notification_dispatch(
            [_intent(type=NotificationType.TASK_OVERDUE) for _ in range(3)], now
        )
        assert result.sent == 3


class TestExternalDelivery:
    """外部渠道投递"""

    async def test_failure_recorded(self, store_group, failing_router, now):
        dispatcher = NotificationDispatcher(store_group, failing_router)

        result = await dispatcher.dispatch(
            [_intent(channel=NotificationChannel.EMAIL), _intent()], now
        )

        # 单个渠道失败不影响其它渠道
        assert (result.sent, result.failed) == (1, 1)
        failed = next(n for n in result.notifications if n.channel == NotificationChannel.EMAIL)
        assert failed.retry_count == 1
        assert failed.failure_reason == "relay returned HTTP 502"
        stored = await store_group.notification_store.get_notification(failed.notification_id)
        assert stored.sent_at is None
        assert stored.failed_at == now
        failing_router.deliver.assert_awaited_once()

    async def test_future_schedule_not_delivered(self, service, echo, now):
        result = await service.run_notification_dispatch(
            [
                _intent(
                    channel=NotificationChannel.PUSH,
                    scheduled_for=now + timedelta(hours=2),
                )
            ],
            now,
        )
        assert result.scheduled == 1
        assert result.sent == 0
        assert echo.sent == []


class TestRecipientActions:
    """接收者操作"""

    async def test_mark_and_list(self, service, cook, now):
        result = await service.run_notification_dispatch([_intent(), _intent()], now)
        ids = [n.notification_id for n in result.notifications]

        page = await service.list_notifications(cook)
        assert (page.total, page.unread_count) == (2, 2)

        marked = await service.mark_notifications(cook, ids[:1], NotificationAction.MARK_READ, now)
        assert marked == 1
        page = await service.list_notifications(cook, unread_only=True)
        assert [n.notification_id for n in page.notifications] == ids[1:]
        assert page.unread_count == 1

        await service.mark_notifications(cook, ids, NotificationAction.MARK_CLICKED, now)
        assert (await service.list_notifications(cook)).unread_count == 0

        await service.mark_notifications(cook, ids, NotificationAction.MARK_UNREAD, now)
        assert (await service.list_notifications(cook)).unread_count == 2

    async def test_cannot_mark_others_notifications(self, service, dish, now):
        result = await service.run_notification_dispatch([_intent()], now)
        with pytest.raises(NotFound):
            await service.mark_notifications(
                dish,
                [result.notifications[0].notification_id],
                NotificationAction.MARK_READ,
                now,
            )
