"""Channels 包测试 fixtures"""

from datetime import UTC, datetime

import pytest
from brigade.core.models import Notification, NotificationChannel, NotificationType


@pytest.fixture
def email_notification() -> Notification:
    """一条待投递的邮件通知"""
    now = datetime(2025, 3, 1, 12, 0, tzinfo=UTC)
    return Notification(
        notification_id="01JNOTIF000000000000000001",
        restaurant_id="r-1",
        user_id="u-1",
        task_id="01JTASK0000000000000000001",
        notification_type=NotificationType.TASK_ASSIGNED,
        channel=NotificationChannel.EMAIL,
        title="Task assigned: Clean fryer",
        message="You have been assigned: Clean fryer",
        payload={"task_id": "01JTASK0000000000000000001"},
        scheduled_for=now,
        created_at=now,
    )
