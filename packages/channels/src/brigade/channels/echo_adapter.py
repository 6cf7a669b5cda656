"""EchoChannelAdapter -- 本地开发用投递后端

不与任何外部系统交互，只记录日志并返回成功回执。
未配置中继时 ChannelRouter 统一使用此适配器。
"""

import time
from datetime import UTC, datetime

import structlog

from brigade.core.models import Notification

from .models import DeliveryReceipt

log = structlog.get_logger()


class EchoChannelAdapter:
    """记录日志即视为投递成功"""

    def __init__(self) -> None:
        self.sent: list[str] = []

    async def send(self, notification: Notification) -> DeliveryReceipt:
        start_time = time.monotonic()
        self.sent.append(notification.notification_id)
        log.info(
            "echo_delivery",
            channel=notification.channel.value,
            notification_id=notification.notification_id,
            user_id=notification.user_id,
            title=notification.title,
        )
        return DeliveryReceipt(
            notification_id=notification.notification_id,
            channel=notification.channel.value,
            success=True,
            delivered_at=datetime.now(UTC),
            duration_ms=int((time.monotonic() - start_time) * 1000),
        )

    async def health_check(self) -> bool:
        return True
