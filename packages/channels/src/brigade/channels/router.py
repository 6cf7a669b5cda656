"""ChannelRouter -- 按渠道选择投递后端

in_app 通知写入 notifications 表即视为送达，不经过路由器。
其它渠道按 channel 找到对应客户端；投递异常转换为失败回执，
由调用方记录失败并在重试清扫中再次尝试。
"""

import structlog

from brigade.core.models import Notification, NotificationChannel

from .config import ChannelConfig
from .echo_adapter import EchoChannelAdapter
from .exceptions import ChannelError
from .models import DeliveryReceipt
from .webhook_client import WebhookChannelClient

log = structlog.get_logger()


class ChannelRouter:
    """渠道路由器

    未注册的渠道回落到 default 客户端；default 为 None 时投递失败。
    """

    def __init__(
        self,
        clients: dict[NotificationChannel, object] | None = None,
        default=None,
    ) -> None:
        """初始化渠道路由器

        Args:
            clients: channel -> 客户端（需实现 async send(notification)）
            default: 未注册渠道使用的客户端，None 表示不回落
        """
        self._clients = dict(clients or {})
        self._default = default

    @classmethod
    def from_config(cls, config: ChannelConfig) -> "ChannelRouter":
        """按配置构建路由器：webhook 模式走中继，echo 模式全部回声"""
        if config.mode == "webhook":
            client = WebhookChannelClient(
                base_url=config.webhook_base_url,
                api_key=config.webhook_api_key.get_secret_value(),
                timeout_s=config.timeout_s,
            )
            return cls(default=client)
        return cls(default=EchoChannelAdapter())

    def client_for(self, channel: NotificationChannel):
        return self._clients.get(channel, self._default)

    async def deliver(self, notification: Notification) -> DeliveryReceipt:
        """投递一条通知

        Returns:
            DeliveryReceipt
            - 投递成功: success=True
            - 任何失败: success=False, error=<错误描述>（不抛异常）
        """
        client = self.client_for(notification.channel)
        if client is None:
            log.warning(
                "channel_not_configured",
                channel=notification.channel.value,
                notification_id=notification.notification_id,
            )
            return DeliveryReceipt(
                notification_id=notification.notification_id,
                channel=notification.channel.value,
                success=False,
                error=str(ChannelError(notification.channel.value, "channel not configured")),
            )

        try:
            return await client.send(notification)
        except Exception as e:
            log.warning(
                "channel_delivery_failed",
                channel=notification.channel.value,
                notification_id=notification.notification_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return DeliveryReceipt(
                notification_id=notification.notification_id,
                channel=notification.channel.value,
                success=False,
                error=str(e),
            )

    async def health_check(self) -> bool:
        """所有已配置客户端均可达时返回 True"""
        clients = list(self._clients.values())
        if self._default is not None:
            clients.append(self._default)
        for client in clients:
            if not await client.health_check():
                return False
        return True
