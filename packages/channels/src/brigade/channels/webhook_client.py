"""WebhookChannelClient -- 外部投递中继调用封装

推送、邮件、短信三类渠道统一交给一个 HTTP 中继，
按 POST {base_url}/{channel} 分发。
"""

import time
from datetime import UTC, datetime

import httpx
import structlog

from brigade.core.models import Notification

from .exceptions import ChannelError, ChannelUnreachableError
from .models import DeliveryReceipt

log = structlog.get_logger()

# 健康检查超时（硬编码，应快速响应）
HEALTH_CHECK_TIMEOUT_S = 5

# 连接类异常类型集合（触发 ChannelUnreachableError）
_CONNECTION_ERROR_TYPES = (
    ConnectionError,
    OSError,
    TimeoutError,
    httpx.ConnectError,
    httpx.ConnectTimeout,
    httpx.TimeoutException,
)


class WebhookChannelClient:
    """投递中继客户端"""

    def __init__(
        self,
        base_url: str = "http://localhost:8025",
        api_key: str = "",
        timeout_s: int = 10,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """初始化中继客户端

        Args:
            base_url: 中继基础 URL
            api_key: 中继访问密钥，为空时不发送 Authorization 头
            timeout_s: 请求超时（秒）
            transport: 自定义 httpx transport（测试注入 MockTransport）
        """
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout_s = timeout_s
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        if not self._api_key:
            return {}
        return {"Authorization": f"Bearer {self._api_key}"}

    async def send(self, notification: Notification) -> DeliveryReceipt:
        """把一条通知投递到对应渠道

        Returns:
            DeliveryReceipt（success=True）

        Raises:
            ChannelUnreachableError: 中继连接失败或超时
            ChannelError: 中继返回非 2xx
        """
        channel = notification.channel.value
        url = f"{self._base_url}/{channel}"
        body = {
            "notification_id": notification.notification_id,
            "user_id": notification.user_id,
            "type": notification.notification_type.value,
            "title": notification.title,
            "message": notification.message,
            "payload": notification.payload,
        }
        start_time = time.monotonic()

        try:
            async with httpx.AsyncClient(transport=self._transport) as http_client:
                resp = await http_client.post(
                    url,
                    json=body,
                    headers=self._headers(),
                    timeout=self._timeout_s,
                )
        except _CONNECTION_ERROR_TYPES as e:
            log.error(
                "channel_relay_unreachable",
                channel=channel,
                notification_id=notification.notification_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise ChannelUnreachableError(channel, self._base_url, e) from e

        duration_ms = int((time.monotonic() - start_time) * 1000)
        if resp.status_code >= 300:
            log.warning(
                "channel_relay_rejected",
                channel=channel,
                notification_id=notification.notification_id,
                status_code=resp.status_code,
                duration_ms=duration_ms,
            )
            raise ChannelError(channel, f"relay returned HTTP {resp.status_code}")

        log.info(
            "channel_delivery_completed",
            channel=channel,
            notification_id=notification.notification_id,
            duration_ms=duration_ms,
        )
        return DeliveryReceipt(
            notification_id=notification.notification_id,
            channel=channel,
            success=True,
            delivered_at=datetime.now(UTC),
            duration_ms=duration_ms,
        )

    async def health_check(self) -> bool:
        """检查中继可达性

        注意: 此方法不抛出异常，所有异常内部捕获并返回 False。
        """
        url = f"{self._base_url}/health"
        try:
            async with httpx.AsyncClient(transport=self._transport) as http_client:
                resp = await http_client.get(
                    url,
                    headers=self._headers(),
                    timeout=HEALTH_CHECK_TIMEOUT_S,
                )
                return resp.status_code == 200
        except Exception as e:
            log.debug("channel_health_check_failed", url=url, error=str(e))
            return False
