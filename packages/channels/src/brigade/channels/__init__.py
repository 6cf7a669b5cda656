"""Brigade Channels -- 通知投递渠道抽象层

packages/channels 的公开接口导出。
"""

# 配置
from .config import ChannelConfig, load_channel_config

# 核心组件
from .echo_adapter import EchoChannelAdapter

# 异常
from .exceptions import ChannelError, ChannelUnreachableError
from .models import DeliveryReceipt
from .router import ChannelRouter
from .webhook_client import WebhookChannelClient

__all__ = [
    "DeliveryReceipt",
    "WebhookChannelClient",
    "EchoChannelAdapter",
    "ChannelRouter",
    "ChannelConfig",
    "load_channel_config",
    "ChannelError",
    "ChannelUnreachableError",
]
