"""Channel 异常体系

所有渠道异常都是 DeliveryFailure：在重试上限内可重试。
"""

from brigade.core.exceptions import DeliveryFailure


class ChannelError(DeliveryFailure):
    """渠道投递失败（对端返回错误、渠道未配置等）"""

    def __init__(self, channel: str, message: str, recoverable: bool = True) -> None:
        """
        Args:
            channel: 渠道名称
            message: 错误描述
            recoverable: 是否可通过重试恢复
        """
        super().__init__(f"{channel} delivery failed: {message}", recoverable=recoverable)
        self.channel = channel


class ChannelUnreachableError(ChannelError):
    """投递中继不可达（连接失败、超时、DNS 解析失败等）"""

    def __init__(self, channel: str, relay_url: str, original_error: Exception) -> None:
        super().__init__(
            channel,
            f"relay unreachable: {relay_url} -- {original_error}",
            recoverable=True,
        )
        self.relay_url = relay_url
        self.original_error = original_error
