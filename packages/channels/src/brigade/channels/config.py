"""ChannelConfig -- 投递渠道配置加载

从环境变量加载配置，不硬编码中继地址。
"""

import os
from typing import Literal

import structlog
from pydantic import BaseModel, Field, SecretStr

log = structlog.get_logger()


class ChannelConfig(BaseModel):
    """投递渠道配置 -- 从环境变量加载

    环境变量:
        BRIGADE_CHANNEL_MODE: 运行模式（webhook/echo）
        BRIGADE_CHANNEL_WEBHOOK_URL: 投递中继地址
        BRIGADE_CHANNEL_WEBHOOK_KEY: 中继访问密钥
        BRIGADE_CHANNEL_TIMEOUT_S: 调用超时（秒，默认 10）
    """

    mode: Literal["webhook", "echo"] = Field(
        default="echo",
        description="运行模式：webhook 走外部中继，echo 仅记录日志",
    )
    webhook_base_url: str = Field(
        default="http://localhost:8025",
        description="投递中继基础 URL，按 /{channel} 分发",
    )
    webhook_api_key: SecretStr = Field(
        default=SecretStr(""),
        description="中继访问密钥",
    )
    timeout_s: int = Field(
        default=10,
        ge=1,
        description="单次投递超时（秒）",
    )


def load_channel_config() -> ChannelConfig:
    """从环境变量加载渠道配置

    Returns:
        ChannelConfig 实例
    """
    kwargs: dict = {}

    if val := os.environ.get("BRIGADE_CHANNEL_MODE"):
        if val in ("webhook", "echo"):
            kwargs["mode"] = val
        else:
            log.warning(
                "invalid_channel_mode",
                env_var="BRIGADE_CHANNEL_MODE",
                value=val,
                fallback="echo",
            )

    if val := os.environ.get("BRIGADE_CHANNEL_WEBHOOK_URL"):
        kwargs["webhook_base_url"] = val

    if val := os.environ.get("BRIGADE_CHANNEL_WEBHOOK_KEY"):
        kwargs["webhook_api_key"] = SecretStr(val)

    if val := os.environ.get("BRIGADE_CHANNEL_TIMEOUT_S"):
        try:
            kwargs["timeout_s"] = int(val)
        except ValueError:
            log.warning(
                "invalid_timeout_config",
                env_var="BRIGADE_CHANNEL_TIMEOUT_S",
                value=val,
                fallback=10,
            )
            # 使用默认值，不阻塞启动

    return ChannelConfig(**kwargs)
