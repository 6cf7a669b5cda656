"""structlog 配置模块

HTTP 网关与 cron 批处理共用同一套处理器链；
渲染模式与级别来自 BRIGADE_LOG_FORMAT / BRIGADE_LOG_LEVEL，也可由调用方显式指定。
"""

import logging
import os
from collections.abc import MutableMapping
from typing import Any

import structlog

# 事件字典中需要遮蔽的字段（渠道密钥、通知正文不进日志）
_MASKED_KEYS = frozenset({"api_key", "authorization", "webhook_key", "message_body"})


def mask_secrets(
    _logger: Any, _method: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    for key in _MASKED_KEYS.intersection(event_dict):
        event_dict[key] = "***"
    return event_dict


def setup_logging(log_format: str | None = None, log_level: str | None = None) -> None:
    """初始化 structlog 与标准库 logging

    log_format: "json"（生产、cron 清扫）或 "dev"（默认，可读输出）
    log_level: 标准库级别名，无法识别时回退 INFO
    """
    log_format = log_format or os.environ.get("BRIGADE_LOG_FORMAT", "dev")
    log_level = log_level or os.environ.get("BRIGADE_LOG_LEVEL", "INFO")

    pre_chain: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        mask_secrets,
        structlog.processors.StackInfoRenderer(),
    ]

    renderer: structlog.types.Processor
    if log_format == "json":
        renderer = structlog.processors.JSONRenderer(ensure_ascii=False)
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(logging.getLevelNamesMapping().get(log_level.upper(), logging.INFO))
    # uvicorn access 日志与 LoggingMiddleware 重复
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
