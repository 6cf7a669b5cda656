"""配置常量模块 -- 可通过环境变量覆盖

包含数据库路径、清扫批量大小、依赖遍历深度等可配置常量。
"""

import os
from pathlib import Path

import structlog

log = structlog.get_logger()


def _get_base_dir() -> Path:
    """获取项目 data 基础目录"""
    return Path(os.environ.get("BRIGADE_DATA_DIR", "data"))


def get_db_path() -> str:
    """获取 SQLite 数据库路径"""
    return os.environ.get(
        "BRIGADE_DB_PATH",
        str(_get_base_dir() / "sqlite" / "brigade.db"),
    )


def _int_from_env(name: str, default: int) -> int:
    """读取整数环境变量，非法值降级为默认值"""
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        log.warning("invalid_int_config", env_var=name, value=raw, fallback=default)
        return default
    if value <= 0:
        log.warning("invalid_int_config", env_var=name, value=raw, fallback=default)
        return default
    return value


def get_sweep_batch_size() -> int:
    """单次升级清扫处理的任务上限"""
    return _int_from_env("BRIGADE_SWEEP_BATCH_SIZE", 100)


def get_notification_batch_size() -> int:
    """单次通知重试清扫处理的通知上限"""
    return _int_from_env("BRIGADE_NOTIFICATION_BATCH_SIZE", 100)


def get_dependency_max_depth() -> int:
    """依赖环检测的最大遍历深度"""
    return _int_from_env("BRIGADE_DEPENDENCY_MAX_DEPTH", 32)


# 标题/消息预览截断长度
MESSAGE_PREVIEW_LENGTH: int = 200

# 手动升级原因最大长度
ESCALATION_REASON_MAX_LENGTH: int = 500
