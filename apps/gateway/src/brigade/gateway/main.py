"""FastAPI 应用主文件

app 创建 + lifespan 管理：DB 初始化/关闭 + 投递渠道初始化 + 路由注册。
引擎异常统一映射为 {"error": {"code", "message"}}。
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from brigade.channels import ChannelRouter, load_channel_config
from brigade.core.config import get_db_path
from brigade.core.exceptions import (
    BrigadeError,
    ConcurrentModification,
    InvalidTransition,
    NotFound,
    PermissionDenied,
    ValidationError,
)
from brigade.core.store import create_store_group
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.responses import JSONResponse

from .middleware.logging_config import setup_logging
from .middleware.logging_mw import LoggingMiddleware
from .middleware.trace_mw import TraceMiddleware
from .routes import escalation, health, notifications, tasks
from .services.task_service import TaskService

log = structlog.get_logger()

# 异常类型 -> HTTP 状态码
_STATUS_CODES: dict[type[BrigadeError], int] = {
    ValidationError: 400,
    PermissionDenied: 403,
    NotFound: 404,
    InvalidTransition: 409,
    ConcurrentModification: 409,
}


def _error_response(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": {"code": code, "message": message}},
    )


async def brigade_error_handler(request: Request, exc: BrigadeError) -> JSONResponse:
    """引擎异常 -> 错误响应"""
    status_code = next(
        (code for exc_type, code in _STATUS_CODES.items() if isinstance(exc, exc_type)),
        500,
    )
    if status_code >= 500:
        log.error("unhandled_brigade_error", error_type=type(exc).__name__, error=exc.message)
    else:
        log.info("request_rejected", error_code=exc.code, status_code=status_code)
    return _error_response(status_code, exc.code, exc.message)


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """请求体校验失败 -> 400"""
    messages = "; ".join(
        f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg', '')}"
        for err in exc.errors()
    )
    return _error_response(400, ValidationError.code, messages)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """应用生命周期管理：启动时初始化 DB 和投递渠道，关闭时清理连接"""
    store_group = await create_store_group(get_db_path())
    app.state.store_group = store_group

    channel_config = load_channel_config()
    channel_router = ChannelRouter.from_config(channel_config)
    app.state.channel_router = channel_router
    app.state.task_service = TaskService(store_group, channel_router)
    log.info(
        "task_service_initialized",
        channel_mode=channel_config.mode,
        relay_url=channel_config.webhook_base_url if channel_config.mode == "webhook" else None,
    )

    yield

    # 关闭：清理数据库连接
    if hasattr(app.state, "store_group") and app.state.store_group:
        await app.state.store_group.conn.close()


def create_app() -> FastAPI:
    """创建 FastAPI 应用实例"""
    app = FastAPI(
        title="Brigade Gateway",
        version="0.1.0",
        description="餐厅任务运营引擎 API",
        lifespan=lifespan,
    )

    # 注册中间件（顺序：先 Trace 后 Logging）
    app.add_middleware(TraceMiddleware)
    app.add_middleware(LoggingMiddleware)

    # 初始化日志
    setup_logging()

    # 注册异常处理
    app.add_exception_handler(BrigadeError, brigade_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    # 注册路由
    app.include_router(tasks.router, tags=["tasks"])
    app.include_router(escalation.router, tags=["escalation"])
    app.include_router(notifications.router, tags=["notifications"])
    app.include_router(health.router, tags=["health"])

    return app


# 默认 app 实例（uvicorn 入口）
app = create_app()
