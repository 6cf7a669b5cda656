"""健康检查路由

GET /health: 存活探针，进程在即 200
GET /ready:  就绪探针；core 只查 SQLite，full 额外探测投递渠道
"""

from typing import Literal

import structlog
from fastapi import APIRouter, Query, Request
from starlette.responses import JSONResponse

log = structlog.get_logger()

router = APIRouter()


async def _probe_sqlite(request: Request) -> str:
    try:
        cursor = await request.app.state.store_group.conn.execute("SELECT 1")
        await cursor.fetchone()
    except Exception as exc:
        log.warning("sqlite_probe_failed", error=str(exc))
        return f"error: {exc}"
    return "ok"


async def _probe_channels(request: Request) -> str:
    channel_router = getattr(request.app.state, "channel_router", None)
    if channel_router is None:
        return "skipped"
    try:
        reachable = await channel_router.health_check()
    except Exception as exc:
        log.warning("channel_probe_failed", error=str(exc))
        reachable = False
    return "ok" if reachable else "unreachable"


@router.get("/health")
async def health():
    return {"status": "ok"}


@router.get("/ready")
async def ready(
    request: Request,
    profile: Literal["core", "full"] = Query(default="core"),
):
    """就绪检查；任一检查项既非 ok 也非 skipped 时返回 503"""
    checks = {
        "sqlite": await _probe_sqlite(request),
        "channels": await _probe_channels(request) if profile == "full" else "skipped",
    }
    ready_ = all(v in ("ok", "skipped") for v in checks.values())
    return JSONResponse(
        status_code=200 if ready_ else 503,
        content={
            "status": "ready" if ready_ else "not_ready",
            "profile": profile,
            "checks": checks,
        },
    )
