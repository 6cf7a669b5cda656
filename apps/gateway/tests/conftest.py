"""apps/gateway 测试配置 -- Store / 员工目录 / TaskService / ASGI client fixture"""

from collections.abc import AsyncGenerator
from datetime import UTC, datetime
from pathlib import Path

import pytest
import pytest_asyncio
from brigade.channels import ChannelRouter, EchoChannelAdapter
from brigade.core.models import (
    Actor,
    NotificationPreferences,
    QuietHours,
    StaffMember,
    StaffRole,
)
from brigade.core.store import create_store_group
from httpx import ASGITransport, AsyncClient

# 固定时间：UTC 12:00（曼谷 19:00，不在默认免打扰时段）
NOW = datetime(2025, 3, 1, 12, 0, tzinfo=UTC)

RESTAURANT = "r-1"

# user_id -> (role, is_active)
STAFF: dict[str, tuple[StaffRole, bool]] = {
    "u-admin": (StaffRole.ADMIN, True),
    "u-manager": (StaffRole.MANAGER, True),
    "u-cook": (StaffRole.STAFF, True),
    "u-dish": (StaffRole.STAFF, True),
    "u-gone": (StaffRole.STAFF, False),
}


def actor_for(user_id: str, restaurant_id: str = RESTAURANT) -> Actor:
    role = STAFF[user_id][0] if user_id in STAFF else StaffRole.STAFF
    return Actor(user_id=user_id, role=role, restaurant_id=restaurant_id)


def headers_for(user_id: str, restaurant_id: str = RESTAURANT) -> dict[str, str]:
    actor = actor_for(user_id, restaurant_id)
    return {
        "X-User-Id": actor.user_id,
        "X-User-Role": actor.role.value,
        "X-Restaurant-Id": actor.restaurant_id,
    }


@pytest_asyncio.fixture
async def store_group(tmp_path: Path):
    """已初始化并写入员工目录的 StoreGroup"""
    group = await create_store_group(str(tmp_path / "sqlite" / "gateway_test.db"))
    # 关闭免打扰，避免测试结果依赖运行时刻
    prefs = NotificationPreferences(quiet_hours=QuietHours(enabled=False))
    for user_id, (role, active) in STAFF.items():
        await group.staff_store.upsert_staff(
            StaffMember(
                user_id=user_id,
                restaurant_id=RESTAURANT,
                role=role,
                is_active=active,
                notification_preferences=prefs,
            )
        )
    await group.staff_store.upsert_staff(
        StaffMember(user_id="u-other", restaurant_id="r-2", role=StaffRole.MANAGER)
    )
    await group.conn.commit()
    yield group
    await group.conn.close()


@pytest.fixture
def echo() -> EchoChannelAdapter:
    return EchoChannelAdapter()


@pytest.fixture
def service(store_group, echo):
    """通过 echo 后端投递的 TaskService"""
    from brigade.gateway.services.task_service import TaskService

    return TaskService(store_group, ChannelRouter(default=echo))


@pytest.fixture
def admin() -> Actor:
    return actor_for("u-admin")


@pytest.fixture
def manager() -> Actor:
    return actor_for("u-manager")


@pytest.fixture
def cook() -> Actor:
    return actor_for("u-cook")


@pytest.fixture
def dish() -> Actor:
    return actor_for("u-dish")


@pytest_asyncio.fixture
async def test_app(store_group, service, echo, tmp_path: Path, monkeypatch):
    """创建测试用 FastAPI app（手动初始化 app.state，绕过 lifespan）"""
    monkeypatch.setenv("BRIGADE_DB_PATH", str(tmp_path / "sqlite" / "gateway_test.db"))

    from brigade.gateway.main import create_app

    app = create_app()
    app.state.store_group = store_group
    app.state.channel_router = ChannelRouter(default=echo)
    app.state.task_service = service
    yield app


@pytest_asyncio.fixture
async def client(test_app) -> AsyncGenerator[AsyncClient, None]:
    """提供 httpx AsyncClient 用于测试"""
    async with AsyncClient(
        transport=ASGITransport(app=test_app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def headers():
    """按 user_id 构造身份请求头"""
    return headers_for
