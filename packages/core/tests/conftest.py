"""packages/core 测试配置 -- 核心层 fixture"""

from collections.abc import AsyncGenerator
from datetime import UTC, datetime
from pathlib import Path

import aiosqlite
import pytest
import pytest_asyncio
from brigade.core.models import Task, TaskStatus


@pytest_asyncio.fixture
async def core_db_path(tmp_path: Path) -> Path:
    """核心层临时数据库路径"""
    return tmp_path / "core_test.db"


@pytest_asyncio.fixture
async def core_db(core_db_path: Path) -> AsyncGenerator[aiosqlite.Connection, None]:
    """核心层已初始化数据库连接"""
    from brigade.core.store.sqlite_init import init_db

    conn = await aiosqlite.connect(str(core_db_path))
    await init_db(conn)
    yield conn
    await conn.close()


@pytest_asyncio.fixture
async def store_group(core_db_path: Path):
    """共享连接的 Store 实例组"""
    from brigade.core.store import create_store_group

    group = await create_store_group(str(core_db_path))
    yield group
    await group.conn.close()


@pytest.fixture
def now() -> datetime:
    return datetime(2025, 3, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
def make_task(now: datetime):
    """构造 Task 的工厂函数"""

    def _make(task_id: str, **overrides) -> Task:
        fields = {
            "task_id": task_id,
            "restaurant_id": "r-1",
            "title": f"Task {task_id}",
            "status": TaskStatus.PENDING,
            "created_by": "u-creator",
            "created_at": now,
            "updated_at": now,
        }
        fields.update(overrides)
        return Task(**fields)

    return _make
