"""Brigade Core Store -- SQLite 持久化实现

提供工厂函数创建共享数据库连接的 Store 实例组。
"""

import asyncio
from pathlib import Path

import aiosqlite

from .event_store import SqliteEventStore
from .notification_store import SqliteNotificationStore
from .sqlite_init import init_db
from .staff_store import SqliteRestaurantStore, SqliteStaffStore
from .task_store import SqliteTaskStore
from .transaction import (
    append_event_and_update_task,
    append_event_only,
    create_task_with_event,
)


class StoreGroup:
    """Store 实例组 -- 共享同一个数据库连接

    write_lock 串行化同一连接上的写事务，避免一个协程的 rollback
    撤销另一个协程尚未提交的语句。
    """

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self.conn = conn
        self.write_lock = asyncio.Lock()
        self.task_store = SqliteTaskStore(conn)
        self.event_store = SqliteEventStore(conn)
        self.notification_store = SqliteNotificationStore(conn)
        self.staff_store = SqliteStaffStore(conn)
        self.restaurant_store = SqliteRestaurantStore(conn)


async def create_store_group(db_path: str) -> StoreGroup:
    """创建 Store 实例组

    Args:
        db_path: SQLite 数据库文件路径

    Returns:
        StoreGroup 实例
    """
    # 确保数据库目录存在
    db_dir = Path(db_path).parent
    db_dir.mkdir(parents=True, exist_ok=True)

    conn = await aiosqlite.connect(db_path)
    await init_db(conn)

    return StoreGroup(conn=conn)


__all__ = [
    "StoreGroup",
    "create_store_group",
    "SqliteTaskStore",
    "SqliteEventStore",
    "SqliteNotificationStore",
    "SqliteStaffStore",
    "SqliteRestaurantStore",
    "init_db",
    "append_event_and_update_task",
    "append_event_only",
    "create_task_with_event",
]
