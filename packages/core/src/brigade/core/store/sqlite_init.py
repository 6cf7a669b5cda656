"""SQLite 数据库初始化

PRAGMA 配置 + 表 DDL + 索引创建。
使用 aiosqlite 异步操作。
"""

import aiosqlite

# tasks 表 DDL；version 为乐观并发版本号
_TASKS_DDL = """
CREATE TABLE IF NOT EXISTS tasks (
    task_id                     TEXT PRIMARY KEY,
    restaurant_id               TEXT NOT NULL,
    title                       TEXT NOT NULL DEFAULT '',
    description                 TEXT NOT NULL DEFAULT '',
    status                      TEXT NOT NULL DEFAULT 'pending',
    priority                    TEXT NOT NULL DEFAULT 'medium',
    task_type                   TEXT NOT NULL DEFAULT 'custom',
    due_date                    TEXT,
    scheduled_for               TEXT,
    assigned_to                 TEXT,
    assigned_at                 TEXT,
    created_by                  TEXT NOT NULL,
    dependencies                TEXT NOT NULL DEFAULT '[]',
    version                     INTEGER NOT NULL DEFAULT 1,
    escalation_level            INTEGER NOT NULL DEFAULT 0,
    started_at                  TEXT,
    completed_at                TEXT,
    cancelled_at                TEXT,
    estimated_duration_minutes  INTEGER,
    actual_duration_minutes     INTEGER,
    metadata                    TEXT NOT NULL DEFAULT '{}',
    created_at                  TEXT NOT NULL,
    updated_at                  TEXT NOT NULL
);
"""

_TASKS_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_tasks_restaurant_status ON tasks(restaurant_id, status);",
    "CREATE INDEX IF NOT EXISTS idx_tasks_restaurant_due ON tasks(restaurant_id, due_date);",
    "CREATE INDEX IF NOT EXISTS idx_tasks_assigned_to ON tasks(assigned_to);",
]

# task_events 表 DDL（append-only 审计轨迹）
_EVENTS_DDL = """
CREATE TABLE IF NOT EXISTS task_events (
    event_id    TEXT PRIMARY KEY,
    task_id     TEXT NOT NULL,
    task_seq    INTEGER NOT NULL,
    ts          TEXT NOT NULL,
    type        TEXT NOT NULL,
    actor_id    TEXT NOT NULL,
    payload     TEXT NOT NULL DEFAULT '{}',

    FOREIGN KEY (task_id) REFERENCES tasks(task_id)
);
"""

_EVENTS_INDEXES = [
    # 任务内事件序号唯一约束（确保 task_seq 严格单调递增）
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_task_events_seq ON task_events(task_id, task_seq);",
    "CREATE INDEX IF NOT EXISTS idx_task_events_type ON task_events(task_id, type);",
]

# notifications 表 DDL
_NOTIFICATIONS_DDL = """
CREATE TABLE IF NOT EXISTS notifications (
    notification_id     TEXT PRIMARY KEY,
    restaurant_id       TEXT NOT NULL,
    user_id             TEXT NOT NULL,
    task_id             TEXT,
    notification_type   TEXT NOT NULL,
    channel             TEXT NOT NULL,
    title               TEXT NOT NULL DEFAULT '',
    message             TEXT NOT NULL DEFAULT '',
    payload             TEXT NOT NULL DEFAULT '{}',
    scheduled_for       TEXT NOT NULL,
    sent_at             TEXT,
    delivered_at        TEXT,
    read_at             TEXT,
    clicked_at          TEXT,
    failed_at           TEXT,
    failure_reason      TEXT,
    retry_count         INTEGER NOT NULL DEFAULT 0,
    created_at          TEXT NOT NULL
);
"""

_NOTIFICATIONS_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_notifications_user ON notifications(user_id, created_at DESC);",
    # 重试清扫：未发送 + 到期
    (
        "CREATE INDEX IF NOT EXISTS idx_notifications_pending "
        "ON notifications(restaurant_id, scheduled_for) WHERE sent_at IS NULL;"
    ),
]

# staff 表 DDL（员工目录，身份由外部系统维护）
_STAFF_DDL = """
CREATE TABLE IF NOT EXISTS staff (
    user_id                     TEXT PRIMARY KEY,
    restaurant_id               TEXT NOT NULL,
    role                        TEXT NOT NULL DEFAULT 'staff',
    is_active                   INTEGER NOT NULL DEFAULT 1,
    full_name                   TEXT NOT NULL DEFAULT '',
    email                       TEXT NOT NULL DEFAULT '',
    phone                       TEXT NOT NULL DEFAULT '',
    notification_preferences    TEXT
);
"""

_STAFF_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_staff_restaurant_role ON staff(restaurant_id, role);",
]

# restaurants 表 DDL（settings 中保存 escalation_rules）
_RESTAURANTS_DDL = """
CREATE TABLE IF NOT EXISTS restaurants (
    restaurant_id   TEXT PRIMARY KEY,
    name            TEXT NOT NULL DEFAULT '',
    settings        TEXT NOT NULL DEFAULT '{}'
);
"""


async def init_db(conn: aiosqlite.Connection) -> None:
    """初始化数据库：设置 PRAGMA + 创建表 + 创建索引

    Args:
        conn: aiosqlite 数据库连接
    """
    conn.row_factory = aiosqlite.Row

    # 设置 PRAGMA
    await conn.execute("PRAGMA journal_mode = WAL;")
    await conn.execute("PRAGMA foreign_keys = ON;")
    await conn.execute("PRAGMA busy_timeout = 5000;")

    # 创建表
    for ddl in (_TASKS_DDL, _EVENTS_DDL, _NOTIFICATIONS_DDL, _STAFF_DDL, _RESTAURANTS_DDL):
        await conn.execute(ddl)

    # 创建索引
    for idx_sql in (
        _TASKS_INDEXES + _EVENTS_INDEXES + _NOTIFICATIONS_INDEXES + _STAFF_INDEXES
    ):
        await conn.execute(idx_sql)

    await conn.commit()


async def verify_wal_mode(conn: aiosqlite.Connection) -> bool:
    """验证 WAL 模式是否生效

    Returns:
        True 如果 WAL 模式已启用
    """
    cursor = await conn.execute("PRAGMA journal_mode;")
    row = await cursor.fetchone()
    return row is not None and row[0].lower() == "wal"
