"""员工目录与餐厅设置 SQLite 实现

员工身份由外部系统维护，引擎只读取角色、在职状态与通知偏好；
餐厅 settings.escalation_rules 保存有序的升级规则列表。
"""

import json

import aiosqlite

from ..models.actor import StaffMember
from ..models.enums import StaffRole
from ..models.escalation import EscalationRule
from ..models.notification import NotificationPreferences


class SqliteStaffStore:
    """员工目录的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def upsert_staff(self, member: StaffMember) -> None:
        """写入或覆盖员工记录（不自动提交）"""
        prefs = member.notification_preferences
        await self._conn.execute(
            """
            INSERT INTO staff (user_id, restaurant_id, role, is_active, full_name,
                               email, phone, notification_preferences)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(user_id) DO UPDATE SET
                restaurant_id = excluded.restaurant_id,
                role = excluded.role,
                is_active = excluded.is_active,
                full_name = excluded.full_name,
                email = excluded.email,
                phone = excluded.phone,
                notification_preferences = excluded.notification_preferences
            """,
            (
                member.user_id,
                member.restaurant_id,
                member.role.value,
                1 if member.is_active else 0,
                member.full_name,
                member.email,
                member.phone,
                prefs.model_dump_json() if prefs is not None else None,
            ),
        )

    async def get_staff(self, user_id: str) -> StaffMember | None:
        cursor = await self._conn.execute(
            "SELECT * FROM staff WHERE user_id = ?",
            (user_id,),
        )
        row = await cursor.fetchone()
        return self._row_to_staff(row) if row else None

    async def get_staff_many(self, user_ids: list[str]) -> dict[str, StaffMember]:
        if not user_ids:
            return {}
        placeholders = ", ".join("?" for _ in user_ids)
        cursor = await self._conn.execute(
            f"SELECT * FROM staff WHERE user_id IN ({placeholders})",
            tuple(user_ids),
        )
        rows = await cursor.fetchall()
        return {row["user_id"]: self._row_to_staff(row) for row in rows}

    async def list_active_by_roles(
        self,
        restaurant_id: str,
        roles: set[StaffRole],
    ) -> list[StaffMember]:
        """查询餐厅中持有指定角色的在职员工，按录入顺序返回"""
        if not roles:
            return []
        role_values = sorted(r.value for r in roles)
        placeholders = ", ".join("?" for _ in role_values)
        cursor = await self._conn.execute(
            f"""
            SELECT * FROM staff
            WHERE restaurant_id = ? AND is_active = 1 AND role IN ({placeholders})
            ORDER BY rowid ASC
            """,
            (restaurant_id, *role_values),
        )
        rows = await cursor.fetchall()
        return [self._row_to_staff(row) for row in rows]

    @staticmethod
    def _row_to_staff(row: aiosqlite.Row) -> StaffMember:
        prefs_raw = row["notification_preferences"]
        return StaffMember(
            user_id=row["user_id"],
            restaurant_id=row["restaurant_id"],
            role=row["role"],
            is_active=bool(row["is_active"]),
            full_name=row["full_name"],
            email=row["email"],
            phone=row["phone"],
            notification_preferences=(
                NotificationPreferences.model_validate_json(prefs_raw) if prefs_raw else None
            ),
        )


class SqliteRestaurantStore:
    """餐厅设置的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def get_escalation_rules(self, restaurant_id: str) -> list[EscalationRule] | None:
        """读取餐厅配置的升级规则；未配置返回 None"""
        cursor = await self._conn.execute(
            "SELECT settings FROM restaurants WHERE restaurant_id = ?",
            (restaurant_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        settings = json.loads(row["settings"]) if row["settings"] else {}
        raw_rules = settings.get("escalation_rules")
        if raw_rules is None:
            return None
        return [EscalationRule.model_validate(rule) for rule in raw_rules]

    async def set_escalation_rules(
        self,
        restaurant_id: str,
        rules: list[EscalationRule],
    ) -> None:
        """覆盖餐厅升级规则，保留 settings 中的其他键（不自动提交）"""
        rules_json = json.dumps([rule.model_dump(mode="json") for rule in rules])
        await self._conn.execute(
            """
            INSERT INTO restaurants (restaurant_id, settings)
            VALUES (?, json_object('escalation_rules', json(?)))
            ON CONFLICT(restaurant_id) DO UPDATE SET
                settings = json_set(restaurants.settings, '$.escalation_rules', json(?))
            """,
            (restaurant_id, rules_json, rules_json),
        )
