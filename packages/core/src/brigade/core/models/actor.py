"""调用者身份与员工目录模型

认证本身由外部完成，核心只消费 (user_id, role, restaurant_id) 这一身份事实。
"""

from pydantic import BaseModel, Field

from .enums import SUPERVISOR_ROLES, StaffRole
from .notification import NotificationPreferences

SYSTEM_USER_ID = "system"


class Actor(BaseModel):
    """操作者"""

    user_id: str
    role: StaffRole = Field(default=StaffRole.STAFF)
    restaurant_id: str = Field(default="", description="餐厅作用域，system 为空")

    @property
    def is_system(self) -> bool:
        return self.role == StaffRole.SYSTEM

    @property
    def is_supervisor(self) -> bool:
        return self.is_system or self.role in SUPERVISOR_ROLES

    @classmethod
    def system(cls, restaurant_id: str = "") -> "Actor":
        """定时清扫、依赖解锁使用的系统身份"""
        return cls(user_id=SYSTEM_USER_ID, role=StaffRole.SYSTEM, restaurant_id=restaurant_id)


class StaffMember(BaseModel):
    """员工目录记录"""

    user_id: str
    restaurant_id: str
    role: StaffRole = Field(default=StaffRole.STAFF)
    is_active: bool = Field(default=True)
    full_name: str = Field(default="")
    email: str = Field(default="")
    phone: str = Field(default="")
    notification_preferences: NotificationPreferences | None = Field(
        default=None,
        description="为空时使用默认偏好",
    )
