"""依赖注入模块 -- 通过 FastAPI Depends 注入服务与调用者身份

Store 与 TaskService 通过 app.state 管理，在 lifespan 中初始化/清理。
认证由上游完成，网关只读取 X-User-Id / X-User-Role / X-Restaurant-Id 头。
"""

from brigade.core.exceptions import PermissionDenied, ValidationError
from brigade.core.models import Actor, StaffRole
from fastapi import Header, Request

from .services.task_service import TaskService


def get_task_service(request: Request) -> TaskService:
    """从 app.state 获取 TaskService 实例"""
    return request.app.state.task_service


def get_actor(
    x_user_id: str | None = Header(default=None),
    x_user_role: str | None = Header(default=None),
    x_restaurant_id: str | None = Header(default=None),
) -> Actor:
    """从请求头构建调用者身份

    Raises:
        PermissionDenied: 缺少身份头，或试图以 system 身份调用
        ValidationError: 角色不合法
    """
    if not x_user_id or not x_restaurant_id:
        raise PermissionDenied("Missing caller identity headers")
    try:
        role = StaffRole(x_user_role or StaffRole.STAFF.value)
    except ValueError as e:
        raise ValidationError(f"Unknown role: {x_user_role}") from e
    if role == StaffRole.SYSTEM:
        raise PermissionDenied("The system role cannot be used by API callers")
    return Actor(user_id=x_user_id, role=role, restaurant_id=x_restaurant_id)
