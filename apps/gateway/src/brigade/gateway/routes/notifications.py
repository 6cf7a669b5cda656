"""通知路由

POST /api/notifications/dispatch: 派发一批通知意图（管理者）
POST /api/notifications/retry: 触发本餐厅的重试清扫（管理者）
GET  /api/notifications: 当前用户的通知列表与未读数
PUT  /api/notifications: 标记已读/点击/未读（仅接收者本人）
"""

from brigade.core.exceptions import PermissionDenied
from brigade.core.models import (
    Actor,
    NotificationAction,
    NotificationChannel,
    NotificationIntent,
    NotificationType,
)
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from ..deps import get_actor, get_task_service
from ..services.task_service import TaskService

router = APIRouter()


class DispatchRequest(BaseModel):
    """派发请求体"""

    intents: list[NotificationIntent] = Field(min_length=1)


class MarkRequest(BaseModel):
    """标记请求体"""

    notification_ids: list[str] = Field(min_length=1)
    action: NotificationAction


@router.post("/api/notifications/dispatch")
async def dispatch(
    body: DispatchRequest,
    actor: Actor = Depends(get_actor),
    service: TaskService = Depends(get_task_service),
):
    """派发通知意图，返回发送/丢弃/失败/延后计数"""
    if not actor.is_supervisor:
        raise PermissionDenied("Only managers or admins can dispatch notifications")
    if any(i.restaurant_id != actor.restaurant_id for i in body.intents):
        raise PermissionDenied("Intents must target the caller's restaurant")

    result = await service.run_notification_dispatch(body.intents)
    return result.model_dump(mode="json")


@router.post("/api/notifications/retry")
async def retry(
    actor: Actor = Depends(get_actor),
    service: TaskService = Depends(get_task_service),
):
    """重试未送达的通知"""
    if not actor.is_supervisor:
        raise PermissionDenied("Only managers or admins can run notification retries")
    result = await service.run_notification_retry_sweep(actor.restaurant_id)
    return result.model_dump(mode="json")


@router.get("/api/notifications")
async def list_notifications(
    unread_only: bool = Query(default=False),
    channel: NotificationChannel | None = Query(default=None),
    type: NotificationType | None = Query(default=None, description="通知类型"),
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    actor: Actor = Depends(get_actor),
    service: TaskService = Depends(get_task_service),
):
    """当前用户的通知"""
    page = await service.list_notifications(
        actor,
        unread_only=unread_only,
        channel=channel,
        notification_type=type,
        limit=limit,
        offset=offset,
    )
    return page.model_dump(mode="json")


@router.put("/api/notifications")
async def mark_notifications(
    body: MarkRequest,
    actor: Actor = Depends(get_actor),
    service: TaskService = Depends(get_task_service),
):
    """标记通知状态"""
    updated = await service.mark_notifications(actor, body.notification_ids, body.action)
    return {"updated": updated, "action": body.action.value}
