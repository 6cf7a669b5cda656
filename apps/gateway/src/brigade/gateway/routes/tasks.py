"""任务路由

POST /api/tasks: 创建任务
GET  /api/tasks: 餐厅任务列表，支持 status / assigned_to 筛选
GET  /api/tasks/{task_id}: 任务详情，含审计事件
POST /api/tasks/{task_id}/transition: 状态流转（需 expected_version）
PUT  /api/tasks/{task_id}/dependencies: 替换依赖列表
GET  /api/tasks/{task_id}/dependencies: 依赖解析状态
POST /api/tasks/{task_id}/escalate: 手动升级
GET  /api/tasks/{task_id}/escalations: 升级历史
"""

from datetime import datetime
from typing import Any

from brigade.core.models import (
    Actor,
    EscalationTarget,
    StaffRole,
    TaskDraft,
    TaskPriority,
    TaskStatus,
    TaskType,
)
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from starlette.responses import JSONResponse

from ..deps import get_actor, get_task_service
from ..services.task_service import TaskService

router = APIRouter()


class CreateTaskRequest(BaseModel):
    """创建任务请求体（restaurant_id 取自调用者身份）"""

    title: str = Field(min_length=1, max_length=255)
    description: str = Field(default="")
    priority: TaskPriority = Field(default=TaskPriority.MEDIUM)
    task_type: TaskType = Field(default=TaskType.CUSTOM)
    due_date: datetime | None = Field(default=None)
    scheduled_for: datetime | None = Field(default=None)
    assigned_to: str | None = Field(default=None)
    dependencies: list[str] = Field(default_factory=list)
    estimated_duration_minutes: int | None = Field(default=None, gt=0)
    metadata: dict[str, Any] = Field(default_factory=dict)


class TransitionRequest(BaseModel):
    """状态流转请求体"""

    status: TaskStatus
    expected_version: int = Field(ge=1)
    assign_to: str | None = Field(default=None)
    actual_duration_minutes: int | None = Field(default=None)
    reason: str = Field(default="", max_length=500)


class DependenciesRequest(BaseModel):
    """依赖编辑请求体"""

    dependencies: list[str]
    expected_version: int = Field(ge=1)


class EscalateRequest(BaseModel):
    """手动升级请求体：user_id 与 role 都为空时升级到全部管理者"""

    user_id: str | None = Field(default=None)
    role: StaffRole | None = Field(default=None)
    reason: str
    urgent: bool = Field(default=False)


@router.post("/api/tasks")
async def create_task(
    body: CreateTaskRequest,
    actor: Actor = Depends(get_actor),
    service: TaskService = Depends(get_task_service),
):
    """创建任务，返回 201 + 任务"""
    draft = TaskDraft(restaurant_id=actor.restaurant_id, **body.model_dump())
    outcome = await service.create_task(draft, actor)
    return JSONResponse(
        status_code=201,
        content={"task": outcome.task.model_dump(mode="json")},
    )


@router.get("/api/tasks")
async def list_tasks(
    status: TaskStatus | None = Query(default=None, description="按状态筛选"),
    assigned_to: str | None = Query(default=None, description="按负责人筛选"),
    actor: Actor = Depends(get_actor),
    service: TaskService = Depends(get_task_service),
):
    """查询餐厅任务列表，按 created_at 倒序"""
    tasks = await service.list_tasks(actor, status.value if status else None, assigned_to)
    return {"tasks": [t.model_dump(mode="json") for t in tasks]}


@router.get("/api/tasks/{task_id}")
async def get_task_detail(
    task_id: str,
    actor: Actor = Depends(get_actor),
    service: TaskService = Depends(get_task_service),
):
    """查询任务详情，包含审计事件"""
    task = await service.get_task(task_id, actor)
    events = await service.get_task_events(task_id, actor)
    return {
        "task": task.model_dump(mode="json"),
        "events": [e.model_dump(mode="json") for e in events],
    }


@router.post("/api/tasks/{task_id}/transition")
async def transition_task(
    task_id: str,
    body: TransitionRequest,
    actor: Actor = Depends(get_actor),
    service: TaskService = Depends(get_task_service),
):
    """状态流转；版本号不匹配返回 409"""
    outcome = await service.transition_task(
        task_id,
        body.status,
        actor,
        body.expected_version,
        assign_to=body.assign_to,
        actual_duration_minutes=body.actual_duration_minutes,
        reason=body.reason,
    )
    return {
        "task": outcome.task.model_dump(mode="json"),
        "unblocked": outcome.unblocked,
        "notification_count": len(outcome.intents),
    }


@router.put("/api/tasks/{task_id}/dependencies")
async def update_dependencies(
    task_id: str,
    body: DependenciesRequest,
    actor: Actor = Depends(get_actor),
    service: TaskService = Depends(get_task_service),
):
    """替换依赖列表（重新校验环与深度）"""
    outcome = await service.update_dependencies(
        task_id, body.dependencies, actor, body.expected_version
    )
    return {"task": outcome.task.model_dump(mode="json")}


@router.get("/api/tasks/{task_id}/dependencies")
async def get_dependency_status(
    task_id: str,
    actor: Actor = Depends(get_actor),
    service: TaskService = Depends(get_task_service),
):
    """依赖解析状态"""
    status = await service.dependency_status(task_id, actor)
    return {**status.model_dump(mode="json"), "is_satisfied": status.is_satisfied}


@router.post("/api/tasks/{task_id}/escalate")
async def escalate_task(
    task_id: str,
    body: EscalateRequest,
    actor: Actor = Depends(get_actor),
    service: TaskService = Depends(get_task_service),
):
    """手动升级任务"""
    result = await service.escalate_manually(
        task_id,
        EscalationTarget(user_id=body.user_id, role=body.role),
        body.reason,
        body.urgent,
        actor,
    )
    return {
        "task": result.task.model_dump(mode="json"),
        "escalated_to": result.escalated_to,
        "escalation_level": result.escalation_level,
    }


@router.get("/api/tasks/{task_id}/escalations")
async def get_escalation_history(
    task_id: str,
    actor: Actor = Depends(get_actor),
    service: TaskService = Depends(get_task_service),
):
    """升级与改派历史"""
    events = await service.escalation_history(task_id, actor)
    return {"escalations": [e.model_dump(mode="json") for e in events]}
