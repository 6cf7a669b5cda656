"""升级路由

POST /api/escalation/sweep: 触发本餐厅的超时标记与自动升级清扫（管理者）
GET  /api/escalation/pending: 待升级任务预览（员工只看自己的任务）
GET  /api/escalation/rules: 当前生效的升级规则
PUT  /api/escalation/rules: 覆盖升级规则（admin）
"""

from datetime import UTC, datetime

from brigade.core.exceptions import PermissionDenied
from brigade.core.models import Actor, EscalationRule
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field, field_validator

from ..deps import get_actor, get_task_service
from ..services.task_service import TaskService

router = APIRouter()


class SweepRequest(BaseModel):
    """清扫请求体"""

    now: datetime | None = Field(default=None, description="为空时使用当前时间")
    mark_overdue: bool = Field(default=True, description="升级前先把过期任务标记为 overdue")

    @field_validator("now")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value


class RulesRequest(BaseModel):
    """规则覆盖请求体（有序，首个命中生效）"""

    rules: list[EscalationRule]


@router.post("/api/escalation/sweep")
async def run_sweep(
    body: SweepRequest,
    actor: Actor = Depends(get_actor),
    service: TaskService = Depends(get_task_service),
):
    """执行一次清扫，返回标记与升级结果"""
    if not actor.is_supervisor:
        raise PermissionDenied("Only managers or admins can run escalation sweeps")

    overdue = None
    if body.mark_overdue:
        overdue = await service.mark_overdue(actor.restaurant_id, body.now)
    result = await service.run_escalation_sweep(actor.restaurant_id, body.now)
    return {
        "overdue": overdue.model_dump(mode="json", exclude={"intents"}) if overdue else None,
        "sweep": result.model_dump(mode="json", exclude={"intents"}),
    }


@router.get("/api/escalation/pending")
async def pending_escalations(
    actor: Actor = Depends(get_actor),
    service: TaskService = Depends(get_task_service),
):
    """待升级任务预览"""
    pending = await service.pending_escalations(actor)
    return {"pending_escalations": [p.model_dump(mode="json") for p in pending]}


@router.get("/api/escalation/rules")
async def get_rules(
    actor: Actor = Depends(get_actor),
    service: TaskService = Depends(get_task_service),
):
    """当前生效的规则（未配置时为默认规则）"""
    rules = await service.get_escalation_rules(actor.restaurant_id)
    return {"rules": [r.model_dump(mode="json") for r in rules]}


@router.put("/api/escalation/rules")
async def set_rules(
    body: RulesRequest,
    actor: Actor = Depends(get_actor),
    service: TaskService = Depends(get_task_service),
):
    """覆盖升级规则"""
    rules = await service.set_escalation_rules(actor.restaurant_id, body.rules, actor)
    return {"rules": [r.model_dump(mode="json") for r in rules]}
