"""Task Domain Model

tasks 表中的每一行都带 version 版本号，所有写入都以版本号为前置条件
（乐观并发）。metadata["escalation"] 记录升级来源。
"""

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator

from .enums import TaskPriority, TaskStatus, TaskType


class Task(BaseModel):
    """Task 数据模型"""

    task_id: str = Field(description="唯一标识，ULID 格式")
    restaurant_id: str = Field(description="所属餐厅")
    title: str = Field(description="任务标题")
    description: str = Field(default="", description="任务说明")
    status: TaskStatus = Field(default=TaskStatus.PENDING, description="当前状态")
    priority: TaskPriority = Field(default=TaskPriority.MEDIUM, description="优先级")
    task_type: TaskType = Field(default=TaskType.CUSTOM, description="任务类型")
    due_date: datetime | None = Field(default=None, description="截止时间")
    scheduled_for: datetime | None = Field(default=None, description="计划开始时间")
    assigned_to: str | None = Field(default=None, description="负责人 user_id")
    assigned_at: datetime | None = Field(default=None)
    created_by: str = Field(description="创建人 user_id")
    dependencies: list[str] = Field(
        default_factory=list,
        description="前置任务 ID 列表（blocked-by 边）",
    )
    version: int = Field(default=1, ge=1, description="乐观并发版本号，每次写入 +1")
    escalation_level: int = Field(default=0, ge=0, description="已升级次数")
    started_at: datetime | None = Field(default=None)
    completed_at: datetime | None = Field(default=None)
    cancelled_at: datetime | None = Field(default=None)
    estimated_duration_minutes: int | None = Field(default=None)
    actual_duration_minutes: int | None = Field(default=None)
    metadata: dict[str, Any] = Field(default_factory=dict, description="自由键值")
    created_at: datetime = Field(description="创建时间")
    updated_at: datetime = Field(description="更新时间")

    @property
    def escalation(self) -> dict[str, Any]:
        """metadata 中的升级信息（不存在时为空）"""
        return self.metadata.get("escalation") or {}


class TaskDraft(BaseModel):
    """创建任务的输入"""

    restaurant_id: str
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

    @field_validator("dependencies")
    @classmethod
    def _dedupe(cls, value: list[str]) -> list[str]:
        # 保持原顺序去重
        return list(dict.fromkeys(value))

    @field_validator("due_date", "scheduled_for")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        # 不带时区的时间按 UTC 解释
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value


class DependencyStatus(BaseModel):
    """依赖解析状态，未完成的依赖（包括环与缺失任务）始终可见"""

    task_id: str
    total: int
    completed: list[str] = Field(default_factory=list)
    unresolved: list[str] = Field(default_factory=list)
    missing: list[str] = Field(default_factory=list)

    @property
    def is_satisfied(self) -> bool:
        return not self.unresolved and not self.missing
