"""依赖图校验 -- 创建/编辑任务时的环检测

运行期的依赖解锁不再检查环，这里是唯一的防线：
按层 BFS 遍历 dependencies，深度受 BRIGADE_DEPENDENCY_MAX_DEPTH 限制。
"""

from collections.abc import Awaitable, Callable

from .exceptions import ValidationError
from .models.task import Task

TaskFetcher = Callable[[list[str]], Awaitable[dict[str, Task]]]


async def validate_dependencies(
    task_id: str | None,
    restaurant_id: str,
    dependencies: list[str],
    fetch_tasks: TaskFetcher,
    max_depth: int,
) -> None:
    """校验依赖列表

    Args:
        task_id: 被编辑任务的 ID；新建任务传 None
        restaurant_id: 任务所属餐厅，依赖必须在同一餐厅
        dependencies: 新的依赖列表
        fetch_tasks: 批量读取任务的协程函数
        max_depth: 最大遍历深度

    Raises:
        ValidationError: 自引用、依赖不存在、跨餐厅、成环或链路过深
    """
    if not dependencies:
        return

    if task_id is not None and task_id in dependencies:
        raise ValidationError(f"Task {task_id} cannot depend on itself")

    direct = await fetch_tasks(dependencies)
    missing = [dep for dep in dependencies if dep not in direct]
    if missing:
        raise ValidationError(f"Unknown dependency tasks: {', '.join(missing)}")

    foreign = [t.task_id for t in direct.values() if t.restaurant_id != restaurant_id]
    if foreign:
        raise ValidationError(
            f"Dependencies belong to another restaurant: {', '.join(foreign)}"
        )

    # 新建任务尚未被任何任务引用，不可能成环
    if task_id is None:
        return

    visited: set[str] = set(dependencies)
    frontier: dict[str, Task] = direct
    depth = 1
    while frontier:
        next_ids: list[str] = []
        for task in frontier.values():
            for dep in task.dependencies:
                if dep == task_id:
                    raise ValidationError(
                        f"Dependency cycle detected: {task.task_id} already depends on {task_id}"
                    )
                if dep not in visited:
                    visited.add(dep)
                    next_ids.append(dep)

        if not next_ids:
            return

        depth += 1
        if depth > max_depth:
            raise ValidationError(
                f"Dependency chain of task {task_id} exceeds max depth {max_depth}"
            )
        frontier = await fetch_tasks(next_ids)
