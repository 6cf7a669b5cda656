"""CLI 入口模块 -- python -m brigade.gateway <command> [restaurant_id ...]

由 cron 等外部调度触发的批处理命令：
  serve                 启动 HTTP 网关（uvicorn）
  mark-overdue          把已过截止时间的任务标记为 overdue
  sweep-escalations     标记超时并按规则升级
  sweep-notifications   重试未送达的通知
"""

import asyncio
import os
import sys

import structlog
from brigade.channels import ChannelRouter, load_channel_config
from brigade.core.config import get_db_path

from .middleware.logging_config import setup_logging

log = structlog.get_logger()

_COMMANDS = ("serve", "mark-overdue", "sweep-escalations", "sweep-notifications")


def _usage() -> None:
    print("用法: python -m brigade.gateway <command> [restaurant_id ...]")
    print("命令:")
    print("  serve                 启动 HTTP 网关")
    print("  mark-overdue          把已过截止时间的任务标记为 overdue")
    print("  sweep-escalations     标记超时并按规则升级")
    print("  sweep-notifications   重试未送达的通知")


def main() -> None:
    """CLI 主入口"""
    if len(sys.argv) < 2:
        _usage()
        sys.exit(1)

    command = sys.argv[1]
    if command not in _COMMANDS:
        print(f"未知命令: {command}")
        print(f"可用命令: {', '.join(_COMMANDS)}")
        sys.exit(1)

    if command == "serve":
        import uvicorn

        uvicorn.run(
            "brigade.gateway.main:app",
            host=os.environ.get("BRIGADE_HOST", "127.0.0.1"),
            port=int(os.environ.get("BRIGADE_PORT", "8000")),
        )
        return

    setup_logging()
    restaurant_ids = sys.argv[2:]
    exit_code = asyncio.run(run_batch(command, restaurant_ids))
    sys.exit(exit_code)


async def run_batch(command: str, restaurant_ids: list[str]) -> int:
    """对每个餐厅执行一次批处理；返回进程退出码（有任务级错误时为 2）"""
    from brigade.core.store import create_store_group

    from .services.task_service import TaskService

    store_group = await create_store_group(get_db_path())
    try:
        if not restaurant_ids:
            cursor = await store_group.conn.execute(
                "SELECT DISTINCT restaurant_id FROM tasks ORDER BY restaurant_id"
            )
            restaurant_ids = [row[0] for row in await cursor.fetchall()]

        service = TaskService(store_group, ChannelRouter.from_config(load_channel_config()))
        had_errors = False
        for restaurant_id in restaurant_ids:
            if command in ("mark-overdue", "sweep-escalations"):
                marked = await service.mark_overdue(restaurant_id)
                had_errors = had_errors or bool(marked.errors)
                print(f"[{restaurant_id}] overdue: {len(marked.marked)} 个任务")
            if command == "sweep-escalations":
                result = await service.run_escalation_sweep(restaurant_id)
                had_errors = had_errors or bool(result.errors)
                print(
                    f"[{restaurant_id}] 升级 {len(result.escalated)}，"
                    f"跳过 {len(result.skipped)}，错误 {len(result.errors)}"
                )
            if command == "sweep-notifications":
                retry = await service.run_notification_retry_sweep(restaurant_id)
                print(
                    f"[{restaurant_id}] 重试 {retry.retried}，成功 {retry.succeeded}，"
                    f"失败 {retry.failed}，永久失败 {retry.permanently_failed}"
                )
        log.info("batch_command_completed", command=command, restaurants=len(restaurant_ids))
        return 2 if had_errors else 0
    finally:
        await store_group.conn.close()


if __name__ == "__main__":
    main()
