"""Brigade 异常体系

recoverable 标记调用方能否通过重读/重试恢复：
- ValidationError / PermissionDenied / InvalidTransition / NotFound: 不可恢复
- ConcurrentModification: 重新读取后重试
- DeliveryFailure: 在重试上限内可重试
"""


class BrigadeError(Exception):
    """基础异常"""

    code = "BRIGADE_ERROR"

    def __init__(self, message: str, recoverable: bool = False) -> None:
        """
        Args:
            message: 错误描述
            recoverable: 是否可通过重读或重试恢复
        """
        super().__init__(message)
        self.message = message
        self.recoverable = recoverable


class ValidationError(BrigadeError):
    """输入不合法（调用方责任，核心不重试）"""

    code = "VALIDATION_ERROR"


class PermissionDenied(BrigadeError):
    """操作者缺少权限"""

    code = "PERMISSION_DENIED"


class InvalidTransition(BrigadeError):
    """状态机不允许的流转"""

    code = "INVALID_TRANSITION"

    def __init__(self, task_id: str, from_status: str, to_status: str) -> None:
        super().__init__(
            f"Task {task_id} cannot transition from {from_status} to {to_status}"
        )
        self.task_id = task_id
        self.from_status = from_status
        self.to_status = to_status


class NotFound(BrigadeError):
    """任务/规则/用户不存在"""

    code = "NOT_FOUND"


class ConcurrentModification(BrigadeError):
    """版本号不匹配，调用方需重新读取后重试"""

    code = "CONCURRENT_MODIFICATION"

    def __init__(self, task_id: str, expected_version: int) -> None:
        super().__init__(
            f"Task {task_id} was modified concurrently (expected version {expected_version})",
            recoverable=True,
        )
        self.task_id = task_id
        self.expected_version = expected_version


class DeliveryFailure(BrigadeError):
    """渠道投递失败，在重试上限内可重试"""

    code = "DELIVERY_FAILURE"

    def __init__(self, message: str, recoverable: bool = True) -> None:
        super().__init__(message, recoverable=recoverable)
