"""Channel 数据模型"""

from datetime import datetime

from pydantic import BaseModel, Field


class DeliveryReceipt(BaseModel):
    """单条通知的投递结果"""

    notification_id: str
    channel: str
    success: bool
    delivered_at: datetime | None = Field(default=None)
    error: str = Field(default="")
    duration_ms: int = Field(default=0)
