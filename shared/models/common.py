"""
共享数据模型 - 通用类型
"""

from enum import Enum
import uuid


def generate_id(prefix: str = "") -> str:
    """生成唯一 ID"""
    uid = uuid.uuid4().hex[:12]
    return f"{prefix}_{uid}" if prefix else uid


class TransactionState(str, Enum):
    """事务状态"""
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    REDIRECTING = "redirecting"  # 已启动下一跳，等待其结果

    @property
    def terminal(self) -> bool:
        return self in (TransactionState.SUCCEEDED, TransactionState.FAILED)


class PayloadMode(str, Enum):
    """响应体解码方式"""
    JSON = "json"
    TEXT = "text"
    BINARY = "binary"
