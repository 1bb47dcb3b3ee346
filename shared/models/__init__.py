"""
共享数据模型包
"""

from .common import (
    TransactionState,
    PayloadMode,
    generate_id,
)

from .net import (
    UrlTarget,
    OptionsTarget,
    RequestTarget,
    TransferProgress,
    ProgressCallback,
    RequestSpec,
    NetResult,
)

__all__ = [
    # Common
    "TransactionState",
    "PayloadMode",
    "generate_id",

    # Net
    "UrlTarget",
    "OptionsTarget",
    "RequestTarget",
    "TransferProgress",
    "ProgressCallback",
    "RequestSpec",
    "NetResult",
]
