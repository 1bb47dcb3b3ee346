"""
Net SDK - HTTP 模块

负责 HTTP 会话、请求编排、取消和错误类型。
"""

from .async_client import AsyncHTTPClient
from .cancellation import CancellationToken
from .errors import HTTPRequestError, raise_for_result
from .request_engine import (
    RequestEngine,
    Transaction,
    ByteSink,
    CANCELLED_MESSAGE,
    PREMATURE_CLOSE_MESSAGE,
)

__all__ = [
    "AsyncHTTPClient",
    "CancellationToken",
    "HTTPRequestError",
    "raise_for_result",
    "RequestEngine",
    "Transaction",
    "ByteSink",
    "CANCELLED_MESSAGE",
    "PREMATURE_CLOSE_MESSAGE",
]
