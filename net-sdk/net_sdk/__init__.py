"""
Net SDK - 主入口包

Net SDK 为工具链管理程序提供远程资源获取能力，包括：
- JSON 接口调用
- 文本获取
- 二进制下载（重定向、进度、取消、超时）

主要组件：
- NetClient: 主客户端类
- RequestEngine: 请求编排引擎
- CancellationToken: 取消令牌
- AsyncHTTPClient: HTTP 会话
"""

from .client import NetClient
from .config import NetConfig, HTTPClientConfig
from .http.async_client import AsyncHTTPClient
from .http.cancellation import CancellationToken
from .http.errors import HTTPRequestError, raise_for_result
from .http.request_engine import RequestEngine, Transaction

__version__ = "0.1.0"

__all__ = [
    # 主客户端
    "NetClient",

    # 配置
    "NetConfig",
    "HTTPClientConfig",

    # HTTP
    "AsyncHTTPClient",
    "RequestEngine",
    "Transaction",
    "CancellationToken",

    # 错误
    "HTTPRequestError",
    "raise_for_result",
]
