"""
Net SDK - 配置管理
"""

from pydantic import BaseModel, Field
from typing import Optional


DEFAULT_USER_AGENT = "toolchain-net/0.1.0"


class HTTPClientConfig(BaseModel):
    """HTTP 客户端配置"""
    connect_timeout: float = Field(30.0, description="建立连接超时（秒）")
    read_timeout: Optional[float] = Field(None, description="两次读取之间的超时（秒）")

    # 连接池
    max_connections: int = Field(100, description="最大连接数")
    keepalive_timeout: int = Field(30, description="Keep-alive 超时")

    # 重定向
    max_redirects: int = Field(5, ge=0, description="二进制下载最多跟随的重定向次数")
    user_agent: str = Field(DEFAULT_USER_AGENT, description="重定向时补充的默认 User-Agent")


class NetConfig(BaseModel):
    """Net SDK 总配置"""
    service_name: str = Field("toolchain-net", description="服务名称")

    http: HTTPClientConfig = Field(default_factory=HTTPClientConfig)

    # 请求配置
    default_timeout_ms: Optional[int] = Field(None, gt=0, description="默认请求超时（毫秒）")

    @classmethod
    def from_env(cls) -> "NetConfig":
        """从环境变量加载配置"""
        import os

        http = HTTPClientConfig(
            user_agent=os.getenv("NET_USER_AGENT", DEFAULT_USER_AGENT),
            max_redirects=int(os.getenv("NET_MAX_REDIRECTS", "5")),
        )
        timeout_ms = os.getenv("NET_DEFAULT_TIMEOUT_MS")

        return cls(
            service_name=os.getenv("NET_SERVICE_NAME", "toolchain-net"),
            http=http,
            default_timeout_ms=int(timeout_ms) if timeout_ms else None,
        )
