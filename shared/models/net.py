"""
共享数据模型 - 网络请求相关
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Annotated, Any, Callable, Dict, Literal, Optional, Union

from yarl import URL


class UrlTarget(BaseModel):
    """以绝对 URL 描述的请求目标"""
    model_config = ConfigDict(frozen=True)

    kind: Literal["url"] = "url"
    url: str = Field(..., description="绝对 URL（http/https）")

    @field_validator("url")
    @classmethod
    def _require_absolute(cls, value: str) -> str:
        parsed = URL(value)
        if not parsed.is_absolute() or parsed.scheme not in ("http", "https"):
            raise ValueError(f"not an absolute http(s) URL: {value!r}")
        return value

    def to_url(self) -> URL:
        return URL(self.url)


class OptionsTarget(BaseModel):
    """以 host/port/path 描述的请求目标"""
    model_config = ConfigDict(frozen=True)

    kind: Literal["options"] = "options"
    protocol: Literal["http", "https"] = Field("http", description="协议")
    host: str = Field(..., description="主机名")
    port: Optional[int] = Field(None, ge=1, le=65535, description="端口，缺省按协议")
    path: str = Field("/", description="路径，可带查询串")

    def to_url(self) -> URL:
        base = URL.build(scheme=self.protocol, host=self.host, port=self.port)
        return base.join(URL(self.path or "/"))


RequestTarget = Annotated[Union[UrlTarget, OptionsTarget], Field(discriminator="kind")]


class TransferProgress(BaseModel):
    """传输进度

    每收到一个数据块回调一次。声明了 Content-Length 时 fraction
    为本块占总量的比例，否则为 None，只能参考 received_bytes。
    """
    chunk_bytes: int = Field(..., ge=0, description="本块字节数")
    received_bytes: int = Field(..., ge=0, description="累计已接收字节数")
    total_bytes: Optional[int] = Field(None, description="声明的总字节数")

    @property
    def fraction(self) -> Optional[float]:
        if not self.total_bytes:
            return None
        return self.chunk_bytes / self.total_bytes


ProgressCallback = Callable[[TransferProgress], Any]


class RequestSpec(BaseModel):
    """单次逻辑请求的描述

    在一次事务的生命周期内不可变。字符串目标会被转换为 UrlTarget。
    """
    model_config = ConfigDict(frozen=True)

    target: RequestTarget
    headers: Dict[str, str] = Field(default_factory=dict, description="请求头")
    body: Optional[Any] = Field(None, description="请求体，以 JSON 文本发送")
    timeout_ms: Optional[int] = Field(None, gt=0, description="单次请求超时（毫秒）")
    progress: Optional[ProgressCallback] = Field(None, exclude=True, description="进度回调")

    @field_validator("target", mode="before")
    @classmethod
    def _coerce_target(cls, value: Any) -> Any:
        if isinstance(value, (str, URL)):
            return {"kind": "url", "url": str(value)}
        if isinstance(value, dict) and "kind" not in value:
            return {"kind": "url" if "url" in value else "options", **value}
        return value

    @classmethod
    def coerce(cls, target: Union["RequestSpec", UrlTarget, OptionsTarget, str]) -> "RequestSpec":
        if isinstance(target, RequestSpec):
            return target
        return cls(target=target)

    @property
    def method(self) -> str:
        """有请求体时为提交（POST），否则为获取（GET）"""
        return "POST" if self.body is not None else "GET"

    @property
    def url(self) -> URL:
        return self.target.to_url()


class NetResult(BaseModel):
    """一次逻辑请求的最终结果

    每次 fetch 调用恰好产生一个。
    """
    success: bool
    status_code: Optional[int] = Field(None, description="HTTP 状态码，未收到响应时为空")
    payload: Optional[Any] = Field(None, description="解码后的响应内容")
    message: Optional[str] = Field(None, description="传输或协议层说明")
    location: Optional[str] = Field(None, description="未跟随的重定向地址")

    url: Optional[str] = Field(None, description="产生结果的最终 URL")
    redirects: int = Field(0, description="已跟随的重定向次数")

    @classmethod
    def failure(cls, message: str, status_code: Optional[int] = None, **kwargs) -> "NetResult":
        return cls(success=False, status_code=status_code, message=message, **kwargs)
