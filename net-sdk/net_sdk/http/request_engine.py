"""
Net SDK - 请求编排引擎

一次逻辑请求对应一个事务（Transaction），二进制下载每跟随一次重定向就新建一个事务。
事务把连接上出现的各种信号（数据块、结束、连接关闭、传输错误、超时、外部取消）
收敛为恰好一个 NetResult。
"""

import asyncio
import codecs
import json
import logging
from http import HTTPStatus
from typing import Any, Callable, Dict, List, Optional, Protocol, Union

import aiohttp
from aiohttp import ClientResponse, hdrs
from yarl import URL

from ..config import HTTPClientConfig
from .async_client import AsyncHTTPClient
from .cancellation import CancellationToken

from shared.models import (
    NetResult,
    OptionsTarget,
    PayloadMode,
    RequestSpec,
    TransactionState,
    TransferProgress,
    UrlTarget,
    generate_id,
)

logger = logging.getLogger(__name__)

REDIRECT_STATUSES = (HTTPStatus.MOVED_PERMANENTLY.value, HTTPStatus.FOUND.value)
BAD_REDIRECT_STATUS = HTTPStatus.NOT_FOUND.value
TOO_MANY_REDIRECTS_STATUS = HTTPStatus.BAD_REQUEST.value

CANCELLED_MESSAGE = "request cancelled"
PREMATURE_CLOSE_MESSAGE = "connection closed before the response completed"

ErrorListener = Callable[[BaseException], Any]
Target = Union[RequestSpec, UrlTarget, OptionsTarget, str]


class ByteSink(Protocol):
    """流式写盘时接收数据块的对象"""

    def write(self, data: bytes) -> Any:
        ...


class Transaction:
    """单次请求尝试

    独占一个连接及其响应、一个累积缓冲区和一个 resolved 标志。
    所有信号都先经过 _resolve 的检查置位，首个终止信号之后的信号
    不再产生任何外部可见的效果。
    """

    def __init__(
        self,
        engine: "RequestEngine",
        spec: RequestSpec,
        mode: PayloadMode,
        hop: int = 0,
        cancel_token: Optional[CancellationToken] = None,
        sink: Optional[ByteSink] = None
    ):
        self.transaction_id = generate_id("txn")
        self.engine = engine
        self.spec = spec
        self.mode = mode
        self.hop = hop
        self.cancel_token = cancel_token
        self.sink = sink

        self.url: Optional[URL] = None
        self.state = TransactionState.PENDING
        self.future: asyncio.Future = asyncio.get_running_loop().create_future()

        self._resolved = False
        self._response: Optional[ClientResponse] = None
        self._driver: Optional[asyncio.Task] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._cancel_handle: Optional[int] = None
        self._nested: Optional["Transaction"] = None
        self._destroy_reason: Optional[str] = None

        self._buffer = bytearray()
        self._received = 0
        self._total: Optional[int] = None
        self._sinking = False

    @property
    def resolved(self) -> bool:
        return self._resolved

    # ==================== 生命周期 ====================

    def start(self) -> "Transaction":
        """打开连接并开始驱动事务"""
        if self.cancel_token is not None:
            if self.cancel_token.cancelled:
                self._resolve(NetResult.failure(CANCELLED_MESSAGE))
                return self
            self._cancel_handle = self.cancel_token.register(self.abort)

        try:
            self.url = self.spec.url
        except ValueError as exc:
            self._resolve(NetResult.failure(f"invalid request target: {exc}"))
            return self

        logger.debug(f"[{self.transaction_id}] {self.spec.method} {self.url} (hop {self.hop})")

        self._driver = asyncio.create_task(self._drive())
        self._driver.add_done_callback(self._on_driver_done)

        if self.spec.timeout_ms:
            loop = asyncio.get_running_loop()
            self._timer = loop.call_later(self.spec.timeout_ms / 1000, self._on_timeout)

        return self

    def abort(self):
        """外部取消：销毁连接，尚未结束时立即以失败结束"""
        self._destroy(CANCELLED_MESSAGE)
        self._resolve(NetResult.failure(CANCELLED_MESSAGE, url=self._url_text, redirects=self.hop))

    def _resolve(self, result: NetResult) -> bool:
        if self._resolved:
            return False

        self._resolved = True
        self.state = TransactionState.SUCCEEDED if result.success else TransactionState.FAILED

        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._cancel_handle is not None:
            self.cancel_token.unregister(self._cancel_handle)
            self._cancel_handle = None

        logger.debug(
            f"[{self.transaction_id}] resolved {self.state.value} "
            f"(status={result.status_code}, message={result.message})"
        )
        if not self.future.done():
            self.future.set_result(result)
        return True

    def _destroy(self, reason: str):
        if self._destroy_reason is None:
            self._destroy_reason = reason

        if self._response is not None:
            self._response.close()
        if self._driver is not None and not self._driver.done():
            self._driver.cancel()
        if self._nested is not None:
            self._nested._destroy(reason)

    @property
    def _url_text(self) -> Optional[str]:
        return str(self.url) if self.url is not None else None

    # ==================== 驱动 ====================

    async def _drive(self):
        body = None
        if self.spec.body is not None:
            body = json.dumps(self.spec.body).encode("utf-8")

        try:
            response = await self.engine.session.request(
                self.spec.method,
                self.url,
                headers=self.spec.headers,
                data=body,
                allow_redirects=False,
                skip_auto_headers=(hdrs.CONTENT_TYPE,)
            )
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            self._on_error(exc)
            return

        try:
            if not self._on_response(response):
                return

            async for chunk in response.content.iter_any():
                self._on_data(chunk)
                if self._resolved:
                    return

            self._on_end()
        except (aiohttp.ClientPayloadError, aiohttp.ServerDisconnectedError) as exc:
            self._on_close(f"{PREMATURE_CLOSE_MESSAGE}: {exc}")
            self.engine.emit_error(exc)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            self._on_error(exc)
        finally:
            response.release()

    def _on_driver_done(self, task: asyncio.Task):
        # 驱动结束即连接关闭
        if task.cancelled():
            self._on_close(self._destroy_reason or PREMATURE_CLOSE_MESSAGE)
            return

        exc = task.exception()
        if exc is not None:
            logger.error(f"[{self.transaction_id}] request driver failed: {exc!r}", exc_info=exc)
            self._on_close(f"request failed: {exc}")
            return

        self._on_close(PREMATURE_CLOSE_MESSAGE)

    def _on_timeout(self):
        self._timer = None
        if self._resolved:
            return

        logger.warning(f"[{self.transaction_id}] {self.url} timed out after {self.spec.timeout_ms} ms")
        self._destroy(f"request timed out after {self.spec.timeout_ms} ms")

    # ==================== 信号 ====================

    def _on_error(self, exc: BaseException):
        message = self._destroy_reason or f"{type(exc).__name__}: {exc}"
        if self._resolve(NetResult.failure(message, url=self._url_text, redirects=self.hop)):
            logger.warning(f"[{self.transaction_id}] transport error for {self.url}: {exc!r}")
        else:
            logger.warning(f"[{self.transaction_id}] transport error after completion: {exc!r}")

        self.engine.emit_error(exc)

    def _on_close(self, message: str):
        if self.state is TransactionState.REDIRECTING:
            return

        if self._destroy_reason is not None:
            message = self._destroy_reason
        self._resolve(NetResult.failure(message, url=self._url_text, redirects=self.hop))

    def _on_response(self, response: ClientResponse) -> bool:
        """收到响应头；返回是否继续读取响应体"""
        self._response = response
        status = response.status
        logger.debug(f"[{self.transaction_id}] {status} {response.reason} from {self.url}")

        if status in REDIRECT_STATUSES:
            if self.mode is PayloadMode.BINARY:
                self._follow_redirect(response)
            else:
                self._resolve(NetResult(
                    success=False,
                    status_code=status,
                    location=response.headers.get(hdrs.LOCATION),
                    message=response.reason,
                    url=self._url_text,
                    redirects=self.hop
                ))
            return False

        # Content-Length 是压缩后的长度，解压后的数据块无法与之比较
        encoding = response.headers.get(hdrs.CONTENT_ENCODING, "identity").lower()
        self._total = response.content_length if encoding == "identity" else None
        self._sinking = self.sink is not None and status < 300
        return True

    def _on_data(self, chunk: bytes):
        if self._resolved or not chunk:
            return

        self._received += len(chunk)
        if self._sinking:
            self.sink.write(chunk)
        else:
            self._buffer.extend(chunk)

        if self.spec.progress is not None:
            self.spec.progress(TransferProgress(
                chunk_bytes=len(chunk),
                received_bytes=self._received,
                total_bytes=self._total
            ))

    def _on_end(self):
        if self._resolved:
            return

        response = self._response
        status = response.status
        fields = dict(status_code=status, url=self._url_text, redirects=self.hop)

        if status >= 300:
            self._resolve(NetResult(success=False, message=response.reason, **fields))
            return

        try:
            payload = self._decode(response)
        except ValueError as exc:
            logger.warning(f"[{self.transaction_id}] undecodable {self.mode.value} body from {self.url}: {exc}")
            self._resolve(NetResult(success=False, message=f"invalid {self.mode.value} payload: {exc}", **fields))
            return

        self._resolve(NetResult(success=True, payload=payload, message=response.reason, **fields))

    def _decode(self, response: ClientResponse) -> Any:
        if self.mode is PayloadMode.BINARY:
            return None if self._sinking else bytes(self._buffer)

        charset = response.charset or "utf-8"
        try:
            codecs.lookup(charset)
        except LookupError:
            charset = "utf-8"

        if self.mode is PayloadMode.TEXT:
            return self._buffer.decode(charset, errors="replace")
        return json.loads(self._buffer.decode(charset))

    # ==================== 重定向 ====================

    def _follow_redirect(self, response: ClientResponse):
        status = response.status
        location = response.headers.get(hdrs.LOCATION)
        fields = dict(url=self._url_text, redirects=self.hop)

        if not location:
            self._resolve(NetResult.failure(
                f"bad redirect: {status} from {self.url} has no Location header",
                status_code=BAD_REDIRECT_STATUS,
                **fields
            ))
            return

        next_hop = self.hop + 1
        if next_hop > self.engine.config.max_redirects:
            self._resolve(NetResult.failure(
                f"too many redirects: stopped before {location}",
                status_code=TOO_MANY_REDIRECTS_STATUS,
                **fields
            ))
            return

        try:
            next_target = UrlTarget(url=str(response.url.join(URL(location))))
        except ValueError as exc:
            self._resolve(NetResult.failure(
                f"bad redirect: {status} to {location!r}: {exc}",
                status_code=BAD_REDIRECT_STATUS,
                **fields
            ))
            return

        self.state = TransactionState.REDIRECTING
        logger.debug(f"[{self.transaction_id}] following {status} to {next_target.url} (hop {next_hop})")

        next_spec = self.spec.model_copy(update={
            "target": next_target,
            "headers": self.engine.redirect_headers(self.spec.headers),
            "body": None
        })
        self._nested = self.engine.start_binary(next_spec, next_hop, self.cancel_token, self.sink)
        self._nested.future.add_done_callback(self._on_nested_done)

    def _on_nested_done(self, future: asyncio.Future):
        self._resolve(future.result())


class RequestEngine:
    """请求编排引擎

    提供三种获取方式，共用同一个事务状态机：
    - fetch_json: 解析 JSON
    - fetch_text: 原样返回文本
    - fetch_binary: 返回字节，自动跟随 301/302

    任何失败都体现在返回的 NetResult 中，不会以异常形式抛给调用方。

    Usage:
        engine = RequestEngine(http_client)
        result = await engine.fetch_json(RequestSpec(target="https://example.com/index.json"))
        if result.success:
            print(result.payload)
    """

    def __init__(
        self,
        http_client: AsyncHTTPClient,
        config: Optional[HTTPClientConfig] = None
    ):
        self.http_client = http_client
        self.config = config or http_client.config

        # 旁路错误通知，仅用于诊断
        self._error_listeners: List[ErrorListener] = []

    @property
    def session(self) -> aiohttp.ClientSession:
        return self.http_client.session

    def on_error(self, listener: ErrorListener) -> "RequestEngine":
        """注册传输错误监听器（包括结果产生之后才出现的错误）"""
        self._error_listeners.append(listener)
        return self

    def emit_error(self, exc: BaseException):
        for listener in list(self._error_listeners):
            try:
                listener(exc)
            except Exception:
                logger.exception("Error listener failed")

    async def fetch_json(
        self,
        spec: Target,
        cancel_token: Optional[CancellationToken] = None
    ) -> NetResult:
        """获取并解析 JSON

        Args:
            spec: 请求描述（或目标 URL）
            cancel_token: 取消令牌

        Returns:
            payload 为解析后的对象；收到 301/302 时不跟随，location 给出目标
        """
        try:
            spec = RequestSpec.coerce(spec)
        except ValueError as exc:
            return self.invalid_target(exc)

        transaction = Transaction(self, spec, PayloadMode.JSON, 0, cancel_token)
        return await self._complete(transaction.start())

    async def fetch_text(
        self,
        spec: Target,
        cancel_token: Optional[CancellationToken] = None
    ) -> NetResult:
        """获取文本，行为同 fetch_json，但不解析"""
        try:
            spec = RequestSpec.coerce(spec)
        except ValueError as exc:
            return self.invalid_target(exc)

        transaction = Transaction(self, spec, PayloadMode.TEXT, 0, cancel_token)
        return await self._complete(transaction.start())

    async def fetch_binary(
        self,
        target: Target,
        redirect_depth: int = 0,
        *,
        cancel_token: Optional[CancellationToken] = None,
        sink: Optional[ByteSink] = None
    ) -> NetResult:
        """获取二进制内容

        Args:
            target: 请求描述（或目标 URL）
            redirect_depth: 已跟随的重定向次数
            cancel_token: 取消令牌
            sink: 提供时数据块直接写入 sink，payload 为空

        Returns:
            payload 为完整字节内容
        """
        try:
            spec = RequestSpec.coerce(target)
        except ValueError as exc:
            return self.invalid_target(exc)

        return await self._complete(self.start_binary(spec, redirect_depth, cancel_token, sink))

    def start_binary(
        self,
        spec: RequestSpec,
        redirect_depth: int,
        cancel_token: Optional[CancellationToken] = None,
        sink: Optional[ByteSink] = None
    ) -> Transaction:
        return Transaction(self, spec, PayloadMode.BINARY, redirect_depth, cancel_token, sink).start()

    def redirect_headers(self, headers: Dict[str, str]) -> Dict[str, str]:
        """重定向时沿用原请求头，仅在缺少 User-Agent 时补充默认值"""
        carried = dict(headers)
        if not any(name.lower() == "user-agent" for name in carried):
            carried[hdrs.USER_AGENT] = self.config.user_agent
        return carried

    def invalid_target(self, exc: ValueError) -> NetResult:
        """目标无法解析为 http(s) 地址时的失败结果"""
        logger.warning(f"Rejected request target: {exc}")
        return NetResult.failure(f"invalid request target: {exc}")

    async def _complete(self, transaction: Transaction) -> NetResult:
        try:
            return await asyncio.shield(transaction.future)
        except asyncio.CancelledError:
            transaction.abort()
            raise
