"""
Net SDK - 客户端入口
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .config import NetConfig
from .http.async_client import AsyncHTTPClient
from .http.cancellation import CancellationToken
from .http.request_engine import ErrorListener, RequestEngine, Target

from shared.models import NetResult, ProgressCallback, RequestSpec

logger = logging.getLogger(__name__)


class NetClient:
    """Net SDK 主入口

    提供统一的接口来获取远程资源：
    - JSON 接口
    - 文本
    - 二进制下载（可直接写盘）

    Usage:
        async with NetClient(config) as client:
            index = await client.fetch_json("https://example.com/toolchains.json")

            token = CancellationToken()
            result = await client.download(
                "https://example.com/toolchain.tar.gz",
                "/tmp/toolchain.tar.gz",
                progress=on_progress,
                cancel_token=token
            )
    """

    def __init__(self, config: Optional[NetConfig] = None):
        self.config = config or NetConfig.from_env()

        # 核心组件
        self.http_client = AsyncHTTPClient(self.config.http)
        self.engine = RequestEngine(self.http_client, self.config.http)

        self._connected = False

    async def connect(self):
        """建立 HTTP 会话"""
        if self._connected:
            return

        await self.http_client.connect()
        self._connected = True
        logger.info(f"Net client connected ({self.config.service_name})")

    async def disconnect(self):
        """关闭 HTTP 会话"""
        if not self._connected:
            return

        await self.http_client.disconnect()
        self._connected = False
        logger.info("Net client disconnected")

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.disconnect()

    def on_error(self, listener: ErrorListener) -> "NetClient":
        """注册传输错误监听器，仅用于诊断，不影响请求结果"""
        self.engine.on_error(listener)
        return self

    # ==================== 请求接口 ====================

    async def fetch_json(
        self,
        target: Target,
        *,
        headers: Optional[Dict[str, str]] = None,
        body: Optional[Any] = None,
        timeout_ms: Optional[int] = None,
        cancel_token: Optional[CancellationToken] = None
    ) -> NetResult:
        """获取 JSON

        Args:
            target: URL、目标或完整的 RequestSpec
            headers: 请求头
            body: 请求体，提供时以 POST 发送
            timeout_ms: 超时时间
            cancel_token: 取消令牌

        Returns:
            请求结果
        """
        try:
            spec = self._build_spec(target, headers=headers, body=body, timeout_ms=timeout_ms)
        except ValueError as exc:
            return self.engine.invalid_target(exc)

        return await self.engine.fetch_json(spec, cancel_token)

    async def fetch_text(
        self,
        target: Target,
        *,
        headers: Optional[Dict[str, str]] = None,
        body: Optional[Any] = None,
        timeout_ms: Optional[int] = None,
        cancel_token: Optional[CancellationToken] = None
    ) -> NetResult:
        """获取文本"""
        try:
            spec = self._build_spec(target, headers=headers, body=body, timeout_ms=timeout_ms)
        except ValueError as exc:
            return self.engine.invalid_target(exc)

        return await self.engine.fetch_text(spec, cancel_token)

    async def fetch_binary(
        self,
        target: Target,
        *,
        headers: Optional[Dict[str, str]] = None,
        timeout_ms: Optional[int] = None,
        progress: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None
    ) -> NetResult:
        """获取二进制内容，自动跟随重定向"""
        try:
            spec = self._build_spec(target, headers=headers, timeout_ms=timeout_ms, progress=progress)
        except ValueError as exc:
            return self.engine.invalid_target(exc)

        return await self.engine.fetch_binary(spec, cancel_token=cancel_token)

    async def download(
        self,
        target: Target,
        destination: Union[str, Path],
        *,
        headers: Optional[Dict[str, str]] = None,
        timeout_ms: Optional[int] = None,
        progress: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None
    ) -> NetResult:
        """下载到文件

        数据先写入同目录下的临时文件，成功后替换目标文件；失败时目标文件保持不变。

        Returns:
            请求结果，成功时 payload 为目标路径
        """
        try:
            spec = self._build_spec(target, headers=headers, timeout_ms=timeout_ms, progress=progress)
        except ValueError as exc:
            return self.engine.invalid_target(exc)

        destination = Path(destination)
        destination.parent.mkdir(parents=True, exist_ok=True)

        fd, temp_name = tempfile.mkstemp(
            prefix=f".{destination.name}.",
            suffix=".part",
            dir=destination.parent
        )
        temp_path = Path(temp_name)

        try:
            with os.fdopen(fd, "wb") as handle:
                result = await self.engine.fetch_binary(spec, cancel_token=cancel_token, sink=handle)

            if not result.success:
                logger.warning(f"Download to {destination} failed: {result.message}")
                return result

            os.replace(temp_path, destination)
            logger.info(f"Downloaded {result.url} -> {destination}")
            return result.model_copy(update={"payload": destination})
        finally:
            if temp_path.exists():
                temp_path.unlink()

    def _build_spec(
        self,
        target: Target,
        headers: Optional[Dict[str, str]] = None,
        body: Optional[Any] = None,
        timeout_ms: Optional[int] = None,
        progress: Optional[ProgressCallback] = None
    ) -> RequestSpec:
        if isinstance(target, RequestSpec):
            if target.timeout_ms is None and self.config.default_timeout_ms:
                return target.model_copy(update={"timeout_ms": self.config.default_timeout_ms})
            return target

        return RequestSpec(
            target=target,
            headers=headers or {},
            body=body,
            timeout_ms=timeout_ms or self.config.default_timeout_ms,
            progress=progress
        )
