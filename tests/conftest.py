"""
测试夹具

ScriptedHTTPServer 直接在 socket 上写出 HTTP/1.1 响应，用于精确控制
分块边界、提前断开和挂起等情况。
"""

import asyncio
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import pytest
import pytest_asyncio

from net_sdk import AsyncHTTPClient, HTTPClientConfig, RequestEngine


@dataclass
class Route:
    """一条脚本化响应"""
    status: int = 200
    reason: str = "OK"
    headers: Dict[str, str] = field(default_factory=dict)
    chunks: List[bytes] = field(default_factory=list)
    declare_length: bool = True
    content_length: Optional[int] = None  # 覆盖声明的长度，用于模拟提前断开
    chunk_delay: float = 0.01
    hang_before_headers: bool = False
    hang_after_body: bool = False


@dataclass
class RecordedRequest:
    method: str
    path: str
    headers: Dict[str, str]
    body: bytes


class ScriptedHTTPServer:
    """按路径返回预设响应的最小 HTTP 服务器"""

    def __init__(self):
        self.routes: Dict[str, Route] = {}
        self.requests: List[RecordedRequest] = []
        self.port: Optional[int] = None
        self._server: Optional[asyncio.AbstractServer] = None
        self._handlers = set()

    def route(self, path: str, **kwargs) -> Route:
        self.routes[path] = Route(**kwargs)
        return self.routes[path]

    def redirect_chain(self, prefix: str, hops: int, body: bytes = b"payload"):
        """prefix/0 -> prefix/1 -> ... -> prefix/{hops}，最后一跳返回 body"""
        for i in range(hops):
            self.route(f"{prefix}/{i}", status=302, reason="Found", headers={"Location": f"{prefix}/{i + 1}"})
        self.route(f"{prefix}/{hops}", chunks=[body])

    def url(self, path: str) -> str:
        return f"http://127.0.0.1:{self.port}{path}"

    def paths(self) -> List[str]:
        return [request.path for request in self.requests]

    async def start(self):
        self._server = await asyncio.start_server(self._handle, "127.0.0.1", 0)
        self.port = self._server.sockets[0].getsockname()[1]

    async def stop(self):
        handlers = list(self._handlers)
        for task in handlers:
            task.cancel()
        await asyncio.gather(*handlers, return_exceptions=True)

        self._server.close()
        await self._server.wait_closed()

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        task = asyncio.current_task()
        self._handlers.add(task)
        try:
            await self._serve(reader, writer)
        except (asyncio.IncompleteReadError, ConnectionError):
            pass
        finally:
            self._handlers.discard(task)
            writer.close()

    async def _serve(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        head = await reader.readuntil(b"\r\n\r\n")
        lines = head.decode("latin-1").split("\r\n")
        method, path, _ = lines[0].split(" ", 2)

        headers = {}
        for line in lines[1:]:
            if not line:
                continue
            name, _, value = line.partition(":")
            headers[name.strip().lower()] = value.strip()

        body = b""
        if "content-length" in headers:
            body = await reader.readexactly(int(headers["content-length"]))
        self.requests.append(RecordedRequest(method, path, headers, body))

        route = self.routes.get(path) or Route(status=404, reason="Not Found")
        if route.hang_before_headers:
            await asyncio.Event().wait()

        response_lines = [f"HTTP/1.1 {route.status} {route.reason}"]
        for name, value in route.headers.items():
            response_lines.append(f"{name}: {value}")
        if route.content_length is not None:
            response_lines.append(f"Content-Length: {route.content_length}")
        elif route.declare_length:
            response_lines.append(f"Content-Length: {sum(len(chunk) for chunk in route.chunks)}")
        response_lines.append("Connection: close")

        writer.write(("\r\n".join(response_lines) + "\r\n\r\n").encode("latin-1"))
        await writer.drain()

        for chunk in route.chunks:
            await asyncio.sleep(route.chunk_delay)
            writer.write(chunk)
            await writer.drain()

        if route.hang_after_body:
            await asyncio.Event().wait()


@pytest_asyncio.fixture
async def server():
    """脚本化 HTTP 服务器"""
    scripted = ScriptedHTTPServer()
    await scripted.start()
    yield scripted
    await scripted.stop()


@pytest.fixture
def http_config():
    return HTTPClientConfig(connect_timeout=5.0, user_agent="toolchain-net-tests/1.0")


@pytest_asyncio.fixture
async def engine(http_config):
    """已连接的请求引擎"""
    http_client = AsyncHTTPClient(http_config)
    await http_client.connect()
    yield RequestEngine(http_client, http_config)
    await http_client.disconnect()
