"""
Net SDK - 异步 HTTP 会话
"""

import logging
from typing import Optional

from aiohttp import ClientSession, ClientTimeout, TCPConnector

from ..config import HTTPClientConfig

logger = logging.getLogger(__name__)


class AsyncHTTPClient:
    """异步 HTTP 会话管理

    负责：
    - aiohttp 会话的创建与关闭
    - 连接与读取超时

    请求本身由 RequestEngine 驱动，这里不做重试。
    """

    def __init__(self, config: HTTPClientConfig):
        self.config = config
        self._session: Optional[ClientSession] = None

    async def connect(self):
        """建立连接池"""
        if self._session is None:
            connector = TCPConnector(
                limit=self.config.max_connections,
                keepalive_timeout=self.config.keepalive_timeout
            )
            timeout = ClientTimeout(
                total=None,
                connect=self.config.connect_timeout,
                sock_read=self.config.read_timeout
            )

            self._session = ClientSession(
                connector=connector,
                timeout=timeout
            )
            logger.info("HTTP client connected")

    async def disconnect(self):
        """关闭连接池"""
        if self._session:
            await self._session.close()
            self._session = None
            logger.info("HTTP client disconnected")

    @property
    def connected(self) -> bool:
        return self._session is not None and not self._session.closed

    @property
    def session(self) -> ClientSession:
        if self._session is None:
            raise RuntimeError("HTTP client not connected. Call connect() first.")
        return self._session

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.disconnect()
