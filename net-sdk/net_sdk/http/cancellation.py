"""
Net SDK - 取消令牌
"""

import logging
from typing import Callable, Dict

logger = logging.getLogger(__name__)


class CancellationToken:
    """取消令牌

    调用方在发起请求时传入，可在任意时刻调用 cancel()。
    每个事务在创建时注册一个回调，结束时注销；结束后再取消不产生任何效果。
    """

    def __init__(self):
        self._cancelled = False
        self._callbacks: Dict[int, Callable[[], None]] = {}
        self._next_handle = 0

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def listener_count(self) -> int:
        """当前注册的回调数"""
        return len(self._callbacks)

    def register(self, callback: Callable[[], None]) -> int:
        """注册取消回调

        Returns:
            用于注销的句柄
        """
        self._next_handle += 1
        self._callbacks[self._next_handle] = callback
        return self._next_handle

    def unregister(self, handle: int):
        self._callbacks.pop(handle, None)

    def cancel(self):
        """触发取消，重复调用无效果"""
        if self._cancelled:
            return

        self._cancelled = True
        callbacks = list(self._callbacks.values())
        self._callbacks.clear()

        logger.debug(f"Cancellation requested ({len(callbacks)} listeners)")
        for callback in callbacks:
            callback()
