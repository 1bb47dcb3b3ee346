"""
Net SDK - HTTP 错误
"""

from typing import Any

from shared.models import NetResult


class HTTPRequestError(Exception):
    """HTTP 请求错误"""

    def __init__(self, result: NetResult):
        self.result = result
        detail = result.message or "request failed"
        if result.status_code is not None:
            detail = f"{result.status_code}: {detail}"
        super().__init__(detail)

    @property
    def status_code(self):
        return self.result.status_code


def raise_for_result(result: NetResult) -> Any:
    """成功时返回 payload，失败时抛出 HTTPRequestError"""
    if not result.success:
        raise HTTPRequestError(result)
    return result.payload
