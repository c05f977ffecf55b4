"""
自定义异常模块

定义应用特定的异常类，用于统一的错误处理。
所有业务异常都继承自 AppError，在 main.py 中有统一的异常处理器。
"""
from __future__ import annotations

from cardshop.enums import CheckoutError


class AppError(Exception):
    """
    应用自定义异常类

    - code: 业务错误码（用于前端区分不同错误）
    - message: 错误消息（结账失败时为多语言文案 key）
    - status_code: HTTP 状态码（400, 404, 409 等）

    使用示例：
        raise AppError(code=404201, message="Order not found", status_code=404)
    """

    def __init__(self, *, code: int, message: str, status_code: int = 400) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code


# 结账失败原因 -> (业务错误码, HTTP 状态码)
_CHECKOUT_ERROR_CODES: dict[CheckoutError, tuple[int, int]] = {
    CheckoutError.product_not_found: (404101, 404),
    CheckoutError.user_blocked: (403101, 403),
    CheckoutError.out_of_stock: (409101, 409),
    CheckoutError.limit_exceeded: (409102, 409),
    CheckoutError.stock_locked: (409103, 409),
    CheckoutError.points_mismatch: (409104, 409),
}


def checkout_failed(error: CheckoutError) -> AppError:
    """
    把结账失败原因转换为 AppError

    message 使用多语言文案 key（如 "buy.outOfStock"），由前端翻译展示。
    """
    code, status_code = _CHECKOUT_ERROR_CODES[error]
    return AppError(code=code, message=error.value, status_code=status_code)
