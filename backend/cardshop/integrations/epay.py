"""
易支付（epay）网关集成模块

封装易支付表单协议的签名和退款接口：
- generate_sign / verify_sign: MD5 签名和验签
- build_payment_form: 生成支付表单（由前端以 POST 方式提交到网关）
- build_refund_params: 生成退款请求参数
- EpayClient.refund: 服务端直接调用网关退款接口

签名规则：
1. 去掉 sign、sign_type 和空值参数
2. 按参数名 ASCII 升序排序，拼接成 k1=v1&k2=v2
3. 末尾直接拼接商户密钥，取 MD5 小写十六进制
"""
from __future__ import annotations

import hashlib  # MD5 签名
import hmac  # 常量时间比较
import logging
from collections.abc import Mapping
from dataclasses import dataclass  # 数据类
from decimal import Decimal
from typing import Any

import httpx  # HTTP 客户端

from cardshop.api.errors import AppError  # 自定义异常
from cardshop.core.config import Settings

logger = logging.getLogger(__name__)

SIGN_TYPE = "MD5"
_UNSIGNED_KEYS = frozenset({"sign", "sign_type"})


@dataclass(frozen=True)
class PaymentForm:
    """
    网关表单描述

    前端需要创建一个 POST 表单，action 为 url，
    params 中的每一项作为隐藏字段提交。
    """
    url: str  # 表单提交地址
    params: dict[str, str]  # 已签名的表单参数


@dataclass(frozen=True)
class RefundResult:
    """网关退款接口的返回结果"""
    processed: bool  # 网关是否已受理退款（code == 1）
    message: str | None = None  # 网关返回的提示信息
    raw: dict[str, Any] | None = None  # 原始响应数据


def format_money(amount: Decimal | float | str) -> str:
    """金额格式化为两位小数字符串"""
    return f"{Decimal(str(amount)):.2f}"


def generate_sign(params: Mapping[str, Any], key: str) -> str:
    """计算参数签名，相同参数和密钥得到相同结果"""
    items = sorted(
        (k, str(v))
        for k, v in params.items()
        if k not in _UNSIGNED_KEYS and v is not None and str(v) != ""
    )
    payload = "&".join(f"{k}={v}" for k, v in items)
    return hashlib.md5(f"{payload}{key}".encode("utf-8")).hexdigest()


def verify_sign(params: Mapping[str, Any], key: str) -> bool:
    """校验参数中的 sign 字段"""
    sign = params.get("sign")
    if not sign:
        return False
    return hmac.compare_digest(str(sign).lower(), generate_sign(params, key))


def build_payment_form(
    *,
    settings: Settings,
    order_no: str,
    product_name: str,
    amount: Decimal,
) -> PaymentForm:
    """
    生成支付表单

    Args:
        settings: 应用配置（商户 ID、密钥、站点地址）
        order_no: 订单号（作为 out_trade_no）
        product_name: 商品名称
        amount: 实付金额

    Returns:
        PaymentForm: 网关地址和已签名的参数
    """
    base_url = settings.site_base_url
    params = {
        "pid": settings.EPAY_MERCHANT_ID,
        "type": settings.EPAY_PAY_TYPE,
        "out_trade_no": order_no,
        "notify_url": f"{base_url}/api/notify",
        "return_url": f"{base_url}/callback/{order_no}",
        "name": product_name,
        "money": format_money(amount),
        "sign_type": SIGN_TYPE,
    }
    params["sign"] = generate_sign(params, settings.EPAY_MERCHANT_KEY)
    return PaymentForm(url=settings.EPAY_PAY_URL, params=params)


def build_refund_params(
    *,
    settings: Settings,
    order_no: str,
    trade_no: str,
    amount: Decimal,
) -> dict[str, str]:
    """生成退款请求参数（网关以商户密钥明文鉴权）"""
    return {
        "act": "refund",
        "pid": settings.EPAY_MERCHANT_ID,
        "key": settings.EPAY_MERCHANT_KEY,
        "trade_no": trade_no,
        "out_trade_no": order_no,
        "money": format_money(amount),
    }


class EpayClient:
    """
    易支付服务端 API 客户端

    目前只用于退款：POST {EPAY_API_URL}，表单参数见 build_refund_params。
    """

    def __init__(self, settings: Settings) -> None:
        self._api_url = settings.EPAY_API_URL
        self._timeout = settings.EPAY_TIMEOUT_SECONDS

    def refund(self, params: Mapping[str, str]) -> RefundResult:
        """
        调用网关退款接口

        Raises:
            AppError: 网关无法访问或返回非 JSON 时抛出 502201 错误
        """
        try:
            with httpx.Client(timeout=self._timeout) as client:
                resp = client.post(self._api_url, data=dict(params))
                resp.raise_for_status()
                data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Epay refund request failed for %s: %s", params.get("out_trade_no"), e)
            raise AppError(code=502201, message="Payment gateway unavailable", status_code=502)

        code = data.get("code") if isinstance(data, dict) else None
        processed = str(code) == "1"
        message = data.get("msg") if isinstance(data, dict) else None
        return RefundResult(processed=processed, message=message, raw=data if isinstance(data, dict) else None)
