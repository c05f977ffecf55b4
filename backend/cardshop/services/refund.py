"""
退款服务（管理后台）

退款有两种方式，最终都需要管理员确认：
- 表单退款：生成已签名的退款表单，由后台页面提交到网关
- 代理退款：服务端直接调用网关退款接口，网关受理后自动标记已退款；
  未受理时由管理员手动确认后调用 mark_order_refunded

只有已支付/已发货、并且有真实网关交易号的订单可以退款。
重复标记已退款的订单不会报错，也不会修改订单。
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlmodel import Session

from cardshop import crud
from cardshop.api.errors import AppError
from cardshop.core.config import Settings
from cardshop.enums import COMPLETED_ORDER_STATUSES, OrderStatus
from cardshop.integrations.epay import EpayClient, PaymentForm, build_refund_params
from cardshop.models import Order, utc_now
from cardshop.services.checkout import POINTS_REDEMPTION_TRADE_NO

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProxyRefundResult:
    """代理退款结果"""
    processed: bool  # 网关是否已受理
    message: str | None = None  # 网关提示信息
    order: Order | None = None  # 受理后更新的订单


def _get_order(session: Session, order_no: str) -> Order:
    order = crud.get_order_by_no(session=session, order_no=order_no)
    if not order:
        raise AppError(code=404201, message="Order not found", status_code=404)
    return order


def is_refundable(order: Order) -> bool:
    """订单是否可以通过网关退款"""
    if order.status not in COMPLETED_ORDER_STATUSES:
        return False
    return bool(order.trade_no) and order.trade_no != POINTS_REDEMPTION_TRADE_NO


def _ensure_refundable(order: Order) -> None:
    if not is_refundable(order):
        raise AppError(code=409201, message="Order is not refundable", status_code=409)


def get_refund_form(*, session: Session, settings: Settings, order_no: str) -> PaymentForm:
    """
    生成退款表单

    Raises:
        AppError: 订单不存在（404201）或不可退款（409201）
    """
    order = _get_order(session, order_no)
    _ensure_refundable(order)
    params = build_refund_params(
        settings=settings,
        order_no=order.order_no,
        trade_no=order.trade_no or "",
        amount=order.amount,
    )
    return PaymentForm(url=settings.EPAY_API_URL, params=params)


def mark_order_refunded(*, session: Session, order_no: str) -> Order:
    """
    标记订单已退款（管理员确认后调用）

    已退款的订单直接返回，不做修改。

    Raises:
        AppError: 订单不存在（404201）或状态不允许退款（409201）
    """
    order = _get_order(session, order_no)
    if order.status == OrderStatus.refunded:
        return order
    if order.status not in COMPLETED_ORDER_STATUSES:
        raise AppError(code=409201, message="Order is not refundable", status_code=409)

    order.status = OrderStatus.refunded
    order.updated_at = utc_now()
    session.add(order)
    session.commit()
    session.refresh(order)
    logger.info("Order %s marked as refunded", order_no)
    return order


def proxy_refund(
    *,
    session: Session,
    settings: Settings,
    order_no: str,
    client: EpayClient | None = None,
) -> ProxyRefundResult:
    """
    服务端代理退款

    Args:
        session: 数据库会话
        settings: 应用配置
        order_no: 订单号
        client: 网关客户端（测试时可注入）

    Returns:
        ProxyRefundResult: processed=True 时订单已标记为已退款
    """
    order = _get_order(session, order_no)
    _ensure_refundable(order)
    params = build_refund_params(
        settings=settings,
        order_no=order.order_no,
        trade_no=order.trade_no or "",
        amount=order.amount,
    )
    result = (client or EpayClient(settings)).refund(params)
    if not result.processed:
        logger.info("Gateway did not process refund for %s: %s", order_no, result.message)
        return ProxyRefundResult(processed=False, message=result.message)

    updated = mark_order_refunded(session=session, order_no=order_no)
    return ProxyRefundResult(processed=True, message=result.message, order=updated)
