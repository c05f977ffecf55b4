"""
结账服务

创建订单的完整流程：
1. 校验商品存在、用户未被封禁
2. 取消该商品超时未支付的订单（尽力而为，失败不影响下单）
3. 计算积分抵扣（1 积分 = 1 元，最多抵扣到 0）
4. 检查可用库存和限购数量
5. 在同一个事务中：扣减积分、预留卡密、创建订单
   - 实付金额为 0：直接标记卡密已使用，订单状态为已发货
   - 否则：订单为待支付，返回支付网关表单

业务失败（库存不足、限购等）通过 CheckoutResult 返回，不抛异常；
只有无法识别的数据库错误才会向上抛出。
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from cardshop import crud
from cardshop.core.config import Settings
from cardshop.core.schema import run_with_schema_repair
from cardshop.core.snowflake import generate_order_no
from cardshop.enums import CheckoutError, OrderStatus
from cardshop.integrations.epay import build_payment_form
from cardshop.models import Order, Product, User, utc_now

logger = logging.getLogger(__name__)

# 纯积分订单没有网关交易号，使用该标记
POINTS_REDEMPTION_TRADE_NO = "POINTS_REDEMPTION"

_CENT = Decimal("0.01")
_ZERO = Decimal("0.00")


@dataclass(frozen=True)
class CheckoutResult:
    """
    结账结果

    - 成功且金额为 0：url 为订单详情页，is_zero_price=True
    - 成功且需要支付：url 为网关地址，params 为已签名的表单参数
    - 失败：success=False，error 为失败原因
    """
    success: bool
    error: CheckoutError | None = None
    order_no: str | None = None
    url: str | None = None
    params: dict[str, str] | None = None
    is_zero_price: bool = False

    @classmethod
    def fail(cls, error: CheckoutError) -> CheckoutResult:
        return cls(success=False, error=error)


@dataclass(frozen=True)
class PointsQuote:
    """积分抵扣试算结果（事务内会再次校验余额）"""
    points_to_use: int
    final_amount: Decimal

    @property
    def is_zero_price(self) -> bool:
        return self.final_amount <= 0


class CheckoutAborted(Exception):
    """事务内发现并发冲突，回滚并返回对应的失败原因"""

    def __init__(self, error: CheckoutError) -> None:
        super().__init__(error.value)
        self.error = error


def quote_points(*, price: Decimal, balance: int, use_points: bool) -> PointsQuote:
    """
    计算积分抵扣

    抵扣积分 = min(余额, ceil(价格))，实付金额 = max(0, 价格 - 抵扣积分)。
    """
    price = Decimal(price).quantize(_CENT)
    if not use_points or balance <= 0:
        return PointsQuote(points_to_use=0, final_amount=price)
    points_to_use = min(balance, math.ceil(price))
    final_amount = max(_ZERO, price - points_to_use).quantize(_CENT)
    return PointsQuote(points_to_use=points_to_use, final_amount=final_amount)


def _cancel_expired_orders(*, session: Session, settings: Settings, product_id: str) -> None:
    try:
        crud.cancel_expired_orders(
            session=session,
            product_id=product_id,
            now=utc_now(),
            ttl_seconds=settings.PENDING_ORDER_TTL_SECONDS,
        )
    except SQLAlchemyError as e:
        session.rollback()
        logger.warning("Failed to cancel expired orders for product %s: %s", product_id, e)


def _purchase_limit_reached(
    *, session: Session, product: Product, user: User | None, email: str | None
) -> bool:
    limit = product.purchase_limit
    if not limit or limit <= 0:
        return False
    owner_email = email or (user.email if user else None)
    purchased = crud.count_completed_purchases(
        session=session,
        product_id=product.id,
        user_id=user.id if user else None,
        email=owner_email,
    )
    return purchased >= limit


def _reserve_and_create(
    *,
    session: Session,
    settings: Settings,
    product: Product,
    order_no: str,
    quote: PointsQuote,
    user: User | None,
    email: str | None,
) -> Order:
    """
    在一个事务中扣减积分、预留卡密并创建订单

    Raises:
        CheckoutAborted: 积分余额已变化或卡密被其他订单抢先
    """
    now = utc_now()
    try:
        if quote.points_to_use > 0 and user is not None:
            deducted = crud.deduct_points(
                session=session,
                user_id=user.id,
                amount=quote.points_to_use,
                order_no=order_no,
            )
            if not deducted:
                raise CheckoutAborted(CheckoutError.points_mismatch)

        card = crud.reserve_card(
            session=session,
            product_id=product.id,
            order_no=order_no,
            now=now,
            reservation_seconds=settings.CARD_RESERVATION_SECONDS,
        )
        if card is None:
            raise CheckoutAborted(CheckoutError.stock_locked)

        order = Order(
            order_no=order_no,
            product_id=product.id,
            product_name=product.name,
            amount=quote.final_amount,
            email=email or (user.email if user else None),
            user_id=user.id if user else None,
            username=user.username if user else None,
            status=OrderStatus.pending,
            points_used=quote.points_to_use,
        )
        if quote.is_zero_price:
            card_key = card.card_key
            crud.mark_card_used(session=session, card=card, now=now)
            order.status = OrderStatus.delivered
            order.card_key = card_key
            order.trade_no = POINTS_REDEMPTION_TRADE_NO
            order.paid_at = now
            order.delivered_at = now

        session.add(order)
        session.commit()
    except Exception:
        session.rollback()
        raise
    return order


def create_order(
    *,
    session: Session,
    settings: Settings,
    product_id: str,
    email: str | None = None,
    use_points: bool = False,
    user: User | None = None,
) -> CheckoutResult:
    """
    创建订单

    Args:
        session: 数据库会话
        settings: 应用配置（预留时长、网关参数等）
        product_id: 商品 ID
        email: 下单邮箱（为空时使用登录用户的邮箱）
        use_points: 是否使用积分抵扣
        user: 当前登录用户（游客为 None）

    Returns:
        CheckoutResult: 结账结果
    """
    product = crud.get_product(session=session, product_id=product_id)
    if product is None:
        return CheckoutResult.fail(CheckoutError.product_not_found)

    if user is not None and user.is_blocked:
        return CheckoutResult.fail(CheckoutError.user_blocked)

    _cancel_expired_orders(session=session, settings=settings, product_id=product.id)

    balance = 0
    if use_points and user is not None:
        balance = crud.get_balance(session=session, user_id=user.id)
    quote = quote_points(price=product.price, balance=balance, use_points=use_points)

    self_heal = settings.SCHEMA_SELF_HEAL
    stock = run_with_schema_repair(
        session,
        lambda: crud.count_available_cards(
            session=session,
            product_id=product.id,
            now=utc_now(),
            reservation_seconds=settings.CARD_RESERVATION_SECONDS,
        ),
        enabled=self_heal,
    )
    if stock <= 0:
        return CheckoutResult.fail(CheckoutError.out_of_stock)

    if _purchase_limit_reached(session=session, product=product, user=user, email=email):
        return CheckoutResult.fail(CheckoutError.limit_exceeded)

    order_no = generate_order_no()
    try:
        run_with_schema_repair(
            session,
            lambda: _reserve_and_create(
                session=session,
                settings=settings,
                product=product,
                order_no=order_no,
                quote=quote,
                user=user,
                email=email,
            ),
            enabled=self_heal,
        )
    except CheckoutAborted as e:
        logger.info("Checkout aborted for product %s: %s", product.id, e.error.value)
        return CheckoutResult.fail(e.error)

    status = OrderStatus.delivered if quote.is_zero_price else OrderStatus.pending
    logger.info(
        "Created order %s for product %s (status=%s, amount=%s, points=%d)",
        order_no,
        product_id,
        status.value,
        quote.final_amount,
        quote.points_to_use,
    )

    if quote.is_zero_price:
        return CheckoutResult(
            success=True,
            order_no=order_no,
            url=f"{settings.site_base_url}/order/{order_no}",
            is_zero_price=True,
        )

    form = build_payment_form(
        settings=settings,
        order_no=order_no,
        product_name=product.name,
        amount=quote.final_amount,
    )
    return CheckoutResult(success=True, order_no=order_no, url=form.url, params=form.params)
