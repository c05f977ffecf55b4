"""订单 CRUD 操作"""
import logging
from datetime import datetime

from sqlalchemy import or_, update
from sqlmodel import Session, func, select

from cardshop.enums import COMPLETED_ORDER_STATUSES, OrderStatus, PointTransactionType
from cardshop.models import Order, seconds_before

from .card import release_reservations
from .points import credit_points

logger = logging.getLogger(__name__)


def get_by_order_no(*, session: Session, order_no: str) -> Order | None:
    """根据订单号查询订单"""
    return session.exec(select(Order).where(Order.order_no == order_no)).first()


def count_completed_purchases(
    *,
    session: Session,
    product_id: str,
    user_id: int | None,
    email: str | None,
) -> int:
    """
    统计用户对某商品已完成（已支付/已发货）的订单数

    按 user_id 或 email 任一匹配，二者都为空时返回 0。
    """
    owner_conditions = []
    if user_id is not None:
        owner_conditions.append(Order.user_id == user_id)
    if email:
        owner_conditions.append(Order.email == email)
    if not owner_conditions:
        return 0

    stmt = (
        select(func.count())
        .select_from(Order)
        .where(
            Order.product_id == product_id,
            or_(*owner_conditions),
            Order.status.in_(COMPLETED_ORDER_STATUSES),  # type: ignore[attr-defined]
        )
    )
    return session.exec(stmt).one()


def _claim_expired(*, session: Session, order: Order, now: datetime) -> bool:
    """把仍处于 pending 的订单改为 cancelled（不提交），已被其他事务处理时返回 False"""
    result = session.exec(  # type: ignore[call-overload]
        update(Order)
        .where(Order.id == order.id, Order.status == OrderStatus.pending)
        .values(status=OrderStatus.cancelled, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def cancel_expired_orders(
    *, session: Session, product_id: str, now: datetime, ttl_seconds: int
) -> int:
    """
    取消超时未支付的订单

    - 订单状态改为 cancelled
    - 释放订单预留的卡密
    - 退回订单抵扣的积分

    每个订单先用带状态条件的 UPDATE 认领，只有认领成功的事务才退回积分，
    并发的两次清理不会重复退款。

    Returns:
        被取消的订单数
    """
    cutoff = seconds_before(now, ttl_seconds)
    stale = session.exec(
        select(Order)
        .where(
            Order.product_id == product_id,
            Order.status == OrderStatus.pending,
            Order.created_at < cutoff,
        )
        .with_for_update(skip_locked=True)
    ).all()
    if not stale:
        return 0

    claimed = [o for o in stale if _claim_expired(session=session, order=o, now=now)]
    for order in claimed:
        if order.points_used > 0 and order.user_id is not None:
            credit_points(
                session=session,
                user_id=order.user_id,
                amount=order.points_used,
                tx_type=PointTransactionType.refund,
                order_no=order.order_no,
            )
    release_reservations(session=session, order_nos=[o.order_no for o in claimed])
    session.commit()
    if claimed:
        logger.info(
            "Cancelled %d expired pending orders for product %s", len(claimed), product_id
        )
    return len(claimed)
