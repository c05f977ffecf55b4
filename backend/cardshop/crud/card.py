"""卡密（库存）CRUD 操作"""
from datetime import datetime

from sqlalchemy import and_, false, func, or_, update
from sqlalchemy.sql.elements import ColumnElement
from sqlmodel import Session, select

from cardshop.models import Card, seconds_before


def available_condition(
    *, product_id: str, now: datetime, reservation_seconds: int
) -> ColumnElement[bool]:
    """
    卡密可用条件

    未使用（is_used 为 false 或 NULL），并且没有预留或预留已超过
    reservation_seconds 秒。
    """
    cutoff = seconds_before(now, reservation_seconds)
    return and_(
        Card.product_id == product_id,
        func.coalesce(Card.is_used, false()) == false(),
        or_(Card.reserved_at.is_(None), Card.reserved_at < cutoff),  # type: ignore[union-attr]
    )


def count_available(
    *, session: Session, product_id: str, now: datetime, reservation_seconds: int
) -> int:
    """统计商品可用库存"""
    stmt = (
        select(func.count())
        .select_from(Card)
        .where(
            available_condition(
                product_id=product_id, now=now, reservation_seconds=reservation_seconds
            )
        )
    )
    return session.exec(stmt).one()


def reserve_one(
    *,
    session: Session,
    product_id: str,
    order_no: str,
    now: datetime,
    reservation_seconds: int,
) -> Card | None:
    """
    在当前事务中预留一张可用卡密（不提交）

    先用 FOR UPDATE SKIP LOCKED 锁定一行（并发事务会跳过已被锁定的行，
    不会阻塞等待），再用带可用条件的 UPDATE 写入预留信息。
    没有可用的卡密或被其他订单抢先时返回 None。
    """
    condition = available_condition(
        product_id=product_id, now=now, reservation_seconds=reservation_seconds
    )
    card = session.exec(
        select(Card)
        .where(condition)
        .order_by(Card.id)  # type: ignore[arg-type]
        .limit(1)
        .with_for_update(skip_locked=True)
    ).first()
    if card is None:
        return None

    result = session.exec(  # type: ignore[call-overload]
        update(Card)
        .where(Card.id == card.id, condition)
        .values(reserved_order_id=order_no, reserved_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        return None
    session.refresh(card)
    return card


def mark_used(*, session: Session, card: Card, now: datetime) -> Card:
    """标记卡密已使用并清除预留信息（不提交）"""
    card.is_used = True
    card.used_at = now
    card.reserved_order_id = None
    card.reserved_at = None
    session.add(card)
    return card


def release_reservations(*, session: Session, order_nos: list[str]) -> int:
    """释放指定订单预留的、尚未使用的卡密（不提交）"""
    if not order_nos:
        return 0
    result = session.exec(  # type: ignore[call-overload]
        update(Card)
        .where(
            Card.reserved_order_id.in_(order_nos),  # type: ignore[union-attr]
            func.coalesce(Card.is_used, false()) == false(),
        )
        .values(reserved_order_id=None, reserved_at=None)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0
