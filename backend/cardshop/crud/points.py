"""积分 CRUD 操作"""
from sqlalchemy import update
from sqlmodel import Session, select

from cardshop.api.errors import AppError
from cardshop.enums import PointTransactionType
from cardshop.models import PointTransaction, UserPoints, utc_now


def get_user_points(*, session: Session, user_id: int, for_update: bool = False) -> UserPoints:
    """获取用户积分账户，不存在则创建"""
    stmt = select(UserPoints).where(UserPoints.user_id == user_id)
    if for_update:
        stmt = stmt.with_for_update()
    points = session.exec(stmt).first()
    if not points:
        points = UserPoints(user_id=user_id, balance=0)
        session.add(points)
        session.commit()
        session.refresh(points)
    return points


def get_balance(*, session: Session, user_id: int) -> int:
    """查询积分余额，没有积分账户时返回 0（只读，不创建账户）"""
    balance = session.exec(
        select(UserPoints.balance).where(UserPoints.user_id == user_id)
    ).first()
    return balance or 0


def change_points(
    *,
    session: Session,
    user_id: int,
    delta: int,
    tx_type: PointTransactionType,
    order_no: str | None = None,
) -> UserPoints:
    """变更用户积分并记录交易历史（立即提交）"""
    points = get_user_points(session=session, user_id=user_id, for_update=True)
    new_balance = points.balance + delta
    if new_balance < 0:
        raise AppError(code=402001, message="Insufficient points", status_code=400)

    points.balance = new_balance
    points.updated_at = utc_now()

    tx = PointTransaction(
        user_id=user_id,
        type=tx_type,
        amount=delta,
        balance_after=new_balance,
        order_no=order_no,
    )

    session.add(points)
    session.add(tx)
    session.commit()
    session.refresh(points)
    return points


def deduct_points(*, session: Session, user_id: int, amount: int, order_no: str) -> bool:
    """
    在当前事务中扣减积分（不提交）

    使用带条件的 UPDATE（balance >= amount）保证并发下不会透支。
    没有更新到任何行说明余额已被其他请求修改，返回 False。
    """
    result = session.exec(  # type: ignore[call-overload]
        update(UserPoints)
        .where(UserPoints.user_id == user_id, UserPoints.balance >= amount)
        .values(balance=UserPoints.balance - amount, updated_at=utc_now())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        return False

    balance_after = session.exec(
        select(UserPoints.balance).where(UserPoints.user_id == user_id)
    ).one()
    session.add(
        PointTransaction(
            user_id=user_id,
            type=PointTransactionType.redeem,
            amount=-amount,
            balance_after=balance_after,
            order_no=order_no,
        )
    )
    return True


def credit_points(
    *,
    session: Session,
    user_id: int,
    amount: int,
    tx_type: PointTransactionType,
    order_no: str | None = None,
) -> None:
    """在当前事务中增加积分并记录交易历史（不提交）"""
    session.exec(  # type: ignore[call-overload]
        update(UserPoints)
        .where(UserPoints.user_id == user_id)
        .values(balance=UserPoints.balance + amount, updated_at=utc_now())
        .execution_options(synchronize_session=False)
    )
    balance_after = get_balance(session=session, user_id=user_id)
    session.add(
        PointTransaction(
            user_id=user_id,
            type=tx_type,
            amount=amount,
            balance_after=balance_after,
            order_no=order_no,
        )
    )
