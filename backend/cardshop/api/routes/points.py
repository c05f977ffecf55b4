"""
积分路由模块

处理积分相关的 API 端点，包括：
- 查询积分余额（下单时可用于抵扣）
- 查询积分交易历史（分页）
"""
from __future__ import annotations

from fastapi import APIRouter, Query  # FastAPI 路由和查询参数
from sqlmodel import func, select  # SQLModel 查询函数

from cardshop import crud  # 数据库操作
from cardshop.api.deps import CurrentUser, SessionDep  # 依赖注入
from cardshop.api.schemas import (
    ApiEnvelope,
    PointsBalanceData,
    PointsTransactionsData,
    PointTransactionPublic,
)
from cardshop.models import PointTransaction  # 积分交易模型

router = APIRouter(prefix="/points", tags=["points"])


@router.get("/balance", response_model=ApiEnvelope)
def balance(session: SessionDep, current_user: CurrentUser) -> ApiEnvelope:
    """
    获取积分余额

    请求路径: GET /api/v1/points/balance
    """
    return ApiEnvelope(
        data=PointsBalanceData(
            balance=crud.get_balance(session=session, user_id=current_user.id)
        )
    )


@router.get("/transactions", response_model=ApiEnvelope)
def transactions(
    session: SessionDep,
    current_user: CurrentUser,
    page: int = Query(default=1, ge=1),  # 页码，从 1 开始
    page_size: int = Query(default=20, ge=1, le=100),  # 每页数量，1-100
) -> ApiEnvelope:
    """
    获取积分交易历史（分页）

    包括下单抵扣、订单取消退回和运营奖励，按时间倒序排列。

    请求路径: GET /api/v1/points/transactions?page=1&page_size=20
    """
    offset = (page - 1) * page_size

    count_stmt = (
        select(func.count())
        .select_from(PointTransaction)
        .where(PointTransaction.user_id == current_user.id)
    )
    count = session.exec(count_stmt).one()

    stmt = (
        select(PointTransaction)
        .where(PointTransaction.user_id == current_user.id)
        .order_by(PointTransaction.created_at.desc())  # type: ignore[attr-defined]
        .offset(offset)
        .limit(page_size)
    )
    rows = session.exec(stmt).all()

    data = [
        PointTransactionPublic(
            id=row.id,
            type=row.type,
            amount=row.amount,
            balance_after=row.balance_after,
            order_no=row.order_no,
            created_at=row.created_at,
        )
        for row in rows
    ]
    return ApiEnvelope(data=PointsTransactionsData(data=data, count=count))
