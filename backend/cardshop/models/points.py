"""
积分模型模块

定义积分相关的数据库模型，包括用户积分账户和交易记录。
1 积分 = 1 元，下单时可抵扣商品金额。
"""
from datetime import datetime

from sqlalchemy import BigInteger, Column, DateTime, ForeignKey, String
from sqlmodel import Field, SQLModel

from cardshop.core.snowflake import generate_id
from cardshop.enums import PointTransactionType

from .base import utc_now


class UserPoints(SQLModel, table=True):
    """
    用户积分账户模型

    每个用户只有一条积分记录（user_id 唯一）。
    余额只通过带条件的 UPDATE 扣减（balance >= 扣减值），保证不会透支。
    """
    __tablename__ = "user_points"
    id: int = Field(
        default_factory=generate_id,
        sa_column=Column(BigInteger, primary_key=True, autoincrement=False),
    )
    user_id: int = Field(
        sa_column=Column(
            BigInteger,
            ForeignKey("users.id", ondelete="CASCADE"),
            index=True,
            nullable=False,
            unique=True,
        )
    )
    balance: int = Field(default=0)
    updated_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )


class PointTransaction(SQLModel, table=True):
    """
    积分交易记录模型

    每次积分变动都会创建一条记录，用于审计和查询。

    字段说明：
    - type: 交易类型（抵扣/退回/奖励）
    - amount: 变动值（负数表示扣除，正数表示增加）
    - balance_after: 交易后的余额
    - order_no: 关联的订单号（抵扣和退回时有值）
    """
    __tablename__ = "point_transactions"

    id: int = Field(
        default_factory=generate_id,
        sa_column=Column(BigInteger, primary_key=True, autoincrement=False),
    )
    user_id: int = Field(
        sa_column=Column(
            BigInteger, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False
        )
    )
    type: PointTransactionType = Field(sa_column=Column(String(16), nullable=False))

    amount: int = Field(nullable=False)
    balance_after: int = Field(nullable=False)

    order_no: str | None = Field(default=None, max_length=64, index=True)

    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
