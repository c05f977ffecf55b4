"""
订单模型模块

定义订单相关的数据库模型。
"""
from datetime import datetime
from decimal import Decimal

from sqlalchemy import BigInteger, Column, DateTime, ForeignKey, Numeric, String
from sqlmodel import Field, SQLModel

from cardshop.core.snowflake import generate_id
from cardshop.enums import OrderStatus

from .base import utc_now


class Order(SQLModel, table=True):
    """
    订单模型

    记录一次卡密购买。商品名称和金额在下单时快照保存，
    之后商品改名或调价不影响历史订单。

    字段说明：
    - order_no: 订单号（唯一，同时作为支付网关的 out_trade_no）
    - product_id / product_name: 商品 ID 和名称快照
    - amount: 实付金额（扣除积分抵扣后的金额）
    - email: 下单邮箱（限购按 user_id 或 email 统计）
    - user_id / username: 下单用户（游客下单时为空）
    - status: 订单状态（待支付/已支付/已发货/已退款/已取消）
    - card_key: 发货的卡密（发货后才有值）
    - trade_no: 支付网关交易号（纯积分订单为 POINTS_REDEMPTION）
    - points_used: 抵扣使用的积分
    - paid_at / delivered_at: 支付和发货时间
    """
    __tablename__ = "orders"
    id: int = Field(
        default_factory=generate_id,
        sa_column=Column(BigInteger, primary_key=True, autoincrement=False),
    )
    order_no: str = Field(
        sa_column=Column(String(64), unique=True, index=True, nullable=False)
    )

    product_id: str = Field(sa_column=Column(String(64), index=True, nullable=False))
    product_name: str = Field(max_length=255)
    amount: Decimal = Field(
        default=Decimal("0.00"),
        sa_column=Column(Numeric(10, 2), nullable=False),
    )

    email: str | None = Field(default=None, sa_column=Column(String(255), index=True))
    user_id: int | None = Field(
        default=None,
        sa_column=Column(
            BigInteger, ForeignKey("users.id", ondelete="SET NULL"), index=True, nullable=True
        ),
    )
    username: str | None = Field(default=None, max_length=64)

    status: OrderStatus = Field(sa_column=Column(String(16), index=True, nullable=False))
    card_key: str | None = Field(default=None, sa_column=Column(String(512), nullable=True))
    trade_no: str | None = Field(default=None, max_length=128)
    points_used: int = Field(default=0)

    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    paid_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    delivered_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
