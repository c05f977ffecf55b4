"""
卡密模型模块
"""
from datetime import datetime

from sqlalchemy import BigInteger, Boolean, Column, DateTime, ForeignKey, String
from sqlmodel import Field, SQLModel

from cardshop.core.snowflake import generate_id

from .base import utc_now


class Card(SQLModel, table=True):
    """
    卡密模型（库存单元）

    每张卡密属于一个商品。下单时先"预留"（写入 reserved_order_id 和
    reserved_at），支付完成后才标记为已使用。预留超过
    CARD_RESERVATION_SECONDS 后自动失效，可以被其他订单重新占用，
    不需要显式释放。

    字段说明：
    - card_key: 卡密内容（敏感，只在订单发货后展示）
    - is_used: 是否已使用（历史数据可能为 NULL，按 false 处理）
    - used_at: 使用时间
    - reserved_order_id: 当前预留该卡密的订单号
    - reserved_at: 预留时间
    """
    __tablename__ = "cards"
    id: int = Field(
        default_factory=generate_id,
        sa_column=Column(BigInteger, primary_key=True, autoincrement=False),
    )
    product_id: str = Field(
        sa_column=Column(
            String(64), ForeignKey("products.id", ondelete="CASCADE"), index=True, nullable=False
        )
    )
    card_key: str = Field(sa_column=Column(String(512), nullable=False))

    is_used: bool | None = Field(
        default=False, sa_column=Column(Boolean, nullable=True, default=False)
    )
    used_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    reserved_order_id: str | None = Field(
        default=None, sa_column=Column(String(64), index=True, nullable=True)
    )
    reserved_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )

    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
