"""
商品模型模块
"""
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Column, DateTime, Numeric, String
from sqlmodel import Field, SQLModel

from .base import utc_now


class Product(SQLModel, table=True):
    """
    商品模型

    每个商品对应一批卡密（Card）。结账过程中商品信息只读。

    字段说明：
    - id: 商品 ID（字符串主键）
    - name: 商品名称
    - price: 单价（Decimal，两位小数）
    - purchase_limit: 每个用户的限购数量（None 或 0 表示不限购）
    """
    __tablename__ = "products"
    id: str = Field(sa_column=Column(String(64), primary_key=True))
    name: str = Field(max_length=255)
    price: Decimal = Field(
        default=Decimal("0.00"),
        sa_column=Column(Numeric(10, 2), nullable=False),
    )
    purchase_limit: int | None = Field(default=None)

    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
