"""
数据库模型定义模块

本模块使用 SQLModel 定义所有数据库表结构。

模型按功能拆分：
- user.py: 用户模型
- points.py: 积分相关模型
- product.py: 商品模型
- card.py: 卡密（库存）模型
- order.py: 订单模型
"""
from sqlmodel import SQLModel

from .base import seconds_before, utc_now
from .card import Card
from .order import Order
from .points import PointTransaction, UserPoints
from .product import Product
from .user import User

__all__ = [
    "SQLModel",
    "utc_now",
    "seconds_before",
    "User",
    "UserPoints",
    "PointTransaction",
    "Product",
    "Card",
    "Order",
]
