"""
API 请求/响应数据模型（Schema）

定义所有 API 接口的请求和响应数据结构。
使用 Pydantic 进行数据验证和序列化。
这些模型不是数据库表，只用于 API 数据交换。
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal  # 精确数值类型，用于金额
from typing import Any  # 任意类型

from pydantic import BaseModel, EmailStr, Field  # Pydantic 核心类

from cardshop.enums import OrderStatus, PointTransactionType

# ============================================================
# 通用响应模型
# ============================================================


class TokenPayload(BaseModel):
    """
    JWT Token 载荷模型

    sub (subject) 存储用户 ID。
    """
    sub: str | None = None


class ApiEnvelope(BaseModel):
    """
    API 统一响应格式

    - code: 状态码（0 表示成功，非 0 表示错误）
    - message: 消息（成功时为 "success"，错误时为错误描述或文案 key）
    - data: 数据（成功时返回业务数据，错误时为 None）

    示例响应：
        {"code": 0, "message": "success", "data": {...}}
        {"code": 409101, "message": "buy.outOfStock", "data": None}
    """
    code: int = 0
    message: str = "success"
    data: Any | None = None


# ============================================================
# 结账
# ============================================================


class CheckoutRequest(BaseModel):
    """
    结账请求模型

    游客下单时 email 用于接收卡密和限购统计。
    """
    product_id: str = Field(min_length=1, max_length=64)  # 商品 ID
    email: EmailStr | None = None  # 下单邮箱（可选）
    use_points: bool = False  # 是否使用积分抵扣


class CheckoutData(BaseModel):
    """
    结账响应模型

    - is_zero_price=True：订单已发货，前端跳转到 url（订单详情页）
    - 否则：前端以 POST 表单方式把 params 提交到 url（支付网关）
    """
    order_no: str  # 订单号
    url: str  # 跳转地址或网关地址
    params: dict[str, str] | None = None  # 已签名的网关表单参数
    is_zero_price: bool = False  # 是否已用积分全额抵扣


# ============================================================
# 商品和订单
# ============================================================


class ProductData(BaseModel):
    """商品详情（含实时可用库存）"""
    id: str
    name: str
    price: Decimal
    purchase_limit: int | None = None
    stock: int  # 可用库存


class OrderData(BaseModel):
    """
    订单数据模型

    card_key 只在订单已发货时返回。
    """
    order_no: str  # 订单号
    product_id: str  # 商品 ID
    product_name: str  # 商品名称
    amount: Decimal  # 实付金额
    status: OrderStatus  # 订单状态
    email: str | None = None  # 下单邮箱
    points_used: int = 0  # 抵扣积分
    card_key: str | None = None  # 卡密（已发货时）
    created_at: datetime  # 创建时间
    paid_at: datetime | None = None  # 支付时间
    delivered_at: datetime | None = None  # 发货时间


class OrdersData(BaseModel):
    """订单列表响应模型"""
    data: list[OrderData]
    count: int


# ============================================================
# 积分
# ============================================================


class PointsBalanceData(BaseModel):
    """积分余额响应模型"""
    balance: int


class PointTransactionPublic(BaseModel):
    """积分交易记录公开模型"""
    id: int  # 交易 ID
    type: PointTransactionType  # 交易类型（抵扣/退回/奖励）
    amount: int  # 变动值（负数表示扣除）
    balance_after: int  # 交易后余额
    order_no: str | None = None  # 关联订单号
    created_at: datetime  # 交易时间


class PointsTransactionsData(BaseModel):
    """积分交易列表响应模型"""
    data: list[PointTransactionPublic]
    count: int


# ============================================================
# 退款（管理后台）
# ============================================================


class RefundFormData(BaseModel):
    """
    退款表单响应模型

    管理后台把 params 以 POST 表单方式在新窗口提交到 url。
    """
    url: str
    params: dict[str, str]


class RefundProxyData(BaseModel):
    """代理退款响应模型"""
    processed: bool  # 网关是否已受理（未受理时需管理员手动确认）
    message: str | None = None  # 网关提示信息
    order: OrderData | None = None  # 受理后更新的订单
