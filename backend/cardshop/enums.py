"""
枚举类型定义模块

定义应用中使用的所有枚举类型。
所有枚举都继承自 str 和 Enum，这样既可以用作字符串，又具有枚举的特性。
"""
from enum import Enum  # 枚举类型，用于定义固定的选项集合


class OrderStatus(str, Enum):
    """
    订单状态枚举

    - pending: 待支付（卡密已预留，等待支付网关回调）
    - paid: 已支付
    - delivered: 已发货（卡密已交付给用户）
    - refunded: 已退款
    - cancelled: 已取消（待支付超时）
    """
    pending = "pending"
    paid = "paid"
    delivered = "delivered"
    refunded = "refunded"
    cancelled = "cancelled"


# 计入限购数量、允许退款的订单状态
COMPLETED_ORDER_STATUSES = (OrderStatus.paid, OrderStatus.delivered)


class PointTransactionType(str, Enum):
    """
    积分交易类型枚举

    - redeem: 抵扣（下单时使用积分抵扣金额）
    - refund: 退回（订单取消后返还积分）
    - reward: 奖励（运营发放）
    """
    redeem = "redeem"
    refund = "refund"
    reward = "reward"


class CheckoutError(str, Enum):
    """
    结账失败原因

    值为前端的多语言文案 key，直接返回给调用方用于展示。
    """
    product_not_found = "buy.productNotFound"
    user_blocked = "buy.userBlocked"
    out_of_stock = "buy.outOfStock"
    limit_exceeded = "buy.limitExceeded"
    stock_locked = "buy.stockLocked"  # 并发下单时卡密被其他订单抢先占用
    points_mismatch = "buy.pointsMismatch"  # 并发扣减时积分余额已变化
