"""CRUD 操作模块"""
from .card import count_available as count_available_cards
from .card import mark_used as mark_card_used
from .card import reserve_one as reserve_card
from .order import cancel_expired_orders, count_completed_purchases
from .order import get_by_order_no as get_order_by_no
from .points import change_points, credit_points, deduct_points, get_balance, get_user_points
from .product import get as get_product
from .user import create as create_user
from .user import get as get_user

__all__ = [
    "count_available_cards",
    "reserve_card",
    "mark_card_used",
    "cancel_expired_orders",
    "count_completed_purchases",
    "get_order_by_no",
    "change_points",
    "credit_points",
    "deduct_points",
    "get_balance",
    "get_user_points",
    "get_product",
    "create_user",
    "get_user",
]
