"""
API 路由聚合模块

将所有业务路由模块聚合到一个统一的 router 中。
这个 router 会被注册到主应用（cardshop/main.py）上。

路由模块说明：
- checkout: 结账（创建订单、预留卡密）
- products: 商品详情和库存
- orders: 订单查询
- points: 积分余额和交易历史
- admin: 管理后台（退款）
- utils: 工具相关（健康检查等）
"""
from fastapi import APIRouter

from cardshop.api.routes import (
    admin,  # 管理后台路由
    checkout,  # 结账路由
    orders,  # 订单路由
    points,  # 积分路由
    products,  # 商品路由
    utils,  # 工具路由
)

api_router = APIRouter()

api_router.include_router(checkout.router)  # /checkout
api_router.include_router(products.router)  # /product/*
api_router.include_router(orders.router)  # /order/*
api_router.include_router(points.router)  # /points/*
api_router.include_router(admin.router)  # /admin/orders/*
api_router.include_router(utils.router)  # /utils/*
