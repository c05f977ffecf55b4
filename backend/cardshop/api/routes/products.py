"""
商品路由模块

GET /product/{product_id}：商品详情和实时可用库存。
"""
from __future__ import annotations

from fastapi import APIRouter

from cardshop import crud  # 数据库操作
from cardshop.api.deps import SessionDep, SettingsDep  # 依赖注入
from cardshop.api.errors import AppError  # 自定义异常
from cardshop.api.schemas import ApiEnvelope, ProductData
from cardshop.core.schema import run_with_schema_repair
from cardshop.models import utc_now

router = APIRouter(prefix="/product", tags=["product"])


@router.get("/{product_id}", response_model=ApiEnvelope)
def get_product(session: SessionDep, settings: SettingsDep, product_id: str) -> ApiEnvelope:
    """
    获取商品详情

    库存只统计未使用、且未被预留（或预留已过期）的卡密。

    请求路径: GET /api/v1/product/{product_id}

    Raises:
        AppError: 商品不存在时抛出 404101 错误
    """
    product = crud.get_product(session=session, product_id=product_id)
    if not product:
        raise AppError(code=404101, message="buy.productNotFound", status_code=404)

    stock = run_with_schema_repair(
        session,
        lambda: crud.count_available_cards(
            session=session,
            product_id=product_id,
            now=utc_now(),
            reservation_seconds=settings.CARD_RESERVATION_SECONDS,
        ),
        enabled=settings.SCHEMA_SELF_HEAL,
    )
    data = ProductData(
        id=product.id,
        name=product.name,
        price=product.price,
        purchase_limit=product.purchase_limit,
        stock=stock,
    )
    return ApiEnvelope(data=data)
