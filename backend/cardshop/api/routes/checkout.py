"""
结账路由模块

POST /checkout：创建订单并预留卡密。
- 积分全额抵扣：订单直接发货，返回订单详情页地址
- 需要支付：返回支付网关表单，并写入记录待支付订单号的 cookie
"""
from __future__ import annotations

from fastapi import APIRouter, Response

from cardshop.api.deps import OptionalUser, SessionDep, SettingsDep  # 依赖注入
from cardshop.api.errors import checkout_failed
from cardshop.api.schemas import ApiEnvelope, CheckoutData, CheckoutRequest
from cardshop.services import checkout as checkout_service

router = APIRouter(prefix="/checkout", tags=["checkout"])


@router.post("", response_model=ApiEnvelope)
def create_checkout(
    session: SessionDep,
    settings: SettingsDep,
    user: OptionalUser,
    body: CheckoutRequest,
    response: Response,
) -> ApiEnvelope:
    """
    创建订单

    请求路径: POST /api/v1/checkout

    Args:
        session: 数据库会话
        settings: 应用配置
        user: 当前登录用户（游客为 None）
        body: 结账请求（商品 ID、邮箱、是否使用积分）
        response: 响应对象（用于写 cookie）

    Returns:
        ApiEnvelope: 包含跳转地址或网关表单的响应

    Raises:
        AppError: 结账失败（商品不存在、库存不足、限购等）
    """
    result = checkout_service.create_order(
        session=session,
        settings=settings,
        product_id=body.product_id,
        email=body.email,
        use_points=body.use_points,
        user=user,
    )
    if result.error is not None:
        raise checkout_failed(result.error)

    if not result.is_zero_price:
        # 记录待支付订单，支付完成回到站点后用于展示订单
        response.set_cookie(
            key=settings.PENDING_ORDER_COOKIE,
            value=result.order_no,
            max_age=settings.PENDING_ORDER_TTL_SECONDS,
            path="/",
            secure=True,
            samesite="lax",
        )
    data = CheckoutData(
        order_no=result.order_no,  # type: ignore[arg-type]
        url=result.url,  # type: ignore[arg-type]
        params=result.params,
        is_zero_price=result.is_zero_price,
    )
    return ApiEnvelope(data=data)
