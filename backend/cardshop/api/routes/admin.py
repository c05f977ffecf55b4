"""
管理后台路由模块

订单退款相关的 API 端点（仅管理员）：
- 获取退款表单：后台页面在新窗口把表单提交到网关
- 代理退款：服务端直接调用网关退款接口
- 标记已退款：管理员在网关确认退款后手动标记（重复标记不报错）
"""
from __future__ import annotations

from fastapi import APIRouter

from cardshop.api.deps import CurrentAdmin, SessionDep, SettingsDep  # 依赖注入
from cardshop.api.routes.orders import to_order_data
from cardshop.api.schemas import ApiEnvelope, RefundFormData, RefundProxyData
from cardshop.services import refund as refund_service

router = APIRouter(prefix="/admin/orders", tags=["admin"])


@router.get("/{order_no}/refund-form", response_model=ApiEnvelope)
def refund_form(
    session: SessionDep, settings: SettingsDep, _admin: CurrentAdmin, order_no: str
) -> ApiEnvelope:
    """
    获取退款表单

    请求路径: GET /api/v1/admin/orders/{order_no}/refund-form

    Raises:
        AppError: 订单不存在（404201）或不可退款（409201）
    """
    form = refund_service.get_refund_form(session=session, settings=settings, order_no=order_no)
    return ApiEnvelope(data=RefundFormData(url=form.url, params=form.params))


@router.post("/{order_no}/refund/proxy", response_model=ApiEnvelope)
def refund_proxy(
    session: SessionDep, settings: SettingsDep, _admin: CurrentAdmin, order_no: str
) -> ApiEnvelope:
    """
    代理退款

    网关未受理时返回 processed=false，需要管理员确认后手动标记。

    请求路径: POST /api/v1/admin/orders/{order_no}/refund/proxy
    """
    result = refund_service.proxy_refund(session=session, settings=settings, order_no=order_no)
    data = RefundProxyData(
        processed=result.processed,
        message=result.message,
        order=to_order_data(result.order) if result.order else None,
    )
    return ApiEnvelope(data=data)


@router.post("/{order_no}/refund/mark", response_model=ApiEnvelope)
def refund_mark(session: SessionDep, _admin: CurrentAdmin, order_no: str) -> ApiEnvelope:
    """
    标记订单已退款

    请求路径: POST /api/v1/admin/orders/{order_no}/refund/mark
    """
    order = refund_service.mark_order_refunded(session=session, order_no=order_no)
    return ApiEnvelope(data=to_order_data(order))
