"""
订单路由模块

处理订单相关的 API 端点，包括：
- 查询当前用户的订单列表（分页）
- 查询单个订单详情（发货后包含卡密）
"""
from __future__ import annotations

from fastapi import APIRouter, Query, Request  # FastAPI 路由、请求和查询参数
from sqlmodel import func, select  # SQLModel 查询函数

from cardshop import crud  # 数据库操作
from cardshop.api.deps import CurrentUser, OptionalUser, SessionDep, SettingsDep  # 依赖注入
from cardshop.api.errors import AppError  # 自定义异常
from cardshop.api.schemas import ApiEnvelope, OrderData, OrdersData
from cardshop.enums import OrderStatus  # 订单状态枚举
from cardshop.models import Order  # 订单模型

router = APIRouter(prefix="/order", tags=["order"])


def to_order_data(order: Order) -> OrderData:
    """
    将订单模型转换为响应数据模型

    卡密只在订单已发货时返回。
    """
    delivered = order.status == OrderStatus.delivered
    return OrderData(
        order_no=order.order_no,
        product_id=order.product_id,
        product_name=order.product_name,
        amount=order.amount,
        status=order.status,
        email=order.email,
        points_used=order.points_used,
        card_key=order.card_key if delivered else None,
        created_at=order.created_at,
        paid_at=order.paid_at,
        delivered_at=order.delivered_at,
    )


@router.get("/list", response_model=ApiEnvelope)
def list_orders(
    session: SessionDep,
    current_user: CurrentUser,
    page: int = Query(default=1, ge=1),  # 页码，从 1 开始
    page_size: int = Query(default=20, ge=1, le=100),  # 每页数量，1-100
) -> ApiEnvelope:
    """
    获取订单列表（分页）

    查询当前用户的所有订单，按创建时间倒序排列。

    请求路径: GET /api/v1/order/list?page=1&page_size=20
    """
    offset = (page - 1) * page_size

    count_stmt = (
        select(func.count())
        .select_from(Order)
        .where(Order.user_id == current_user.id)
    )
    count = session.exec(count_stmt).one()

    stmt = (
        select(Order)
        .where(Order.user_id == current_user.id)
        .order_by(Order.created_at.desc())  # type: ignore[attr-defined]
        .offset(offset)
        .limit(page_size)
    )
    rows = session.exec(stmt).all()
    data = [to_order_data(o) for o in rows]
    return ApiEnvelope(data=OrdersData(data=data, count=count))


@router.get("/{order_no}", response_model=ApiEnvelope)
def get_order(
    session: SessionDep,
    settings: SettingsDep,
    user: OptionalUser,
    request: Request,
    order_no: str,
) -> ApiEnvelope:
    """
    获取订单详情

    可查看的情况：
    - 游客订单（没有 user_id），凭订单号查看
    - 登录用户查看自己的订单
    - 持有待支付订单 cookie 的浏览器查看该订单

    请求路径: GET /api/v1/order/{order_no}

    Raises:
        AppError: 订单不存在或无权查看时抛出 404201 错误
    """
    pending_order = request.cookies.get(settings.PENDING_ORDER_COOKIE)
    order = crud.get_order_by_no(session=session, order_no=order_no)
    if not order or not _can_view(order, user_id=user.id if user else None, cookie=pending_order):
        raise AppError(code=404201, message="Order not found", status_code=404)
    return ApiEnvelope(data=to_order_data(order))


def _can_view(order: Order, *, user_id: int | None, cookie: str | None) -> bool:
    if order.user_id is None:
        return True
    if user_id is not None and order.user_id == user_id:
        return True
    return cookie is not None and cookie == order.order_no
