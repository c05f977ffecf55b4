"""商品 CRUD 操作"""
from sqlmodel import Session

from cardshop.models import Product


def get(*, session: Session, product_id: str) -> Product | None:
    """根据 ID 查询商品"""
    return session.get(Product, product_id)
