"""用户 CRUD 操作"""
from sqlmodel import Session

from cardshop.models import User, UserPoints


def get(*, session: Session, user_id: int) -> User | None:
    """根据 ID 查询用户"""
    return session.get(User, user_id)


def create(
    *,
    session: Session,
    username: str,
    email: str | None = None,
    is_admin: bool = False,
) -> User:
    """创建新用户，同时初始化积分账户"""
    user = User(username=username, email=email, is_admin=is_admin)
    session.add(user)
    session.flush()
    session.add(UserPoints(user_id=user.id, balance=0))
    session.commit()
    session.refresh(user)
    return user
