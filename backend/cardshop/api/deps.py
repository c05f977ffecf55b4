"""
FastAPI 依赖注入模块

提供可复用的依赖项，用于路由处理函数中。

关键概念：
- Depends: FastAPI 的依赖注入装饰器
- Generator: 用于创建需要清理的资源（如数据库会话）
- HTTPBearer: 从 Authorization: Bearer <token> 中提取 token

用户身份由外部登录服务签发的 JWT 提供，本服务只负责校验。
"""
from collections.abc import Generator  # 生成器类型，用于资源管理
from typing import Annotated  # 类型注解，用于依赖注入

from fastapi import Depends, HTTPException, status  # FastAPI 核心功能
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer  # Bearer 方案
from jwt.exceptions import InvalidTokenError  # JWT 无效异常
from pydantic import ValidationError  # Pydantic 验证异常
from sqlmodel import Session  # 数据库会话

from cardshop.api.schemas import TokenPayload
from cardshop.core import security
from cardshop.core.config import Settings, settings
from cardshop.core.db import engine
from cardshop.models import User

# auto_error=False：没有 Authorization 头时不报错，由依赖自行决定是否要求登录
optional_bearer = HTTPBearer(auto_error=False)


def get_db() -> Generator[Session, None, None]:
    """
    获取数据库会话（依赖注入）

    使用 yield 确保会话在请求结束后自动关闭。
    """
    with Session(engine) as session:
        yield session


def get_settings() -> Settings:
    """获取应用配置（依赖注入，测试时可通过 dependency_overrides 替换）"""
    return settings


SessionDep = Annotated[Session, Depends(get_db)]  # 数据库会话依赖
SettingsDep = Annotated[Settings, Depends(get_settings)]  # 配置依赖
TokenDep = Annotated[
    HTTPAuthorizationCredentials | None, Depends(optional_bearer)
]  # JWT token 依赖（可选）


def _unauthorized(detail: str = "Could not validate credentials") -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


def get_optional_user(session: SessionDep, token: TokenDep) -> User | None:
    """
    获取当前登录用户（可选）

    - 没有携带 token：返回 None（游客）
    - 携带了 token 但无效、或用户不存在：401

    Raises:
        HTTPException: token 无效或用户不存在
    """
    if token is None:
        return None
    try:
        payload = security.decode_access_token(token.credentials)
        token_data = TokenPayload(**payload)
    except (InvalidTokenError, ValidationError):
        raise _unauthorized()
    if not token_data.sub:
        raise _unauthorized()
    try:
        user_id = int(token_data.sub)
    except ValueError:
        raise _unauthorized()
    user = session.get(User, user_id)
    if not user:
        raise _unauthorized("User not found")
    return user


OptionalUser = Annotated[User | None, Depends(get_optional_user)]


def get_current_user(user: OptionalUser) -> User:
    """获取当前登录用户（必须登录）"""
    if user is None:
        raise _unauthorized("Not authenticated")
    return user


CurrentUser = Annotated[User, Depends(get_current_user)]


def get_current_admin(user: CurrentUser) -> User:
    """获取当前管理员（非管理员返回 403）"""
    if not user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin privileges required")
    return user


CurrentAdmin = Annotated[User, Depends(get_current_admin)]
