"""
用户模型模块

定义用户相关的数据库模型。
"""
from datetime import datetime

from sqlalchemy import BigInteger, Column, DateTime, String
from sqlmodel import Field, SQLModel

from cardshop.core.snowflake import generate_id

from .base import utc_now


class User(SQLModel, table=True):
    """
    用户模型

    用户身份由外部登录服务签发的 JWT 提供（sub 为用户 ID），
    本服务只保存下单所需的资料和风控状态。

    字段说明：
    - id: 主键，使用 Snowflake 算法生成
    - username: 用户名（唯一）
    - email: 邮箱（下单时未填写邮箱则使用该邮箱）
    - is_blocked: 是否被封禁（封禁用户不能下单）
    - is_admin: 是否为管理员（可执行退款操作）
    - created_at / updated_at: 创建和更新时间
    """
    __tablename__ = "users"
    id: int = Field(
        default_factory=generate_id,
        sa_column=Column(BigInteger, primary_key=True, autoincrement=False),
    )
    username: str = Field(
        max_length=64,
        sa_column=Column(String(64), unique=True, index=True, nullable=False),
    )
    email: str | None = Field(default=None, max_length=255)

    is_blocked: bool = Field(default=False)
    is_admin: bool = Field(default=False)

    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
