"""
数据库连接模块

管理数据库引擎和会话的创建。
使用 SQLModel 的 create_engine 创建数据库连接池。

重要提示：
- 数据库表结构通过 Alembic 迁移管理，不要在这里创建表
- 确保在使用前导入所有模型（cardshop.models），否则关系可能无法正确初始化
"""
import logging

from sqlmodel import Session, create_engine  # SQLModel 的数据库工具

from cardshop.core.config import settings
from cardshop.core.schema import repair_card_schema

logger = logging.getLogger(__name__)

# 创建数据库引擎（连接池）
engine = create_engine(str(settings.SQLALCHEMY_DATABASE_URI))


def init_db(session: Session) -> None:
    """
    初始化数据库

    表结构由 Alembic 迁移创建。这里只对旧版 cards 表做兼容处理：
    补齐预留字段，并把 is_used 为 NULL 的历史数据修正为 false。
    关闭 SCHEMA_SELF_HEAL 时跳过。

    Args:
        session: 数据库会话
    """
    if not settings.SCHEMA_SELF_HEAL:
        logger.info("Schema self-heal disabled, skipping card schema check")
        return
    repair_card_schema(session)
