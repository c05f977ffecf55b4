"""
应用启动前检查脚本

在应用启动前等待数据库可用（Docker Compose 中数据库容器可能还在初始化），
并检查 cards 表是否已经包含预留字段。

执行流程：
1. 不断重试连接数据库，直到成功或超时（5 分钟）
2. 检查 cards 表结构；缺少预留字段时记录警告，
   由 Alembic 迁移或 initial_data 中的兼容修复补齐
"""
import logging  # 日志记录

import sqlalchemy as sa
from sqlalchemy import Engine  # SQLAlchemy 引擎类型
from sqlmodel import Session, select  # SQLModel 会话和查询
from tenacity import (  # 重试库
    after_log,
    before_log,
    retry,
    stop_after_attempt,
    wait_fixed,
)

from cardshop.core.db import engine  # 数据库引擎
from cardshop.core.schema import CARDS_TABLE, MISSING_COLUMN_MARKERS

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

max_tries = 60 * 5  # 最大尝试次数：300 次（每秒一次）
wait_seconds = 1  # 每次重试间隔：1 秒


@retry(
    stop=stop_after_attempt(max_tries),
    wait=wait_fixed(wait_seconds),
    before=before_log(logger, logging.INFO),
    after=after_log(logger, logging.WARN),
)
def init(db_engine: Engine) -> None:
    """
    检查数据库连接

    执行 select(1)，失败时由 tenacity 重试。
    """
    try:
        with Session(db_engine) as session:
            session.exec(select(1))
    except Exception as e:
        logger.error(e)
        raise e


def missing_card_columns(db_engine: Engine) -> list[str]:
    """
    返回 cards 表缺少的预留字段

    cards 表还不存在（尚未执行迁移）时返回空列表。
    """
    inspector = sa.inspect(db_engine)
    if not inspector.has_table(CARDS_TABLE):
        return []
    existing = {col["name"] for col in inspector.get_columns(CARDS_TABLE)}
    return [name for name in MISSING_COLUMN_MARKERS if name not in existing]


def main() -> None:
    logger.info("Initializing service")
    init(engine)
    missing = missing_card_columns(engine)
    if missing:
        logger.warning("cards table is missing columns: %s", ", ".join(missing))
    logger.info("Service finished initializing")


if __name__ == "__main__":  # pragma: no cover
    main()
