"""
初始数据脚本

在数据库迁移完成后执行：修正旧版 cards 表（补齐预留字段、
把 is_used 为 NULL 的历史卡密修正为 false）。
"""
import logging  # 日志记录

from sqlmodel import Session  # 数据库会话

from cardshop.core.db import engine, init_db  # 数据库引擎和初始化函数

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def init() -> None:
    with Session(engine) as session:
        init_db(session)


def main() -> None:
    logger.info("Checking card schema")
    init()
    logger.info("Card schema ready")


if __name__ == "__main__":  # pragma: no cover
    main()
