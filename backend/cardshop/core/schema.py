"""
卡密表结构兼容模块

老版本部署的 cards 表可能缺少预留字段（reserved_order_id / reserved_at），
或者 is_used 存在 NULL。正常情况下由 Alembic 迁移补齐；
这里提供运行时的兜底修复：

- is_missing_column_error: 判断数据库异常是否由缺少预留字段引起
- ensure_card_reservation_columns: 补齐预留字段（可重复执行）
- ensure_card_is_used_defaults: 修正 is_used 默认值和 NULL 数据（可重复执行）
- run_with_schema_repair: 重试策略，最多执行 2 次，两次之间执行修复
"""
from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TypeVar

import sqlalchemy as sa
from sqlalchemy.engine import Connection
from sqlalchemy.exc import DBAPIError
from sqlmodel import Session
from tenacity import Retrying, retry_if_exception, stop_after_attempt

logger = logging.getLogger(__name__)

T = TypeVar("T")

CARDS_TABLE = "cards"

# 缺失字段时错误信息中会出现的列名
MISSING_COLUMN_MARKERS = ("reserved_order_id", "reserved_at")
# PostgreSQL undefined_column
UNDEFINED_COLUMN_SQLSTATE = "42703"

# 运行时补齐的字段定义（与 models.card.Card 保持一致）
_RESERVATION_COLUMNS: tuple[tuple[str, sa.types.TypeEngine], ...] = (
    ("reserved_order_id", sa.String(length=64)),
    ("reserved_at", sa.DateTime(timezone=True)),
)


def is_missing_column_error(exc: BaseException) -> bool:
    """
    判断异常是否为可修复的"缺少预留字段"错误

    只处理 SQLAlchemy 包装的驱动异常：
    错误信息包含预留字段名，或驱动给出 SQLSTATE 42703。
    """
    if not isinstance(exc, DBAPIError):
        return False
    orig = exc.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate == UNDEFINED_COLUMN_SQLSTATE:
        return True
    message = str(exc)
    return any(marker in message for marker in MISSING_COLUMN_MARKERS)


def ensure_card_reservation_columns(connection: Connection) -> list[str]:
    """
    补齐 cards 表的预留字段

    通过 Inspector 读取现有列，只添加缺失的列，重复执行结果一致。

    Returns:
        本次新增的列名列表
    """
    existing = {col["name"] for col in sa.inspect(connection).get_columns(CARDS_TABLE)}
    added: list[str] = []
    for name, type_ in _RESERVATION_COLUMNS:
        if name in existing:
            continue
        ddl = type_.compile(dialect=connection.dialect)
        connection.execute(sa.text(f"ALTER TABLE {CARDS_TABLE} ADD COLUMN {name} {ddl}"))
        added.append(name)
    if added:
        logger.warning("Added missing card columns: %s", ", ".join(added))
    return added


def ensure_card_is_used_defaults(connection: Connection) -> int:
    """
    修正 cards.is_used：默认值设为 false，并把 NULL 改为 false

    SQLite 不支持 ALTER COLUMN，只做数据修正。

    Returns:
        被修正的行数
    """
    if connection.dialect.name == "postgresql":
        connection.execute(
            sa.text(f"ALTER TABLE {CARDS_TABLE} ALTER COLUMN is_used SET DEFAULT FALSE")
        )
    cards = sa.table(CARDS_TABLE, sa.column("is_used", sa.Boolean))
    result = connection.execute(
        sa.update(cards).where(cards.c.is_used.is_(None)).values(is_used=False)
    )
    fixed = result.rowcount or 0
    if fixed:
        logger.warning("Normalized %d legacy cards with NULL is_used", fixed)
    return fixed


def repair_card_schema(session: Session) -> None:
    """
    修复 cards 表结构并提交

    先回滚会话中失败的事务，再在新事务中执行 DDL。
    """
    session.rollback()
    connection = session.connection()
    ensure_card_reservation_columns(connection)
    ensure_card_is_used_defaults(connection)
    session.commit()


def run_with_schema_repair(
    session: Session,
    operation: Callable[[], T],
    *,
    enabled: bool = True,
) -> T:
    """
    执行数据库操作，遇到缺少预留字段时修复表结构并重试一次

    - 可修复错误：修复后重试（最多共执行 2 次）
    - 其他错误：原样抛出
    - enabled=False：直接执行，不做任何修复
    """
    if not enabled:
        return operation()

    def _repair(_state: object) -> None:
        logger.warning("Card schema drift detected, repairing before retry")
        repair_card_schema(session)

    retrying = Retrying(
        stop=stop_after_attempt(2),
        retry=retry_if_exception(is_missing_column_error),
        before_sleep=_repair,
        reraise=True,
    )
    return retrying(operation)
