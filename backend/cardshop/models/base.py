"""
基础模型模块

定义所有模型共用的时间工具函数。数据库中的时间统一使用 UTC。
"""
from datetime import datetime, timedelta, timezone

from sqlmodel import SQLModel


def utc_now() -> datetime:
    """获取当前 UTC 时间"""
    return datetime.now(timezone.utc)


def seconds_before(moment: datetime, seconds: int) -> datetime:
    """
    计算某一时刻之前若干秒的时间点

    用于预留过期、订单超时等截止时间的计算。
    """
    return moment - timedelta(seconds=seconds)


__all__ = ["SQLModel", "utc_now", "seconds_before"]
