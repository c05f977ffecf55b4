"""
ID 生成模块

- generate_id: 64 位 Snowflake ID，用作各表主键
- generate_order_no: 对外展示的订单号，同时作为支付网关的 out_trade_no

Snowflake ID 结构（64 位）：
- 41 位：时间戳（毫秒，从 2024-01-01T00:00:00Z 开始）
- 10 位：节点 ID（0-1023，每个服务实例不同）
- 12 位：同一毫秒内的序列号（0-4095）
"""
from __future__ import annotations

import secrets  # 订单号随机后缀
import threading  # 线程锁，用于并发安全
import time  # 时间处理

from cardshop.core.config import settings

_EPOCH_MS = 1704067200000
_MAX_NODE_ID = 1023
_SEQ_MASK = 0xFFF
# 允许等待的最大时钟回拨（毫秒）
_MAX_BACKWARD_MS = 5000


class Snowflake:
    """线程安全的 Snowflake ID 生成器"""

    def __init__(self, *, node_id: int) -> None:
        if not (0 <= node_id <= _MAX_NODE_ID):
            raise ValueError(f"SNOWFLAKE_NODE_ID must be in [0, {_MAX_NODE_ID}]")
        self._node_id = node_id
        self._lock = threading.Lock()
        self._last_ts = -1
        self._seq = 0

    @staticmethod
    def _now_ms() -> int:
        return int(time.time() * 1000)

    @classmethod
    def _wait_until(cls, target_ms: int) -> int:
        ts = cls._now_ms()
        while ts < target_ms:
            time.sleep(0.001)
            ts = cls._now_ms()
        return ts

    def next_id(self) -> int:
        """
        生成下一个 ID

        时钟回拨不超过 5 秒时等待追平，超过则拒绝生成，避免重复。

        Raises:
            RuntimeError: 时钟回拨超过 5 秒
        """
        with self._lock:
            ts = self._now_ms()
            if ts < self._last_ts:
                drift = self._last_ts - ts
                if drift > _MAX_BACKWARD_MS:
                    raise RuntimeError(
                        f"Clock moved backwards by {drift}ms. "
                        "Refusing to generate IDs to prevent duplicates."
                    )
                ts = self._wait_until(self._last_ts)

            if ts == self._last_ts:
                self._seq = (self._seq + 1) & _SEQ_MASK
                if self._seq == 0:
                    # 本毫秒序列号用完
                    ts = self._wait_until(self._last_ts + 1)
            else:
                self._seq = 0

            self._last_ts = ts
            return ((ts - _EPOCH_MS) << 22) | (self._node_id << 12) | self._seq


_GENERATOR: Snowflake | None = None


def _get_generator() -> Snowflake:
    global _GENERATOR
    if _GENERATOR is None:
        _GENERATOR = Snowflake(node_id=settings.SNOWFLAKE_NODE_ID)
    return _GENERATOR


def generate_id() -> int:
    """生成 64 位唯一 ID"""
    return _get_generator().next_id()


def generate_order_no() -> str:
    """
    生成订单号

    格式：{UTC 时间 yyyymmddHHMMSS}{16 字节随机十六进制}，只包含数字和小写字母，
    满足支付网关对 out_trade_no 的字符要求。

    示例：
        >>> generate_order_no()
        '20260119083015a1b2c3d4e5f60718293a4b5c6d7e8f90'
    """
    stamp = time.strftime("%Y%m%d%H%M%S", time.gmtime())
    return f"{stamp}{secrets.token_hex(16)}"
