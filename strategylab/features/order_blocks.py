from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import List, Sequence

from strategylab.core.models import Candle


@dataclass(slots=True)
class OrderBlock:
    """The last opposite candle before a displacement candle."""

    index: int
    timestamp: datetime
    top: float
    bottom: float
    bullish: bool

    @property
    def midpoint(self) -> float:
        return (self.top + self.bottom) / 2.0

    def contains(self, price: float) -> bool:
        return self.bottom <= price <= self.top


def _impulse_pct(candle: Candle) -> float:
    if candle.open <= 0:
        return 0.0
    return (candle.close - candle.open) / candle.open * 100.0


def detect_order_blocks(candles: Sequence[Candle], min_impulse_pct: float = 1.5) -> List[OrderBlock]:
    """
    Detect order blocks.

    A bullish block is a bearish candle followed by a bullish candle whose
    body moves at least ``min_impulse_pct`` percent of its open; bearish
    blocks mirror this. The block spans the opposite candle's high-low range.
    """
    blocks: List[OrderBlock] = []
    for i in range(len(candles) - 1):
        cur, nxt = candles[i], candles[i + 1]
        move = _impulse_pct(nxt)
        if cur.is_bearish and nxt.is_bullish and move >= min_impulse_pct:
            blocks.append(OrderBlock(i, cur.timestamp, cur.high, cur.low, bullish=True))
        elif cur.is_bullish and nxt.is_bearish and -move >= min_impulse_pct:
            blocks.append(OrderBlock(i, cur.timestamp, cur.high, cur.low, bullish=False))
    return blocks


__all__ = ["OrderBlock", "detect_order_blocks"]
