from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Sequence

import numpy as np

from strategylab.core.models import Candle


@dataclass(slots=True)
class LiquidityZone:
    """
    A swing high or swing low where resting orders are assumed to sit.

    Attributes:
        index (int): Index of the swing candle.
        timestamp (datetime): Time of the swing candle.
        price (float): The swing high (is_high) or swing low.
        is_high (bool): True for a swing high.
        strength (int): left_bars + right_bars used to confirm the swing.
        confirmed_at (int): First index at which the swing is known.
        swept (bool): Set once a later candle pierces the level.
        swept_at (int | None): Index of the sweeping candle.
        swept_time (datetime | None): Time of the sweeping candle.
    """

    index: int
    timestamp: datetime
    price: float
    is_high: bool
    strength: int
    confirmed_at: int
    swept: bool = False
    swept_at: Optional[int] = None
    swept_time: Optional[datetime] = None

    @property
    def key(self) -> tuple:
        return (self.index, self.is_high)

    def was_swept_before(self, idx: int) -> bool:
        return self.swept_at is not None and self.swept_at < idx


def detect_swing_points(
    candles: Sequence[Candle], left_bars: int = 5, right_bars: int = 5
) -> List[LiquidityZone]:
    """
    Find strict local extremes over a [i - left_bars, i + right_bars] window.

    A candle is a swing high when its high is strictly above every other high
    in the window (ties disqualify). Swing lows mirror this on the lows. The
    last ``right_bars`` candles can never qualify.
    """
    if left_bars < 1 or right_bars < 1:
        raise ValueError("left_bars and right_bars must be >= 1")
    n = len(candles)
    if n < left_bars + right_bars + 1:
        return []
    high = np.fromiter((c.high for c in candles), dtype=float, count=n)
    low = np.fromiter((c.low for c in candles), dtype=float, count=n)
    strength = left_bars + right_bars

    zones: List[LiquidityZone] = []
    for i in range(left_bars, n - right_bars):
        lo, hi = i - left_bars, i + right_bars + 1
        h_win = np.delete(high[lo:hi], left_bars)
        l_win = np.delete(low[lo:hi], left_bars)
        ts = candles[i].timestamp
        if high[i] > h_win.max():
            zones.append(LiquidityZone(i, ts, float(high[i]), True, strength, i + right_bars))
        if low[i] < l_win.min():
            zones.append(LiquidityZone(i, ts, float(low[i]), False, strength, i + right_bars))
    return zones


def detect_sweeps(
    zones: Sequence[LiquidityZone],
    candles: Sequence[Candle],
    sweep_threshold: float = 0.001,
) -> None:
    """
    Flag zones pierced by a later candle.

    A high is swept when a later high exceeds ``price * (1 + sweep_threshold)``;
    a low when a later low falls below ``price * (1 - sweep_threshold)``.
    Swept zones are never reset.
    """
    n = len(candles)
    for zone in zones:
        if zone.swept:
            continue
        if zone.is_high:
            level = zone.price * (1.0 + sweep_threshold)
        else:
            level = zone.price * (1.0 - sweep_threshold)
        for i in range(zone.index + 1, n):
            c = candles[i]
            if (zone.is_high and c.high > level) or (not zone.is_high and c.low < level):
                zone.swept = True
                zone.swept_at = i
                zone.swept_time = c.timestamp
                break


__all__ = ["LiquidityZone", "detect_sweeps", "detect_swing_points"]
