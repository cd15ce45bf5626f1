from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Sequence

import numpy as np

from strategylab.core.models import Candle


@dataclass(slots=True)
class FairValueGap:
    """
    A 3-candle imbalance centred on ``index``.

    Attributes:
        index (int): Index of the middle candle.
        timestamp (datetime): Time of the middle candle.
        top (float): Upper edge of the gap.
        bottom (float): Lower edge of the gap.
        bullish (bool): True when candle[i-1].high < candle[i+1].low.
        filled (bool): Set once a later candle trades into the gap.
        filled_at (int | None): Index of the first candle that touched the gap.
        fill_ratio (float): Deepest fraction of the gap covered so far (0-1).
    """

    index: int
    timestamp: datetime
    top: float
    bottom: float
    bullish: bool
    filled: bool = False
    filled_at: Optional[int] = None
    fill_ratio: float = 0.0

    @property
    def size(self) -> float:
        return self.top - self.bottom

    @property
    def midpoint(self) -> float:
        return (self.top + self.bottom) / 2.0

    @property
    def key(self) -> tuple:
        return (self.index, self.bullish)

    def contains(self, low: float, high: float) -> bool:
        """True when the range [low, high] overlaps the gap."""
        return low <= self.top and high >= self.bottom

    def update(self, idx: int, low: float, high: float) -> None:
        if self.size <= 0 or not self.contains(low, high):
            return
        if self.bullish:
            ratio = (self.top - max(low, self.bottom)) / self.size
        else:
            ratio = (min(high, self.top) - self.bottom) / self.size
        self.fill_ratio = max(self.fill_ratio, float(ratio))
        if not self.filled:
            self.filled = True
            self.filled_at = idx

    def was_open_before(self, idx: int) -> bool:
        """True when no candle before ``idx`` had touched the gap."""
        return self.filled_at is None or self.filled_at >= idx


def detect_fvgs(candles: Sequence[Candle], min_gap_pct: float = 0.0) -> List[FairValueGap]:
    """
    Detect bullish and bearish fair value gaps.

    ``min_gap_pct`` is expressed in percent of candle[i-1].close; gaps below
    it are discarded. Fill status is not evaluated here, see update_fill_status.
    """
    n = len(candles)
    if n < 3:
        return []
    high = np.fromiter((c.high for c in candles), dtype=float, count=n)
    low = np.fromiter((c.low for c in candles), dtype=float, count=n)
    close = np.fromiter((c.close for c in candles), dtype=float, count=n)

    prev_high, prev_low, prev_close = high[:-2], low[:-2], close[:-2]
    next_high, next_low = high[2:], low[2:]
    with np.errstate(divide="ignore", invalid="ignore"):
        bull_pct = np.where(prev_close > 0, (next_low - prev_high) / prev_close * 100.0, 0.0)
        bear_pct = np.where(prev_close > 0, (prev_low - next_high) / prev_close * 100.0, 0.0)

    bull = (prev_high < next_low) & (bull_pct >= min_gap_pct)
    bear = (prev_low > next_high) & (bear_pct >= min_gap_pct)

    gaps: List[FairValueGap] = []
    for k in np.flatnonzero(bull | bear):
        i = int(k) + 1
        ts = candles[i].timestamp
        if bull[k]:
            gaps.append(FairValueGap(i, ts, top=float(next_low[k]), bottom=float(prev_high[k]), bullish=True))
        if bear[k]:
            gaps.append(FairValueGap(i, ts, top=float(prev_low[k]), bottom=float(next_high[k]), bullish=False))
    return gaps


def update_fill_status(gaps: Sequence[FairValueGap], candles: Sequence[Candle]) -> None:
    """
    Mark gaps filled by price action after the pattern (from index + 2 on).

    Filled gaps are left untouched, so the flag only ever flips false -> true.
    """
    n = len(candles)
    for gap in gaps:
        if gap.filled:
            continue
        for i in range(gap.index + 2, n):
            c = candles[i]
            gap.update(i, c.low, c.high)
            if gap.filled:
                break


__all__ = ["FairValueGap", "detect_fvgs", "update_fill_status"]
