from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import List, Optional, Sequence, Set

from strategylab.core.models import Candle
from strategylab.features.liquidity import LiquidityZone


class StructureBreak(str, Enum):
    BULLISH_BOS = "bullish_bos"
    BEARISH_BOS = "bearish_bos"
    BULLISH_CHOCH = "bullish_choch"
    BEARISH_CHOCH = "bearish_choch"

    @property
    def bullish(self) -> bool:
        return self in (StructureBreak.BULLISH_BOS, StructureBreak.BULLISH_CHOCH)

    @property
    def is_choch(self) -> bool:
        return self in (StructureBreak.BULLISH_CHOCH, StructureBreak.BEARISH_CHOCH)


@dataclass(slots=True)
class StructureEvent:
    index: int
    timestamp: datetime
    kind: StructureBreak
    level: float
    swing_index: int


def _initial_bias(highs: Sequence[LiquidityZone], lows: Sequence[LiquidityZone]) -> Optional[str]:
    """'up' for higher highs and higher lows, 'down' for the mirror, else None."""
    if len(highs) < 2 or len(lows) < 2:
        return None
    h1, h2 = highs[-2].price, highs[-1].price
    l1, l2 = lows[-2].price, lows[-1].price
    if h2 > h1 and l2 > l1:
        return "up"
    if h2 < h1 and l2 < l1:
        return "down"
    return None


def detect_structure_breaks(
    candles: Sequence[Candle],
    swings: Sequence[LiquidityZone],
    confirm_bars: int = 0,
) -> List[StructureEvent]:
    """
    Detect breaks of structure (BOS) and changes of character (CHOCH).

    A candle breaks the most recent confirmed swing high when its close and
    the ``confirm_bars`` closes before it are all above the level (mirror for
    swing lows). A break against the prevailing bias is a CHOCH and flips the
    bias; a break with it is a BOS. Each swing level is broken at most once.
    The bias starts from the first two confirmed highs and lows.
    """
    if confirm_bars < 0:
        raise ValueError("confirm_bars must be >= 0")
    ordered = sorted(swings, key=lambda z: (z.confirmed_at, z.index))
    events: List[StructureEvent] = []
    known_highs: List[LiquidityZone] = []
    known_lows: List[LiquidityZone] = []
    broken: Set[tuple] = set()
    bias: Optional[str] = None
    bias_seeded = False
    k = 0

    for i, candle in enumerate(candles):
        while k < len(ordered) and ordered[k].confirmed_at < i:
            z = ordered[k]
            (known_highs if z.is_high else known_lows).append(z)
            k += 1
        if not known_highs or not known_lows:
            continue
        if not bias_seeded:
            bias = _initial_bias(known_highs, known_lows)
            bias_seeded = len(known_highs) >= 2 and len(known_lows) >= 2
            if not bias_seeded:
                continue

        closes = [candles[j].close for j in range(max(0, i - confirm_bars), i + 1)]
        if len(closes) < confirm_bars + 1:
            continue

        last_high = known_highs[-1]
        if last_high.key not in broken and min(closes) > last_high.price:
            kind = StructureBreak.BULLISH_CHOCH if bias == "down" else StructureBreak.BULLISH_BOS
            events.append(StructureEvent(i, candle.timestamp, kind, last_high.price, last_high.index))
            broken.add(last_high.key)
            bias = "up"

        last_low = known_lows[-1]
        if last_low.key not in broken and max(closes) < last_low.price:
            kind = StructureBreak.BEARISH_CHOCH if bias == "up" else StructureBreak.BEARISH_BOS
            events.append(StructureEvent(i, candle.timestamp, kind, last_low.price, last_low.index))
            broken.add(last_low.key)
            bias = "down"

    return events


__all__ = ["StructureBreak", "StructureEvent", "detect_structure_breaks"]
