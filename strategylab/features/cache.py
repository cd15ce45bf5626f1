from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Sequence

from strategylab.core.models import Candle
from strategylab.features.fvg import FairValueGap, detect_fvgs, update_fill_status
from strategylab.features.liquidity import LiquidityZone, detect_sweeps, detect_swing_points
from strategylab.features.order_blocks import OrderBlock, detect_order_blocks
from strategylab.features.structure import StructureEvent, detect_structure_breaks


@dataclass(frozen=True)
class DetectorSettings:
    fvgs: bool = True
    swings: bool = True
    order_blocks: bool = False
    structure: bool = False
    min_gap_pct: float = 0.1
    left_bars: int = 5
    right_bars: int = 5
    sweep_threshold: float = 0.001
    min_impulse_pct: float = 1.5
    structure_confirm_bars: int = 0


def _merge_gaps(old: Sequence[FairValueGap], new: List[FairValueGap]) -> List[FairValueGap]:
    prev: Dict[tuple, FairValueGap] = {g.key: g for g in old}
    for gap in new:
        seen = prev.get(gap.key)
        if seen is None or not seen.filled:
            continue
        gap.filled = True
        if gap.filled_at is None or (seen.filled_at is not None and seen.filled_at < gap.filled_at):
            gap.filled_at = seen.filled_at
        gap.fill_ratio = max(gap.fill_ratio, seen.fill_ratio)
    return new


def _merge_zones(old: Sequence[LiquidityZone], new: List[LiquidityZone]) -> List[LiquidityZone]:
    prev: Dict[tuple, LiquidityZone] = {z.key: z for z in old}
    for zone in new:
        seen = prev.get(zone.key)
        if seen is not None and seen.swept and not zone.swept:
            zone.swept = True
            zone.swept_at = seen.swept_at
            zone.swept_time = seen.swept_time
    return new


class DetectorCache:
    """
    Detector outputs recomputed only every ``interval`` new candles.

    ``computed_len`` is the history length at the last recompute. Recomputing
    over the same window is idempotent; fill and sweep flags carried over
    from earlier results are never cleared.

    Between recomputes each new candle is still applied to the cached gaps,
    so a gap traded into mid-interval is reported filled from that candle
    on. Swings, sweeps, order blocks and structure breaks only change on a
    recompute.
    """

    def __init__(self, interval: int = 20, settings: DetectorSettings | None = None) -> None:
        if interval < 1:
            raise ValueError("interval must be >= 1")
        self.interval = interval
        self.settings = settings or DetectorSettings()
        self.reset()

    def reset(self) -> None:
        self.computed_len = 0
        self.tracked_len = 0
        self.fvgs: List[FairValueGap] = []
        self.swings: List[LiquidityZone] = []
        self.order_blocks: List[OrderBlock] = []
        self.structure: List[StructureEvent] = []

    def is_stale(self, length: int) -> bool:
        return self.computed_len == 0 or length - self.computed_len >= self.interval

    def refresh(self, history: Sequence[Candle], force: bool = False) -> bool:
        """Recompute when stale (or forced); returns True when it recomputed."""
        n = len(history)
        if n == 0:
            return False
        if not (force or self.is_stale(n)):
            self._track_fills(history)
            return False
        s = self.settings

        if s.fvgs:
            gaps = detect_fvgs(history, s.min_gap_pct)
            update_fill_status(gaps, history)
            self.fvgs = _merge_gaps(self.fvgs, gaps)

        if s.swings or s.structure:
            zones = detect_swing_points(history, s.left_bars, s.right_bars)
            detect_sweeps(zones, history, s.sweep_threshold)
            self.swings = _merge_zones(self.swings, zones)

        if s.order_blocks:
            self.order_blocks = detect_order_blocks(history, s.min_impulse_pct)

        if s.structure:
            self.structure = detect_structure_breaks(history, self.swings, s.structure_confirm_bars)

        self.computed_len = n
        self.tracked_len = n
        return True

    def _track_fills(self, history: Sequence[Candle]) -> None:
        n = len(history)
        for i in range(max(self.tracked_len, self.computed_len), n):
            c = history[i]
            for gap in self.fvgs:
                if not gap.filled and i >= gap.index + 2:
                    gap.update(i, c.low, c.high)
        self.tracked_len = max(self.tracked_len, n)


__all__ = ["DetectorCache", "DetectorSettings"]
