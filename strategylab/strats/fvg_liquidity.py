from __future__ import annotations

from typing import Optional, Sequence, Tuple

from loguru import logger

from strategylab.backtest.portfolio import VirtualPortfolio
from strategylab.core.models import Candle, TradeSignal
from strategylab.features.cache import DetectorCache, DetectorSettings
from strategylab.features.fvg import FairValueGap
from strategylab.features.liquidity import LiquidityZone
from strategylab.strats.base import BaseStrategy
from strategylab.strats.params import FvgLiquidityParams


class FvgLiquiditySwingStrategy(BaseStrategy):
    """
    Long when price trades back into an untouched bullish fair value gap
    that formed shortly after a swing low was swept.

    The stop sits at the swept low and the target at ``risk_reward`` times
    the risk. A matching bearish setup while long closes the position.
    """

    name = "FVG Liquidity Swing"
    description = "Fair value gap re-entry after a liquidity sweep"
    params_cls = FvgLiquidityParams

    def reset(self) -> None:
        p = self.params
        self.cache = DetectorCache(
            p.refresh_interval,
            DetectorSettings(
                fvgs=True,
                swings=True,
                min_gap_pct=p.fvg_min_gap_pct,
                left_bars=p.swing_lookback,
                right_bars=p.swing_lookback,
                sweep_threshold=p.sweep_threshold,
            ),
        )
        self._stop: Optional[float] = None
        self._target: Optional[float] = None

    def find_setup(
        self, candle: Candle, history_len: int, bullish: bool = True
    ) -> Optional[Tuple[FairValueGap, LiquidityZone]]:
        """The most recent gap touched by ``candle`` that follows a matching sweep."""
        p = self.params
        idx = history_len - 1
        limit = history_len - p.confirm_bars
        gaps = sorted(
            (
                g
                for g in self.cache.fvgs
                if g.bullish == bullish and g.index < limit and g.was_open_before(idx)
            ),
            key=lambda g: g.index,
            reverse=True,
        )[: p.recent_fvgs]
        sweeps = [
            z
            for z in self.cache.swings
            if z.is_high != bullish and z.swept_at is not None and z.swept_at < idx
        ]
        for gap in gaps:
            if not gap.contains(candle.low, candle.high):
                continue
            for zone in sorted(sweeps, key=lambda z: z.swept_at, reverse=True):
                lag = gap.index + 1 - zone.swept_at
                if 0 <= lag <= p.sweep_window:
                    return gap, zone
        return None

    def evaluate(
        self, candle: Candle, portfolio: VirtualPortfolio, history: Sequence[Candle]
    ) -> TradeSignal:
        self.cache.refresh(history)
        n = len(history)

        if portfolio.position is None:
            setup = self.find_setup(candle, n, bullish=True)
            if setup is None:
                return TradeSignal.HOLD
            gap, zone = setup
            risk = candle.close - zone.price
            if risk <= 0:
                return TradeSignal.HOLD
            self._stop = zone.price
            self._target = candle.close + self.params.risk_reward * risk
            logger.debug(
                "[fvg-liq] buy at {:.2f} gap {:.2f}-{:.2f} stop={:.2f} target={:.2f}",
                candle.close,
                gap.bottom,
                gap.top,
                self._stop,
                self._target,
            )
            return TradeSignal.BUY

        if self._stop is not None and candle.close < self._stop:
            return TradeSignal.SELL
        if self._target is not None and candle.close >= self._target:
            return TradeSignal.SELL
        if self.find_setup(candle, n, bullish=False) is not None:
            return TradeSignal.SELL
        return TradeSignal.HOLD

    def on_exit(self) -> None:
        self._stop = None
        self._target = None
