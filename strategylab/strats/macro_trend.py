from __future__ import annotations

import math
from datetime import date
from typing import NamedTuple, Optional, Sequence

from loguru import logger

from strategylab.backtest.portfolio import VirtualPortfolio
from strategylab.core.models import Candle, TradeSignal, candles_to_frame
from strategylab.features.indicators import ema, sma
from strategylab.features.mtf_aggregate import aggregate_ohlcv
from strategylab.strats.base import BaseStrategy
from strategylab.strats.params import MacroTrendParams


class BandLevels(NamedTuple):
    band_bottom: float
    band_bottom_prev: float
    prev_daily_close: float
    trend_sma: Optional[float]


class MacroTrendStrategy(BaseStrategy):
    """
    Trend following on the bull market support band.

    The band is min(SMA, EMA) of the higher-timeframe closes (weekly by
    default). Entry when the daily close moves from below the band to at or
    above it; exit on the reverse move or the trailing stop. Every
    ``tp_step_pct`` gained arms a scale-in: once flat again, a ``pullback_pct``
    dip from the peak followed by a close above the previous candle high
    re-enters while price holds the band, without waiting for a new flip.
    The position is taken off once ``max_steps`` steps have been reached.
    """

    name = "Macro MA Trend"
    description = "Support band trend with trailing stop, stepped take-profit and scale-in"
    params_cls = MacroTrendParams

    def reset(self) -> None:
        self._entry_core: Optional[float] = None
        self._next_step = 1
        self._peak: Optional[float] = None
        self._can_add = False
        self._pullback_seen = False
        self._trail_base: Optional[float] = None
        self._levels_day: Optional[date] = None
        self._levels: Optional[BandLevels] = None

    def _compute_levels(self, history: Sequence[Candle]) -> Optional[BandLevels]:
        p = self.params
        daily = aggregate_ohlcv(candles_to_frame(history), "1D")
        if len(daily) < 2:
            return None
        if p.use_trend_filter and len(daily) < p.trend_filter_period:
            return None

        band = aggregate_ohlcv(daily, p.band_rule)["close"]
        if len(band) < max(p.band_sma_period, p.band_ema_period) + 1:
            return None
        band_sma = sma(band, p.band_sma_period)
        band_ema = ema(band, p.band_ema_period)
        values = (band_sma.iloc[-1], band_sma.iloc[-2], band_ema.iloc[-1], band_ema.iloc[-2])
        if any(math.isnan(v) for v in values):
            return None

        trend_sma = None
        if p.use_trend_filter:
            trend_sma = float(sma(daily["close"], p.trend_filter_period).iloc[-1])
        return BandLevels(
            band_bottom=float(min(values[0], values[2])),
            band_bottom_prev=float(min(values[1], values[3])),
            prev_daily_close=float(daily["close"].iloc[-2]),
            trend_sma=trend_sma,
        )

    def _band(self, candle: Candle, history: Sequence[Candle]) -> Optional[BandLevels]:
        # the band moves on daily closes, so recompute once per calendar day
        day = candle.timestamp.date()
        if day != self._levels_day:
            self._levels = self._compute_levels(history)
            self._levels_day = day
        return self._levels

    def _clear_position_state(self) -> None:
        self._trail_base = None
        self._entry_core = None
        self._next_step = 1

    def _enter(self, candle: Candle) -> TradeSignal:
        self._entry_core = candle.close
        self._next_step = 1
        self._can_add = False
        self._pullback_seen = False
        self._trail_base = None
        self._peak = candle.high
        return TradeSignal.BUY

    def evaluate(
        self, candle: Candle, portfolio: VirtualPortfolio, history: Sequence[Candle]
    ) -> TradeSignal:
        p = self.params
        levels = self._band(candle, history)
        if levels is None:
            return TradeSignal.HOLD

        was_below = levels.prev_daily_close < levels.band_bottom_prev
        flip_up = was_below and candle.close >= levels.band_bottom
        flip_down = not was_below and candle.close < levels.band_bottom

        if portfolio.position is not None:
            self._peak = candle.high if self._peak is None else max(self._peak, candle.high)

            if self._entry_core is not None and self._next_step <= p.max_steps:
                target = self._entry_core * (1.0 + p.tp_step_pct * self._next_step / 100.0)
                if candle.close >= target:
                    self._next_step += 1
                    self._can_add = True
                    logger.debug("[macro] take-profit step {} reached at {:.2f}", self._next_step - 1, candle.close)
                if self._next_step > p.max_steps:
                    self._clear_position_state()
                    return TradeSignal.SELL

            if p.use_trailing:
                self._trail_base = candle.high if self._trail_base is None else max(self._trail_base, candle.high)
                if candle.close < self._trail_base * (1.0 - p.trail_pct / 100.0):
                    self._clear_position_state()
                    return TradeSignal.SELL

            if flip_down:
                self._clear_position_state()
                return TradeSignal.SELL
            return TradeSignal.HOLD

        passes_filter = not p.use_trend_filter or (
            levels.trend_sma is not None and candle.close > levels.trend_sma
        )
        if flip_up and passes_filter:
            return self._enter(candle)

        # scale-in does not need a band flip: pullback from the peak, then a
        # close above the previous high while still on the band
        if self._can_add and p.use_scale_in and self._peak is not None:
            if candle.low <= self._peak * (1.0 - p.pullback_pct / 100.0):
                self._pullback_seen = True
            rebreak = len(history) > 1 and candle.close > history[-2].high
            if self._pullback_seen and rebreak and passes_filter and candle.close >= levels.band_bottom:
                logger.debug("[macro] scale-in after pullback at {:.2f}", candle.close)
                return self._enter(candle)
        return TradeSignal.HOLD
