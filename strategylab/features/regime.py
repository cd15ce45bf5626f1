from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

import numpy as np
from loguru import logger

from strategylab.core.models import Candle, candles_to_frame
from strategylab.features.indicators import adx, atr


class MarketRegime(str, Enum):
    BULL = "bull"
    BEAR = "bear"
    SIDEWAYS = "sideways"


class TrendRegime(str, Enum):
    STRONG_TRENDING = "strong_trending"
    WEAK_TRENDING = "weak_trending"
    RANGING = "ranging"


class VolatilityRegime(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


_RECOMMENDED = {
    (TrendRegime.STRONG_TRENDING, VolatilityRegime.HIGH): "macro_trend",
    (TrendRegime.STRONG_TRENDING, VolatilityRegime.MEDIUM): "sma_crossover",
    (TrendRegime.STRONG_TRENDING, VolatilityRegime.LOW): "sma_crossover",
    (TrendRegime.WEAK_TRENDING, VolatilityRegime.HIGH): "sma_crossover",
    (TrendRegime.RANGING, VolatilityRegime.HIGH): "fvg_liquidity_swing",
}


def recommend_strategy(trend: TrendRegime, volatility: VolatilityRegime) -> str:
    """Registry name of the strategy family suited to the regime pair."""
    return _RECOMMENDED.get((trend, volatility), "order_block_choch")


@dataclass(slots=True)
class RegimeSnapshot:
    """
    Regime read-out at the last candle of a series.

    Attributes:
        phase (MarketRegime): Bull / Bear / Sideways.
        trend (TrendRegime): ADX-based trend strength.
        volatility (VolatilityRegime): ATR-percent volatility bucket.
        adx (float | None): Last ADX value.
        atr_pct (float | None): Last ATR as percent of the close.
        slope_pct (float): Regression slope per candle, percent of mean close.
        sma (float | None): Last long SMA value when enough data exists.
        recommended_strategy (str): Registry name, see recommend_strategy.
    """

    phase: MarketRegime
    trend: TrendRegime
    volatility: VolatilityRegime
    adx: Optional[float]
    atr_pct: Optional[float]
    slope_pct: float
    sma: Optional[float]
    recommended_strategy: str


def _regression_slope_pct(closes: np.ndarray) -> float:
    if closes.size < 2 or np.ptp(closes) == 0:
        return 0.0
    x = np.arange(closes.size, dtype=float)
    slope = float(np.polyfit(x, closes, 1)[0])
    mean = float(closes.mean())
    return slope / mean * 100.0 if mean > 0 else 0.0


def _last_valid(values) -> Optional[float]:
    v = values.dropna()
    return float(v.iloc[-1]) if not v.empty else None


class MarketRegimeDetector:
    """
    Classify the market phase over a trailing window.

    The phase is Bull when the close is above the long SMA and the trailing
    regression slope is positive, Bear for the mirror and Sideways otherwise.
    Without enough history for the SMA, the sign of the slope decides.
    """

    def __init__(
        self,
        *,
        window: int = 90,
        sma_period: int = 200,
        adx_period: int = 14,
        atr_period: int = 14,
        flat_slope_pct: float = 0.0,
        strong_adx: float = 25.0,
        weak_adx: float = 20.0,
        high_atr_pct: float = 3.0,
        low_atr_pct: float = 1.0,
    ) -> None:
        if window < 2:
            raise ValueError("window must be >= 2")
        self.window = window
        self.sma_period = sma_period
        self.adx_period = adx_period
        self.atr_period = atr_period
        self.flat_slope_pct = flat_slope_pct
        self.strong_adx = strong_adx
        self.weak_adx = weak_adx
        self.high_atr_pct = high_atr_pct
        self.low_atr_pct = low_atr_pct

    @property
    def min_candles(self) -> int:
        return self.adx_period * 2 + 1

    def detect(self, candles: Sequence[Candle]) -> Optional[RegimeSnapshot]:
        """Snapshot at the last candle, or None with fewer than ``min_candles`` in the window."""
        if len(candles) == 0:
            return None
        trailing = list(candles[-self.window:])
        if len(trailing) < self.min_candles:
            return None

        closes = np.fromiter((c.close for c in candles), dtype=float, count=len(candles))
        window_closes = closes[-len(trailing):]
        price = float(closes[-1])
        slope = _regression_slope_pct(window_closes)

        sma_val: Optional[float] = None
        if closes.size >= self.sma_period:
            sma_val = float(closes[-self.sma_period:].mean())

        up = slope > self.flat_slope_pct
        down = slope < -self.flat_slope_pct
        if sma_val is not None:
            if price > sma_val and up:
                phase = MarketRegime.BULL
            elif price < sma_val and down:
                phase = MarketRegime.BEAR
            else:
                phase = MarketRegime.SIDEWAYS
        else:
            phase = MarketRegime.BULL if up else MarketRegime.BEAR if down else MarketRegime.SIDEWAYS

        df = candles_to_frame(trailing)
        last_adx = _last_valid(adx(df, self.adx_period)["adx"])
        last_atr = _last_valid(atr(df, self.atr_period))
        atr_pct = last_atr / price * 100.0 if (last_atr is not None and price > 0) else None

        if last_adx is None or last_adx < self.weak_adx:
            trend = TrendRegime.RANGING
        elif last_adx >= self.strong_adx:
            trend = TrendRegime.STRONG_TRENDING
        else:
            trend = TrendRegime.WEAK_TRENDING

        if atr_pct is None:
            volatility = VolatilityRegime.MEDIUM
        elif atr_pct >= self.high_atr_pct:
            volatility = VolatilityRegime.HIGH
        elif atr_pct >= self.low_atr_pct:
            volatility = VolatilityRegime.MEDIUM
        else:
            volatility = VolatilityRegime.LOW

        snap = RegimeSnapshot(
            phase=phase,
            trend=trend,
            volatility=volatility,
            adx=last_adx,
            atr_pct=atr_pct,
            slope_pct=slope,
            sma=sma_val,
            recommended_strategy=recommend_strategy(trend, volatility),
        )
        logger.debug(
            "[regime] phase={} trend={} vol={} slope={:.4f}% adx={} atr%={}",
            phase.value,
            trend.value,
            volatility.value,
            slope,
            last_adx,
            atr_pct,
        )
        return snap

    def classify(self, candles: Sequence[Candle]) -> MarketRegime:
        snap = self.detect(candles)
        return snap.phase if snap is not None else MarketRegime.SIDEWAYS


def classify_regime(candles: Sequence[Candle], lookback: int = 90) -> MarketRegime:
    """Bull / Bear / Sideways over the trailing ``lookback`` candles."""
    if not candles:
        return MarketRegime.SIDEWAYS
    return MarketRegimeDetector(window=max(2, int(lookback))).classify(candles)


__all__ = [
    "MarketRegime",
    "MarketRegimeDetector",
    "RegimeSnapshot",
    "TrendRegime",
    "VolatilityRegime",
    "classify_regime",
    "recommend_strategy",
]
