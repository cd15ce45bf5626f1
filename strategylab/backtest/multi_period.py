from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Sequence

import pandas as pd
from loguru import logger

from strategylab.backtest.engine import BacktestEngine
from strategylab.backtest.model import BacktestConfig, BacktestResult
from strategylab.backtest.optimizer import StrategyFactory
from strategylab.core.models import Candle, validate_candles
from strategylab.features.regime import MarketRegime, MarketRegimeDetector


def _as_utc(ts: datetime) -> datetime:
    return ts.replace(tzinfo=timezone.utc) if ts.tzinfo is None else ts


@dataclass(frozen=True)
class PeriodDefinition:
    """Named date range; both ends inclusive, naive datetimes are read as UTC."""

    label: str
    start: datetime
    end: datetime
    description: str = ""

    def contains(self, ts: datetime) -> bool:
        return _as_utc(self.start) <= _as_utc(ts) <= _as_utc(self.end)


def _year_span(label: str, description: str, first: int, last: int, end_month: int = 12, end_day: int = 31):
    return PeriodDefinition(
        label=label,
        start=datetime(first, 1, 1, tzinfo=timezone.utc),
        end=datetime(last, end_month, end_day, 23, 59, 59, tzinfo=timezone.utc),
        description=description,
    )


#: Market phases of the recent BTC cycle.
STANDARD_PERIODS: tuple[PeriodDefinition, ...] = (
    _year_span("Bull 2020-2021", "Major bull run", 2020, 2021),
    _year_span("Bear 2022", "Bear market crash", 2022, 2022),
    _year_span("Recovery 2023", "Recovery year", 2023, 2023),
    _year_span("Bull 2024", "Bull market", 2024, 2024),
    _year_span("Current 2025-2026", "Current period", 2025, 2026, end_month=2, end_day=22),
)


@dataclass
class PeriodResult:
    period: PeriodDefinition
    result: BacktestResult
    regime: Optional[MarketRegime]
    candle_count: int


@dataclass
class MultiPeriodResult:
    """
    One strategy replayed over several named periods.

    ``overall_return_pct`` compounds the per-period returns as if each period
    started with the previous period's ending balance. ``skipped`` lists the
    labels of periods with too little data or a failed run.
    """

    period_results: List[PeriodResult] = field(default_factory=list)
    overall_return_pct: float = 0.0
    average_sharpe: float = 0.0
    total_trades: int = 0
    skipped: List[str] = field(default_factory=list)

    def summary_frame(self) -> pd.DataFrame:
        """One row per tested period."""
        return pd.DataFrame(
            [
                {
                    "period": pr.period.label,
                    "regime": pr.regime.value if pr.regime is not None else None,
                    "candles": pr.candle_count,
                    "return_pct": pr.result.metrics.total_return_pct,
                    "sharpe_ratio": pr.result.metrics.sharpe_ratio,
                    "max_drawdown_pct": pr.result.metrics.max_drawdown_pct,
                    "trades": pr.result.metrics.total_trades,
                }
                for pr in self.period_results
            ]
        )


class MultiPeriodBacktester:
    """
    Run a strategy separately on each period of a long dataset.

    Every period gets a fresh strategy from ``strategy_factory``. The regime
    reported for a period is read at its midpoint candle.
    """

    def __init__(
        self,
        engine: Optional[BacktestEngine] = None,
        detector: Optional[MarketRegimeDetector] = None,
        *,
        min_candles: int = 50,
    ) -> None:
        self.engine = engine or BacktestEngine()
        self.detector = detector or MarketRegimeDetector()
        self.min_candles = min_candles

    def run(
        self,
        strategy_factory: StrategyFactory,
        candles: Sequence[Candle],
        config: Optional[BacktestConfig] = None,
        periods: Optional[Sequence[PeriodDefinition]] = None,
    ) -> MultiPeriodResult:
        validate_candles(candles)
        config = config or BacktestConfig()
        out = MultiPeriodResult()

        for period in STANDARD_PERIODS if periods is None else periods:
            subset = [c for c in candles if period.contains(c.timestamp)]
            if len(subset) < self.min_candles:
                logger.info(
                    "[multi-period] skipping {}: {} candles (< {})",
                    period.label,
                    len(subset),
                    self.min_candles,
                )
                out.skipped.append(period.label)
                continue

            try:
                result = self.engine.run(strategy_factory(), subset, config.initial_balance, config)
            except Exception as exc:
                logger.warning("[multi-period] {} failed: {}", period.label, exc)
                out.skipped.append(period.label)
                continue

            snap = self.detector.detect(subset[: len(subset) // 2 + 1])
            regime = snap.phase if snap is not None else None
            out.period_results.append(
                PeriodResult(period=period, result=result, regime=regime, candle_count=len(subset))
            )
            logger.info(
                "[multi-period] {} regime={} return={:+.2f}% sharpe={:.2f} trades={}",
                period.label,
                regime.value if regime is not None else "-",
                result.metrics.total_return_pct,
                result.metrics.sharpe_ratio,
                result.metrics.total_trades,
            )

        if not out.period_results:
            return out

        factor = math.prod(1.0 + pr.result.metrics.total_return_pct / 100.0 for pr in out.period_results)
        out.overall_return_pct = (factor - 1.0) * 100.0
        out.average_sharpe = sum(pr.result.metrics.sharpe_ratio for pr in out.period_results) / len(
            out.period_results
        )
        out.total_trades = sum(pr.result.metrics.total_trades for pr in out.period_results)
        return out


__all__ = [
    "STANDARD_PERIODS",
    "MultiPeriodBacktester",
    "MultiPeriodResult",
    "PeriodDefinition",
    "PeriodResult",
]
