from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional

import pandas as pd

from strategylab.core.exceptions import ConfigError
from strategylab.core.models import PortfolioSnapshot, Trade


class PositionSizingMode(str, Enum):
    """How the entry quantity is derived from BacktestConfig.position_size."""

    PERCENTAGE_OF_PORTFOLIO = "percentage_of_portfolio"
    FIXED_AMOUNT = "fixed_amount"
    FIXED_QUANTITY = "fixed_quantity"


@dataclass(frozen=True)
class BacktestConfig:
    """
    Cost and sizing assumptions for one run.

    Attributes:
        initial_balance (float): Starting cash.
        taker_fee_rate (float): Fee on market fills (0.001 = 0.1%).
        maker_fee_rate (float): Fee on resting fills.
        slippage_rate (float): Adverse adjustment of the fill price.
        sizing_mode (PositionSizingMode): Interpretation of position_size.
        position_size (float): Equity fraction, notional or unit count.
        max_position_pct (float): Cap on entry notional as a fraction of equity.
        max_loss_per_trade_pct (float): Hard stop distance from entry (0 disables).
        periods_per_year (float | None): Annualisation factor; inferred when None.
    """

    initial_balance: float = 10_000.0
    taker_fee_rate: float = 0.001
    maker_fee_rate: float = 0.0008
    slippage_rate: float = 0.0001
    sizing_mode: PositionSizingMode = PositionSizingMode.PERCENTAGE_OF_PORTFOLIO
    position_size: float = 0.95
    max_position_pct: float = 1.0
    max_loss_per_trade_pct: float = 0.05
    periods_per_year: Optional[float] = None

    def __post_init__(self) -> None:
        if not isinstance(self.sizing_mode, PositionSizingMode):
            try:
                object.__setattr__(
                    self, "sizing_mode", PositionSizingMode(str(self.sizing_mode))
                )
            except ValueError as exc:
                raise ConfigError(f"unknown sizing mode: {self.sizing_mode!r}") from exc
        self.validate()

    def validate(self) -> None:
        if self.initial_balance <= 0:
            raise ConfigError("initial_balance must be positive")
        for name in ("taker_fee_rate", "maker_fee_rate", "slippage_rate"):
            value = getattr(self, name)
            if not 0.0 <= value < 1.0:
                raise ConfigError(f"{name} must be in [0, 1), got {value}")
        if self.position_size <= 0:
            raise ConfigError("position_size must be positive")
        if not 0.0 < self.max_position_pct <= 1.0:
            raise ConfigError("max_position_pct must be in (0, 1]")
        if not 0.0 <= self.max_loss_per_trade_pct < 1.0:
            raise ConfigError("max_loss_per_trade_pct must be in [0, 1)")
        if self.periods_per_year is not None and self.periods_per_year <= 0:
            raise ConfigError("periods_per_year must be positive when given")

    def with_overrides(self, **overrides: Any) -> "BacktestConfig":
        return replace(self, **overrides)

    @classmethod
    def from_settings(cls, settings: Any = None) -> "BacktestConfig":
        if settings is None:
            from strategylab.config import settings as app_settings

            settings = app_settings
        return cls(
            initial_balance=settings.initial_balance,
            taker_fee_rate=settings.taker_fee_rate,
            maker_fee_rate=settings.maker_fee_rate,
            slippage_rate=settings.slippage_rate,
            sizing_mode=settings.sizing_mode,
            position_size=settings.position_size,
            max_loss_per_trade_pct=settings.max_loss_per_trade_pct,
        )


@dataclass(frozen=True)
class PerformanceMetrics:
    total_return: float = 0.0
    total_return_pct: float = 0.0
    annualized_return_pct: float = 0.0
    max_drawdown: float = 0.0
    max_drawdown_pct: float = 0.0
    sharpe_ratio: float = 0.0
    sortino_ratio: float = 0.0
    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    win_rate: float = 0.0
    profit_factor: float = 0.0
    average_win: float = 0.0
    average_loss: float = 0.0
    largest_win: float = 0.0
    largest_loss: float = 0.0
    duration: timedelta = timedelta(0)
    average_holding_hours: float = 0.0

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class BacktestResult:
    """Everything produced by one (strategy, dataset) evaluation."""

    strategy_name: str
    symbol: str
    timeframe: str
    start_date: Optional[datetime]
    end_date: Optional[datetime]
    initial_balance: float
    final_balance: float
    metrics: PerformanceMetrics
    config: BacktestConfig
    trades: List[Trade] = field(default_factory=list)
    equity_curve: List[PortfolioSnapshot] = field(default_factory=list)
    open_trade: Optional[Trade] = None

    def equity_frame(self) -> pd.DataFrame:
        """Equity curve as a DataFrame indexed by timestamp."""
        if not self.equity_curve:
            return pd.DataFrame(columns=["total_value", "cash", "position_value"])
        return pd.DataFrame(
            {
                "total_value": [s.total_value for s in self.equity_curve],
                "cash": [s.cash for s in self.equity_curve],
                "position_value": [s.position_value for s in self.equity_curve],
            },
            index=pd.DatetimeIndex(
                [s.timestamp for s in self.equity_curve], name="timestamp"
            ),
        )


class OptimizationMetric(str, Enum):
    """Fitness used to rank parameter combinations."""

    TOTAL_RETURN = "total_return"
    SHARPE_RATIO = "sharpe_ratio"
    SORTINO_RATIO = "sortino_ratio"
    PROFIT_FACTOR = "profit_factor"
    WIN_RATE = "win_rate"
    CUSTOM = "custom"


@dataclass(frozen=True)
class ParameterTestResult:
    """Scalar summary of one evaluated parameter combination."""

    index: int
    parameters: Dict[str, Any]
    metric_value: float
    total_return_pct: float
    sharpe_ratio: float
    max_drawdown_pct: float
    total_trades: int
    win_rate: float
    profit_factor: float


@dataclass
class OptimizationResult:
    """
    Outcome of a grid search.

    ``all_results`` is sorted by fitness, best first; equal fitness keeps
    the grid order. ``total_combinations_tested`` counts successful
    evaluations, ``combinations_attempted`` every combination started.
    """

    best_parameters: Dict[str, Any]
    best_backtest_result: Optional[BacktestResult]
    best_metric_value: float
    optimized_for: OptimizationMetric
    all_results: List[ParameterTestResult] = field(default_factory=list)
    duration: timedelta = timedelta(0)
    total_combinations_tested: int = 0
    combinations_attempted: int = 0

    def results_frame(self) -> pd.DataFrame:
        """One row per tested combination, parameters flattened into columns."""
        rows = [
            {
                **r.parameters,
                "metric_value": r.metric_value,
                "total_return_pct": r.total_return_pct,
                "sharpe_ratio": r.sharpe_ratio,
                "max_drawdown_pct": r.max_drawdown_pct,
                "total_trades": r.total_trades,
                "win_rate": r.win_rate,
                "profit_factor": r.profit_factor,
            }
            for r in self.all_results
        ]
        return pd.DataFrame(rows)


__all__ = [
    "BacktestConfig",
    "BacktestResult",
    "OptimizationMetric",
    "OptimizationResult",
    "ParameterTestResult",
    "PerformanceMetrics",
    "PositionSizingMode",
]
