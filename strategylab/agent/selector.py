"""
Regime-aware strategy selection.

Each candidate strategy is backtested once over the same candles; scores are
``sharpe_ratio + regime_bonus(name, regime)`` and the highest score wins, the
first candidate in iteration order on ties.
"""

from __future__ import annotations

from typing import Dict, Mapping, Optional, Sequence, Tuple

from loguru import logger

from strategylab.backtest.engine import BacktestEngine
from strategylab.backtest.model import BacktestConfig, BacktestResult, PositionSizingMode
from strategylab.core.models import Candle
from strategylab.features.regime import MarketRegime, classify_regime
from strategylab.strats.base import Strategy

# -----------------------------------------------------------------------------
# Configuration
# -----------------------------------------------------------------------------

SELECTION_FEE_RATE = 0.0005
SELECTION_SLIPPAGE_RATE = 0.0001
SELECTION_POSITION_SIZE = 0.95

# (name keywords, bonus); the first matching row applies
_BONUS_TABLE: Dict[MarketRegime, Tuple[Tuple[Tuple[str, ...], float], ...]] = {
    MarketRegime.BULL: ((("macro",), 0.3), (("trend",), 0.3), (("buy", "hold"), 0.2)),
    MarketRegime.BEAR: ((("macro",), 0.2), (("trend",), 0.2)),
    MarketRegime.SIDEWAYS: (),
}


def selection_config(initial_capital: float) -> BacktestConfig:
    """Common cost model for the comparison runs; hard stop disabled."""
    return BacktestConfig(
        initial_balance=initial_capital,
        taker_fee_rate=SELECTION_FEE_RATE,
        maker_fee_rate=SELECTION_FEE_RATE,
        slippage_rate=SELECTION_SLIPPAGE_RATE,
        sizing_mode=PositionSizingMode.PERCENTAGE_OF_PORTFOLIO,
        position_size=SELECTION_POSITION_SIZE,
        max_loss_per_trade_pct=0.0,
    )


# -----------------------------------------------------------------------------
# Operations
# -----------------------------------------------------------------------------


def regime_bonus(strategy_name: str, regime: MarketRegime) -> float:
    name = strategy_name.lower()
    for keywords, bonus in _BONUS_TABLE.get(regime, ()):
        if all(k in name for k in keywords):
            return bonus
    return 0.0


def evaluate_strategies(
    strategies: Sequence[Strategy],
    candles: Sequence[Candle],
    initial_capital: float,
    config: Optional[BacktestConfig] = None,
    engine: Optional[BacktestEngine] = None,
) -> Dict[str, BacktestResult]:
    """
    Backtest every strategy once, keyed by strategy name.

    Each strategy is initialised with empty parameters first. A later
    strategy with the same name replaces the earlier result.
    """
    if not strategies or not candles:
        return {}
    engine = engine or BacktestEngine()
    config = config or selection_config(initial_capital)
    results: Dict[str, BacktestResult] = {}
    for strategy in strategies:
        strategy.initialize({})
        results[strategy.name] = engine.run(strategy, candles, initial_capital, config)
    return results


def select_best_strategy(results: Mapping[str, BacktestResult], regime: MarketRegime) -> Optional[str]:
    """Name with the highest Sharpe plus regime bonus; None when ``results`` is empty."""
    best_name: Optional[str] = None
    best_score = float("-inf")
    for name, result in results.items():
        score = result.metrics.sharpe_ratio + regime_bonus(name, regime)
        if best_name is None or score > best_score:
            best_name, best_score = name, score
    return best_name


class StrategySelector:
    """Bundles evaluation, regime classification and selection."""

    def __init__(
        self,
        lookback: Optional[int] = None,
        engine: Optional[BacktestEngine] = None,
        config: Optional[BacktestConfig] = None,
    ) -> None:
        from strategylab.config import settings

        self.lookback = int(lookback or settings.regime_lookback)
        self.engine = engine or BacktestEngine()
        self.config = config

    def classify(self, candles: Sequence[Candle]) -> MarketRegime:
        return classify_regime(candles, self.lookback)

    def evaluate(self, strategies: Sequence[Strategy], candles: Sequence[Candle], initial_capital: float) -> Dict[str, BacktestResult]:
        return evaluate_strategies(strategies, candles, initial_capital, self.config, self.engine)

    def select(
        self, strategies: Sequence[Strategy], candles: Sequence[Candle], initial_capital: float
    ) -> Tuple[Optional[str], MarketRegime, Dict[str, BacktestResult]]:
        results = self.evaluate(strategies, candles, initial_capital)
        regime = self.classify(candles)
        best = select_best_strategy(results, regime)
        logger.info(
            "[selector] regime={} candidates={} best={}",
            regime.value,
            len(results),
            best,
        )
        return best, regime, results


__all__ = [
    "StrategySelector",
    "classify_regime",
    "evaluate_strategies",
    "regime_bonus",
    "select_best_strategy",
    "selection_config",
]
