from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, Type

from strategylab.core.exceptions import ConfigError
from strategylab.strats.base import BaseStrategy
from strategylab.strats.buy_and_hold import BuyAndHoldStrategy
from strategylab.strats.fvg_liquidity import FvgLiquiditySwingStrategy
from strategylab.strats.macro_trend import MacroTrendStrategy
from strategylab.strats.order_block_choch import OrderBlockChochStrategy
from strategylab.strats.sma_crossover import SmaCrossoverStrategy

STRATEGIES: Dict[str, Type[BaseStrategy]] = {
    "buy_and_hold": BuyAndHoldStrategy,
    "sma_crossover": SmaCrossoverStrategy,
    "macro_trend": MacroTrendStrategy,
    "fvg_liquidity_swing": FvgLiquiditySwingStrategy,
    "order_block_choch": OrderBlockChochStrategy,
}


def build_strategy(name: str, parameters: Optional[Mapping[str, Any]] = None) -> BaseStrategy:
    key = name.strip().lower().replace("-", "_").replace(" ", "_")
    try:
        cls = STRATEGIES[key]
    except KeyError:
        raise ConfigError(f"unknown strategy {name!r}; known: {sorted(STRATEGIES)}") from None
    return cls(parameters)


__all__ = ["STRATEGIES", "build_strategy"]
