from __future__ import annotations

# Public API for strategies

from .base import BaseStrategy, Strategy, StrategyParameters
from .buy_and_hold import BuyAndHoldStrategy
from .fvg_liquidity import FvgLiquiditySwingStrategy
from .macro_trend import MacroTrendStrategy
from .order_block_choch import OrderBlockChochStrategy
from .params import (
    BuyAndHoldParams,
    FvgLiquidityParams,
    MacroTrendParams,
    OrderBlockChochParams,
    SmaCrossoverParams,
)
from .registry import STRATEGIES, build_strategy
from .sma_crossover import SmaCrossoverStrategy

__all__ = [
    "BaseStrategy",
    "Strategy",
    "StrategyParameters",
    "BuyAndHoldStrategy",
    "BuyAndHoldParams",
    "SmaCrossoverStrategy",
    "SmaCrossoverParams",
    "MacroTrendStrategy",
    "MacroTrendParams",
    "FvgLiquiditySwingStrategy",
    "FvgLiquidityParams",
    "OrderBlockChochStrategy",
    "OrderBlockChochParams",
    "STRATEGIES",
    "build_strategy",
]
