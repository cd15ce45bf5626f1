from __future__ import annotations

from typing import Sequence

from strategylab.backtest.portfolio import VirtualPortfolio
from strategylab.core.exceptions import ConfigError
from strategylab.core.models import Candle, TradeSignal
from strategylab.strats.base import BaseStrategy
from strategylab.strats.common import closes
from strategylab.strats.params import SmaCrossoverParams


class SmaCrossoverStrategy(BaseStrategy):
    name = "SMA Crossover"
    description = "Long when the fast SMA crosses above the slow SMA, flat on the cross back"
    params_cls = SmaCrossoverParams

    def initialize(self, parameters) -> None:
        super().initialize(parameters)
        p = self.params
        if p.fast_period < 1 or p.slow_period <= p.fast_period:
            raise ConfigError(
                f"need 1 <= fast_period < slow_period (got {p.fast_period}, {p.slow_period})"
            )

    @property
    def min_history(self) -> int:
        return self.params.slow_period + 1

    def evaluate(
        self, candle: Candle, portfolio: VirtualPortfolio, history: Sequence[Candle]
    ) -> TradeSignal:
        fast, slow = self.params.fast_period, self.params.slow_period
        c = closes(history, slow + 1)
        fast_now, fast_prev = c[-fast:].mean(), c[-fast - 1 : -1].mean()
        slow_now, slow_prev = c[1:].mean(), c[:-1].mean()

        if fast_prev <= slow_prev and fast_now > slow_now:
            return TradeSignal.BUY
        if fast_prev >= slow_prev and fast_now < slow_now:
            return TradeSignal.SELL
        return TradeSignal.HOLD
