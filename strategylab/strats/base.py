from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, ClassVar, Mapping, Optional, Sequence

from strategylab.backtest.portfolio import VirtualPortfolio
from strategylab.core.models import Candle, TradeSignal
from strategylab.strats.common import get_param, hours_between, resolve_params

StrategyParameters = Mapping[str, Any]


class Strategy(ABC):
    """
    Signal-producing contract consumed by the backtest engine.

    ``on_candle`` is called once per processed candle with the read-only
    history prefix ending at that candle and must return exactly one signal.
    """

    name: ClassVar[str] = ""
    description: ClassVar[str] = ""

    @property
    def warmup_period(self) -> int:
        return 0

    @abstractmethod
    def initialize(self, parameters: StrategyParameters) -> None: ...

    @abstractmethod
    def on_candle(
        self, candle: Candle, portfolio: VirtualPortfolio, history: Sequence[Candle]
    ) -> TradeSignal: ...

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


class BaseStrategy(Strategy):
    """
    Strategy template with parameter handling and the time-based rules.

    Subclasses declare ``params_cls`` (a frozen dataclass of defaults),
    implement ``evaluate`` and may override ``reset`` for per-run state.
    ``max_holding_hours`` forces an exit regardless of ``evaluate`` and
    ``min_hours_between_trades`` suppresses entries after a recent exit;
    0 disables either rule.
    """

    params_cls: ClassVar[type]

    def __init__(self, parameters: Optional[StrategyParameters] = None) -> None:
        self.params = self.params_cls()
        self.initialize(parameters or {})

    def initialize(self, parameters: StrategyParameters) -> None:
        self.params = resolve_params(self.params_cls(), parameters)
        self.reset()

    def reset(self) -> None:
        """Clear per-run state."""

    @property
    def min_history(self) -> int:
        return int(get_param(self.params, "min_history", 0) or 0)

    @property
    def warmup_period(self) -> int:
        return max(0, self.min_history - 1)

    def on_candle(
        self, candle: Candle, portfolio: VirtualPortfolio, history: Sequence[Candle]
    ) -> TradeSignal:
        if len(history) < self.min_history:
            return TradeSignal.HOLD

        pos = portfolio.position
        max_hold = float(get_param(self.params, "max_holding_hours", 0.0) or 0.0)
        if pos is not None and max_hold > 0 and hours_between(pos.entry_time, candle.timestamp) >= max_hold:
            self.on_exit()
            return TradeSignal.SELL

        signal = self.evaluate(candle, portfolio, history)

        if signal is TradeSignal.BUY and pos is None and self._in_cooldown(candle, portfolio):
            return TradeSignal.HOLD
        if signal is TradeSignal.SELL and pos is not None:
            self.on_exit()
        return signal

    def on_exit(self) -> None:
        """Hook called when the strategy is about to close its position."""

    def _in_cooldown(self, candle: Candle, portfolio: VirtualPortfolio) -> bool:
        gap = float(get_param(self.params, "min_hours_between_trades", 0.0) or 0.0)
        if gap <= 0 or not portfolio.trades:
            return False
        last_exit = portfolio.trades[-1].exit_time
        return last_exit is not None and hours_between(last_exit, candle.timestamp) < gap

    @abstractmethod
    def evaluate(
        self, candle: Candle, portfolio: VirtualPortfolio, history: Sequence[Candle]
    ) -> TradeSignal: ...


__all__ = ["BaseStrategy", "Strategy", "StrategyParameters"]
