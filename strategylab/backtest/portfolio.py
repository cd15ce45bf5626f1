from __future__ import annotations

from typing import List, Optional

from loguru import logger

from strategylab.backtest.model import BacktestConfig, PositionSizingMode
from strategylab.core.exceptions import BacktestError
from strategylab.core.models import (
    Candle,
    PortfolioSnapshot,
    Position,
    Trade,
    TradeDirection,
    TradeSignal,
)

_DEF_MIN_QTY = 1e-12


class VirtualPortfolio:
    """
    Cash plus at most one long position on a single instrument.

    Only the backtest engine mutates a portfolio; strategies receive it to
    read ``position``, ``cash`` and ``trades``.
    """

    def __init__(self, initial_balance: float, symbol: str = "") -> None:
        self.initial_balance = float(initial_balance)
        self.cash = float(initial_balance)
        self.symbol = symbol
        self.position: Optional[Position] = None
        self.trades: List[Trade] = []
        self.snapshots: List[PortfolioSnapshot] = []
        self._next_trade_id = 1

    # ------------------------------------------------------------------
    # Valuation
    # ------------------------------------------------------------------
    @property
    def is_flat(self) -> bool:
        return self.position is None

    def position_value(self, price: float) -> float:
        if self.position is None:
            return 0.0
        return self.position.market_value(price)

    def total_value(self, price: float) -> float:
        return self.cash + self.position_value(price)

    def open_trade_snapshot(self, price: float) -> Optional[Trade]:
        """The open position as a Trade without exit, P&L marked at ``price``."""
        pos = self.position
        if pos is None:
            return None
        entry_cost = pos.entry_price * pos.quantity
        pnl = pos.unrealized_pnl(price) - pos.entry_fee
        return Trade(
            id=pos.trade_id,
            symbol=pos.symbol,
            direction=pos.direction,
            entry_time=pos.entry_time,
            entry_price=pos.entry_price,
            quantity=pos.quantity,
            fees=pos.entry_fee,
            profit_loss=pnl,
            profit_loss_pct=(pnl / entry_cost * 100.0) if entry_cost > 0 else 0.0,
        )

    # ------------------------------------------------------------------
    # Sizing
    # ------------------------------------------------------------------
    def entry_quantity(self, fill_price: float, mark_price: float, config: BacktestConfig) -> float:
        """
        Quantity to buy at ``fill_price``.

        The result is clamped so that ``quantity * fill_price * (1 + fee)``
        never exceeds the available cash.
        """
        if fill_price <= 0:
            return 0.0
        fee = config.taker_fee_rate
        equity = self.total_value(mark_price)

        if config.sizing_mode is PositionSizingMode.PERCENTAGE_OF_PORTFOLIO:
            desired = equity * config.position_size * (1.0 - fee) / fill_price
        elif config.sizing_mode is PositionSizingMode.FIXED_AMOUNT:
            desired = config.position_size / fill_price
        else:
            desired = config.position_size

        if config.max_position_pct < 1.0:
            desired = min(desired, equity * config.max_position_pct / fill_price)

        affordable = self.cash / (fill_price * (1.0 + fee))
        qty = min(desired, affordable)
        return qty if qty > _DEF_MIN_QTY else 0.0

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------
    def apply(self, signal: TradeSignal, candle: Candle, config: BacktestConfig) -> Optional[Trade]:
        """
        Execute ``signal`` at the candle close.

        Returns the closed Trade on an exit, otherwise None. Buy while long
        and Sell while flat are ignored.
        """
        if signal is TradeSignal.BUY and self.position is None:
            self._open(candle, config)
        elif signal is TradeSignal.SELL and self.position is not None:
            return self._close(candle, config)
        return None

    def _open(self, candle: Candle, config: BacktestConfig) -> None:
        fill = candle.close * (1.0 + config.slippage_rate)
        qty = self.entry_quantity(fill, candle.close, config)
        if qty <= 0.0:
            logger.debug(
                "[portfolio] buy skipped at {} (cash={:.2f})", candle.timestamp, self.cash
            )
            return
        cost = qty * fill
        fee = cost * config.taker_fee_rate
        # float rounding at the affordability boundary can leave -1e-12
        self.cash = max(0.0, self.cash - (cost + fee))
        self.position = Position(
            trade_id=self._next_trade_id,
            symbol=candle.symbol or self.symbol,
            entry_time=candle.timestamp,
            entry_price=fill,
            quantity=qty,
            entry_fee=fee,
            direction=TradeDirection.LONG,
            highest_price=candle.high,
        )
        self._next_trade_id += 1
        logger.debug(
            "[portfolio] open id={} qty={:.6f} @ {:.4f} fee={:.4f} cash={:.2f}",
            self.position.trade_id,
            qty,
            fill,
            fee,
            self.cash,
        )

    def _close(self, candle: Candle, config: BacktestConfig) -> Trade:
        pos = self.position
        if pos is None:
            raise BacktestError("no open position to close")
        fill = candle.close * (1.0 - config.slippage_rate)
        proceeds = pos.quantity * fill
        exit_fee = proceeds * config.taker_fee_rate
        self.cash += proceeds - exit_fee

        fees = pos.entry_fee + exit_fee
        entry_cost = pos.entry_price * pos.quantity
        pnl = proceeds - entry_cost - fees
        trade = Trade(
            id=pos.trade_id,
            symbol=pos.symbol,
            direction=pos.direction,
            entry_time=pos.entry_time,
            entry_price=pos.entry_price,
            quantity=pos.quantity,
            fees=fees,
            exit_time=candle.timestamp,
            exit_price=fill,
            profit_loss=pnl,
            profit_loss_pct=(pnl / entry_cost * 100.0) if entry_cost > 0 else 0.0,
        )
        self.trades.append(trade)
        self.position = None
        logger.debug(
            "[portfolio] close id={} @ {:.4f} pnl={:.2f} cash={:.2f}",
            trade.id,
            fill,
            pnl,
            self.cash,
        )
        return trade

    def mark(self, candle: Candle) -> None:
        """Track the highest price seen while a position is open."""
        if self.position is not None and candle.high > self.position.highest_price:
            self.position.highest_price = candle.high

    def record_snapshot(self, candle: Candle) -> PortfolioSnapshot:
        position_value = self.position_value(candle.close)
        snap = PortfolioSnapshot(
            timestamp=candle.timestamp,
            total_value=self.cash + position_value,
            cash=self.cash,
            position_value=position_value,
        )
        self.snapshots.append(snap)
        return snap


__all__ = ["VirtualPortfolio"]
