from __future__ import annotations

import os
from dataclasses import dataclass, field

# ------------------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------------------


def get_str(name: str, default: str = "") -> str:
    """Return env var as a string with a sensible default."""
    value = os.getenv(name)
    return value if value not in (None, "") else default


def get_bool(name: str, default: bool = False) -> bool:
    """Coerce env var into bool (accepts 1/0, true/false, yes/no)."""
    raw = os.getenv(name)
    if raw is None:
        return default
    return str(raw).strip().lower() in {"1", "true", "t", "yes", "y", "on"}


def get_int(name: str, default: int) -> int:
    """Coerce env var into int, falling back on conversion errors."""
    raw = os.getenv(name)
    try:
        return int(raw) if raw not in (None, "") else default
    except ValueError:
        return default


def get_float(name: str, default: float) -> float:
    """Coerce env var into float, falling back on conversion errors."""
    raw = os.getenv(name)
    try:
        return float(raw) if raw not in (None, "") else default
    except ValueError:
        return default


@dataclass(frozen=True)
class EnvSettings:
    """Runtime configuration sourced from environment variables."""

    #: Deployment environment label attached to log lines.
    ENV: str = field(default_factory=lambda: get_str("ENV", "local"))
    #: Default log level for the loguru sinks.
    LOG_LEVEL: str = field(default_factory=lambda: get_str("LOG_LEVEL", "INFO"))
    #: Emit stdout log lines as JSON records instead of the text format.
    LOG_JSON: bool = field(default_factory=lambda: get_bool("LOG_JSON", False))

    #: Starting cash for a backtest when the caller does not pass one.
    INITIAL_BALANCE: float = field(
        default_factory=lambda: get_float("STRATEGYLAB_INITIAL_BALANCE", 10_000.0)
    )
    #: Fee charged on market (taker) fills, as a fraction of notional.
    TAKER_FEE_RATE: float = field(
        default_factory=lambda: get_float("STRATEGYLAB_TAKER_FEE_RATE", 0.001)
    )
    #: Fee charged on resting (maker) fills, as a fraction of notional.
    MAKER_FEE_RATE: float = field(
        default_factory=lambda: get_float("STRATEGYLAB_MAKER_FEE_RATE", 0.0008)
    )
    #: Adverse price adjustment applied to every market fill.
    SLIPPAGE_RATE: float = field(
        default_factory=lambda: get_float("STRATEGYLAB_SLIPPAGE_RATE", 0.0001)
    )
    #: percentage_of_portfolio | fixed_amount | fixed_quantity
    SIZING_MODE: str = field(
        default_factory=lambda: get_str(
            "STRATEGYLAB_SIZING_MODE", "percentage_of_portfolio"
        )
    )
    #: Fraction of equity, notional or unit count depending on SIZING_MODE.
    POSITION_SIZE: float = field(
        default_factory=lambda: get_float("STRATEGYLAB_POSITION_SIZE", 0.95)
    )
    #: Hard stop distance from entry as a fraction (0 disables).
    MAX_LOSS_PER_TRADE_PCT: float = field(
        default_factory=lambda: get_float("STRATEGYLAB_MAX_LOSS_PER_TRADE_PCT", 0.05)
    )

    #: Worker threads for the parameter search (0 = one per CPU).
    OPTIMIZER_MAX_WORKERS: int = field(
        default_factory=lambda: get_int("STRATEGYLAB_OPTIMIZER_MAX_WORKERS", 0)
    )
    #: Progress log interval for the parameter search, in percent.
    OPTIMIZER_PROGRESS_STEP: float = field(
        default_factory=lambda: get_float("STRATEGYLAB_OPTIMIZER_PROGRESS_STEP", 5.0)
    )
    #: Trailing candle window used when classifying the market regime.
    REGIME_LOOKBACK: int = field(
        default_factory=lambda: get_int("STRATEGYLAB_REGIME_LOOKBACK", 90)
    )


ENV = EnvSettings()

__all__ = ["ENV", "EnvSettings", "get_bool", "get_float", "get_int", "get_str"]
