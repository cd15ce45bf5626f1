from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class BuyAndHoldParams:
    max_holding_hours: float = 0.0  # 0 disables the time exit
    min_hours_between_trades: float = 0.0


@dataclass(frozen=True)
class SmaCrossoverParams:
    fast_period: int = 10
    slow_period: int = 30
    max_holding_hours: float = 0.0
    min_hours_between_trades: float = 0.0


@dataclass(frozen=True)
class MacroTrendParams:
    """
    Bull market support band trend following.

    Attributes:
        band_rule (str): Resample rule of the band timeframe.
        band_sma_period (int): SMA length on the band timeframe.
        band_ema_period (int): EMA length on the band timeframe.
        use_trend_filter (bool): Require close above the daily trend SMA.
        trend_filter_period (int): Daily SMA length for the trend filter.
        tp_step_pct (float): Distance between take-profit steps, percent.
        max_steps (int): Steps before the position is taken off entirely.
        use_scale_in (bool): Re-enter after a pullback once a step was hit.
        pullback_pct (float): Pullback from the peak that arms the re-entry.
        use_trailing (bool): Enable the trailing stop.
        trail_pct (float): Trailing stop distance from the high, percent.
    """

    band_rule: str = "W"
    band_sma_period: int = 20
    band_ema_period: int = 21
    use_trend_filter: bool = False
    trend_filter_period: int = 200
    tp_step_pct: float = 10.0
    max_steps: int = 5
    use_scale_in: bool = True
    pullback_pct: float = 6.0
    use_trailing: bool = True
    trail_pct: float = 5.0
    min_history: int = 50
    max_holding_hours: float = 0.0
    min_hours_between_trades: float = 0.0


@dataclass(frozen=True)
class FvgLiquidityParams:
    swing_lookback: int = 10
    fvg_min_gap_pct: float = 0.1
    sweep_threshold: float = 0.001
    risk_reward: float = 2.0
    refresh_interval: int = 20
    confirm_bars: int = 5  # ignore gaps formed in the last N candles
    recent_fvgs: int = 3
    sweep_window: int = 30  # max candles between the sweep and the gap
    min_history: int = 50
    max_holding_hours: float = 48.0
    min_hours_between_trades: float = 0.0


@dataclass(frozen=True)
class OrderBlockChochParams:
    swing_lookback: int = 5
    min_impulse_pct: float = 1.5
    ob_window: int = 20  # order blocks up to N candles before the CHOCH
    refresh_interval: int = 10
    confirm_bars: int = 1  # ignore order blocks formed in the last N candles
    structure_confirm_bars: int = 0
    min_history: int = 100
    max_holding_hours: float = 72.0
    min_hours_between_trades: float = 0.0
