from __future__ import annotations

from dataclasses import dataclass

from strategylab import APP_VERSION
from strategylab.utils.env import ENV


@dataclass(frozen=True)
class Settings:
    """
    Application settings resolved once at import.

    Attributes:
        VERSION (str): The package version.
        environment (str): Deployment environment label.
        log_level (str): Default log level.
        log_json (bool): Serialize stdout log lines as JSON.
        initial_balance (float): Default starting cash for a backtest.
        taker_fee_rate (float): Fee on market fills.
        maker_fee_rate (float): Fee on resting fills.
        slippage_rate (float): Adverse fill adjustment for market orders.
        sizing_mode (str): Position sizing mode name.
        position_size (float): Size value interpreted per sizing mode.
        max_loss_per_trade_pct (float): Hard stop distance (0 disables).
        optimizer_max_workers (int): Worker threads for the grid search.
        optimizer_progress_step (float): Progress log interval in percent.
        regime_lookback (int): Candles used for regime classification.
    """

    VERSION: str = APP_VERSION
    environment: str = ENV.ENV
    log_level: str = ENV.LOG_LEVEL
    log_json: bool = ENV.LOG_JSON
    initial_balance: float = ENV.INITIAL_BALANCE
    taker_fee_rate: float = ENV.TAKER_FEE_RATE
    maker_fee_rate: float = ENV.MAKER_FEE_RATE
    slippage_rate: float = ENV.SLIPPAGE_RATE
    sizing_mode: str = ENV.SIZING_MODE
    position_size: float = ENV.POSITION_SIZE
    max_loss_per_trade_pct: float = ENV.MAX_LOSS_PER_TRADE_PCT
    optimizer_max_workers: int = ENV.OPTIMIZER_MAX_WORKERS
    optimizer_progress_step: float = ENV.OPTIMIZER_PROGRESS_STEP
    regime_lookback: int = ENV.REGIME_LOOKBACK


settings = Settings()

__all__ = ["settings", "Settings"]
