"""Configuration objects.

Style rules:
- keep signatures stable (no alias chaos)
- prefer explicit field names
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Optional, Tuple


@dataclass(frozen=True)
class StrategyConfig:
    """RSI/MACD strategy parameters (indicator periods + rule knobs)."""

    # indicators
    rsi_period: int = 14
    macd_fast: int = 12
    macd_slow: int = 26
    macd_signal: int = 9
    enable_ma60: bool = False
    atr_period: int = 14
    price_momentum_period: int = 5
    enable_price_momentum: bool = True

    # entry rules
    rsi_oversold: float = 35.0
    volume_threshold: float = 1.5
    confidence_threshold: float = 0.6
    strict_scoring: bool = True  # tiered confidence scoring
    hierarchical_decision: bool = True
    price_momentum_threshold: float = 0.03

    # exit rules
    stop_loss: float = 0.06
    stop_profit: float = 0.12
    enable_trailing_stop: bool = True
    trailing_stop_percent: float = 0.05
    trailing_activate_percent: float = 0.03
    enable_atr_stop: bool = True
    atr_multiplier: float = 2.0
    min_holding_days: int = 5
    max_holding_days: int = 30
    rsi_overbought: float = 70.0

    # sizing
    max_position_size: float = 0.25  # hard per-position cap (fraction of cash)
    max_total_exposure: float = 0.75
    dynamic_position_size: bool = True

    @property
    def warmup_bars(self) -> int:
        """Bars required before an instrument is traded (MACD + signal line)."""
        return int(self.macd_slow + self.macd_signal)

    @classmethod
    def from_params_dict(cls, d: dict) -> "StrategyConfig":
        """Create StrategyConfig from a camelCase parameter dict.

        Keys follow the UI/JSON naming (e.g., rsiPeriod, macdSlow). The UI's
        `usePythonLogic` switch is an alias of `strictScoring`. Unknown keys are ignored.
        """
        mapping = {
            "rsiPeriod": "rsi_period",
            "macdFast": "macd_fast",
            "macdSlow": "macd_slow",
            "macdSignal": "macd_signal",
            "enableMA60": "enable_ma60",
            "atrPeriod": "atr_period",
            "priceMomentumPeriod": "price_momentum_period",
            "enablePriceMomentum": "enable_price_momentum",
            "rsiOversold": "rsi_oversold",
            "volumeThreshold": "volume_threshold",
            "confidenceThreshold": "confidence_threshold",
            "strictScoring": "strict_scoring",
            "usePythonLogic": "strict_scoring",
            "hierarchicalDecision": "hierarchical_decision",
            "priceMomentumThreshold": "price_momentum_threshold",
            "stopLoss": "stop_loss",
            "stopProfit": "stop_profit",
            "enableTrailingStop": "enable_trailing_stop",
            "trailingStopPercent": "trailing_stop_percent",
            "trailingActivatePercent": "trailing_activate_percent",
            "enableATRStop": "enable_atr_stop",
            "atrMultiplier": "atr_multiplier",
            "minHoldingDays": "min_holding_days",
            "maxHoldingDays": "max_holding_days",
            "rsiOverbought": "rsi_overbought",
            "maxPositionSize": "max_position_size",
            "maxTotalExposure": "max_total_exposure",
            "dynamicPositionSize": "dynamic_position_size",
        }
        kwargs = {}
        for k, v in (d or {}).items():
            if k in mapping:
                kwargs[mapping[k]] = v
        return cls(**kwargs)


@dataclass(frozen=True)
class CostConfig:
    """TWSE-like costs."""

    # Broker commission: applies to both sides.
    commission_rate: float = 0.001425

    # Securities transaction tax: applies to SELL trades only.
    stt_rate: float = 0.003


@dataclass(frozen=True)
class BacktestConfig:
    """Backtest run configuration.

    Notes:
    - `start`/`end` are inclusive calendar bounds, not necessarily trading days.
    - `min_ticket` is the smallest invested amount a buy fill may use.
    """

    symbols: Tuple[str, ...] = ("2330",)
    start: Optional[date] = None
    end: Optional[date] = None

    initial_capital: float = 1_000_000.0
    min_ticket: float = 10_000.0

    # Pause between per-symbol downloads (seconds)
    fetch_throttle_seconds: float = 0.5

    # next_trading_day gives up after this many calendar days
    max_calendar_lookahead_days: int = 10
