"""Shared types for the portfolio backtester.

The guiding principle is to keep the runtime objects small and explicit.
Bars and ledger records are frozen; only `Position` is mutated, and only by
the trader that owns it.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Optional, Tuple


@dataclass(frozen=True)
class PriceBar:
    """Daily OHLCV bar for one instrument."""

    date: date
    open: float
    high: float
    low: float
    close: float
    volume: float


@dataclass(frozen=True)
class EnrichedBar(PriceBar):
    """PriceBar plus derived indicator fields.

    A field is None until its lookback window has elapsed (or when the
    indicator is switched off in the strategy config).
    """

    avg_gain: Optional[float] = None
    avg_loss: Optional[float] = None
    rsi: Optional[float] = None

    ema_fast: Optional[float] = None
    ema_slow: Optional[float] = None
    macd: Optional[float] = None
    macd_signal: Optional[float] = None
    macd_histogram: Optional[float] = None

    ma5: Optional[float] = None
    ma20: Optional[float] = None
    ma60: Optional[float] = None

    volume_ma20: Optional[float] = None
    volume_ratio: Optional[float] = None

    atr: Optional[float] = None
    price_momentum: Optional[float] = None


@dataclass
class Position:
    """An open long holding in one instrument."""

    symbol: str
    entry_date: date
    entry_price: float
    quantity: int
    invested_amount: float
    confidence: float
    buy_signal_date: date

    # trailing-stop state, maintained by the trader while held
    high_price_since_entry: float
    trailing_stop_price: float

    atr_stop_price: Optional[float] = None
    entry_atr: Optional[float] = None


@dataclass(frozen=True)
class BuySignal:
    signal: bool
    reason: str
    confidence: Optional[float] = None


@dataclass(frozen=True)
class SellSignal:
    signal: bool
    reason: str


@dataclass(frozen=True)
class PendingBuyOrder:
    """A buy signal waiting for its T+1 fill."""

    symbol: str
    confidence: float
    reason: str
    signal_date: date
    target_execution_date: Optional[date]


@dataclass(frozen=True)
class PendingSellOrder:
    """A sell signal waiting for its T+1 fill.

    `position` is a copy taken at signal time.
    """

    symbol: str
    reason: str
    signal_date: date
    target_execution_date: Optional[date]
    position: Position


@dataclass(frozen=True)
class Trade:
    """A single executed fill (BUY or SELL)."""

    symbol: str
    action: str  # 'BUY'/'SELL'
    date: date  # actual (T+1) execution date
    price: float
    quantity: int
    amount: float  # cash paid (BUY) or received (SELL), costs included
    reason: str
    confidence: Optional[float] = None

    buy_signal_date: Optional[date] = None
    sell_signal_date: Optional[date] = None

    # SELL only
    entry_date: Optional[date] = None
    entry_price: Optional[float] = None
    invested_amount: Optional[float] = None
    holding_days: Optional[int] = None
    profit: Optional[float] = None
    profit_rate: Optional[float] = None


@dataclass(frozen=True)
class EquityPoint:
    date: date
    total_value: float
    cash: float
    positions_value: float


# ---------- report ----------


@dataclass(frozen=True)
class PerformanceSummary:
    initial_capital: float
    final_capital: float
    total_return: float
    annual_return: float
    total_profit: float
    max_drawdown: float


@dataclass(frozen=True)
class TradeSummary:
    total_trades: int
    winning_trades: int
    losing_trades: int
    win_rate: float
    avg_win: float
    avg_loss: float
    max_win: float
    max_loss: float
    avg_holding_days: float
    profit_factor: float


@dataclass(frozen=True)
class InstrumentPerformance:
    symbol: str
    trades: int
    win_rate: float
    total_profit: float
    total_investment: float
    return_rate: float


@dataclass(frozen=True)
class BacktestResults:
    performance: PerformanceSummary
    trades: TradeSummary
    detailed_trades: Tuple[Trade, ...]
    equity_curve: Tuple[EquityPoint, ...]
    instrument_performance: Tuple[InstrumentPerformance, ...]

    # orders still waiting when the simulated window ended
    pending_buy_orders: Tuple[PendingBuyOrder, ...] = ()
    pending_sell_orders: Tuple[PendingSellOrder, ...] = ()
    excluded_symbols: Tuple[str, ...] = ()
