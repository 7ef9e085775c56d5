"""Performance metrics and the results aggregator."""

from __future__ import annotations

from datetime import date
from typing import Iterable, Sequence, Tuple

import numpy as np
import pandas as pd

from .types import (
    BacktestResults,
    EquityPoint,
    InstrumentPerformance,
    PendingBuyOrder,
    PendingSellOrder,
    PerformanceSummary,
    Trade,
    TradeSummary,
)

# profit factor reported when there are wins but no losses
PROFIT_FACTOR_CAP = 999.0

DAYS_PER_YEAR = 365.25


def max_drawdown(equity: pd.Series) -> float:
    """Maximum drawdown (as positive fraction)."""
    x = equity.astype(float).to_numpy()
    if len(x) == 0:
        return 0.0
    peak = np.maximum.accumulate(x)
    dd = 1.0 - (x / np.maximum(peak, np.finfo(float).tiny))
    return float(np.nanmax(dd))


def annualized_return(final_value: float, initial_value: float, start: date, end: date) -> float:
    """Compound annual growth over (end - start) / 365.25 years; 0 for an empty span."""
    years = (end - start).days / DAYS_PER_YEAR
    if years <= 0 or initial_value <= 0:
        return 0.0
    if final_value <= 0:
        return -1.0
    return float((final_value / initial_value) ** (1.0 / years) - 1.0)


def equity_frame(equity_curve: Sequence[EquityPoint]) -> pd.DataFrame:
    """Equity curve as a Date-indexed frame (Value, Cash, Positions)."""
    df = pd.DataFrame(
        {
            "Date": [pd.Timestamp(p.date) for p in equity_curve],
            "Value": [p.total_value for p in equity_curve],
            "Cash": [p.cash for p in equity_curve],
            "Positions": [p.positions_value for p in equity_curve],
        }
    )
    return df.set_index("Date")


def profit_factor(completed: Sequence[Trade]) -> float:
    gains = sum(abs(t.profit or 0.0) for t in completed if (t.profit or 0.0) > 0)
    losses = sum(abs(t.profit or 0.0) for t in completed if (t.profit or 0.0) <= 0)
    if losses > 0:
        return float(gains / losses)
    return PROFIT_FACTOR_CAP if gains > 0 else 0.0


def _mean(xs: Sequence[float]) -> float:
    return float(sum(xs) / len(xs)) if xs else 0.0


def summarize_trades(completed: Sequence[Trade]) -> TradeSummary:
    wins = [t for t in completed if (t.profit or 0.0) > 0]
    losses = [t for t in completed if (t.profit or 0.0) <= 0]
    return TradeSummary(
        total_trades=len(completed),
        winning_trades=len(wins),
        losing_trades=len(losses),
        win_rate=len(wins) / len(completed) if completed else 0.0,
        avg_win=_mean([t.profit_rate or 0.0 for t in wins]),
        avg_loss=_mean([t.profit_rate or 0.0 for t in losses]),
        max_win=max((t.profit_rate or 0.0 for t in wins), default=0.0),
        max_loss=min((t.profit_rate or 0.0 for t in losses), default=0.0),
        avg_holding_days=_mean([float(t.holding_days or 0) for t in completed]),
        profit_factor=profit_factor(completed),
    )


def summarize_instruments(completed: Sequence[Trade], symbols: Iterable[str]) -> Tuple[InstrumentPerformance, ...]:
    rows = []
    for symbol in symbols:
        trades = [t for t in completed if t.symbol == symbol]
        wins = [t for t in trades if (t.profit or 0.0) > 0]
        total_profit = float(sum(t.profit or 0.0 for t in trades))
        total_investment = float(sum(t.invested_amount or 0.0 for t in trades))
        rows.append(
            InstrumentPerformance(
                symbol=symbol,
                trades=len(trades),
                win_rate=len(wins) / len(trades) if trades else 0.0,
                total_profit=total_profit,
                total_investment=total_investment,
                return_rate=total_profit / total_investment if total_investment > 0 else 0.0,
            )
        )
    return tuple(rows)


def summarize(
    trades: Sequence[Trade],
    equity_curve: Sequence[EquityPoint],
    initial_capital: float,
    start: date,
    end: date,
    symbols: Iterable[str],
    pending_buy_orders: Iterable[PendingBuyOrder] = (),
    pending_sell_orders: Iterable[PendingSellOrder] = (),
    excluded_symbols: Iterable[str] = (),
) -> BacktestResults:
    """Fold the trade ledger and equity curve into a report.

    Only completed round trips (SELL fills) count as trades. Inputs are not
    modified.
    """
    completed = tuple(t for t in trades if t.action == "SELL")
    final_value = equity_curve[-1].total_value if equity_curve else float(initial_capital)

    if equity_curve:
        mdd = max_drawdown(pd.Series([p.total_value for p in equity_curve], dtype=float))
    else:
        mdd = 0.0

    performance = PerformanceSummary(
        initial_capital=float(initial_capital),
        final_capital=float(final_value),
        total_return=(final_value - initial_capital) / initial_capital if initial_capital else 0.0,
        annual_return=annualized_return(final_value, initial_capital, start, end),
        total_profit=float(final_value - initial_capital),
        max_drawdown=mdd,
    )
    return BacktestResults(
        performance=performance,
        trades=summarize_trades(completed),
        detailed_trades=completed,
        equity_curve=tuple(equity_curve),
        instrument_performance=summarize_instruments(completed, symbols),
        pending_buy_orders=tuple(pending_buy_orders),
        pending_sell_orders=tuple(pending_sell_orders),
        excluded_symbols=tuple(excluded_symbols),
    )
