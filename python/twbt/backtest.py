"""Backtest runner: fetch → indicators → simulate → report."""

from __future__ import annotations

import logging
from dataclasses import asdict, replace
from pathlib import Path
from typing import Dict, Mapping, Optional

import pandas as pd

from .config import BacktestConfig, CostConfig, StrategyConfig
from .data_manager import InstrumentSeries
from .data_provider import BarProvider, OhlcvFrame, YfinanceProvider, fetch_universe, to_date
from .metrics import equity_frame, summarize
from .signals import BuyEvaluator, SellEvaluator, check_buy_signal, check_sell_signal
from .sizing import PositionSizer, dynamic_position_size
from .trader import PortfolioTrader
from .types import BacktestResults

logger = logging.getLogger(__name__)


class BacktestError(RuntimeError):
    """A run could not produce a result (e.g. no symbol had usable data)."""


def _with_dates(bt_cfg: BacktestConfig) -> BacktestConfig:
    return replace(
        bt_cfg,
        start=to_date(bt_cfg.start) if bt_cfg.start is not None else None,
        end=to_date(bt_cfg.end) if bt_cfg.end is not None else None,
    )


def run_backtest(
    bt_cfg: BacktestConfig,
    strat_cfg: StrategyConfig = StrategyConfig(),
    cost_cfg: CostConfig = CostConfig(),
    provider: Optional[BarProvider] = None,
    buy_evaluator: BuyEvaluator = check_buy_signal,
    sell_evaluator: SellEvaluator = check_sell_signal,
    sizer: PositionSizer = dynamic_position_size,
) -> BacktestResults:
    """Fetch every symbol, then simulate.

    All retrieval completes before the simulation starts. Raises
    BacktestError when no symbol yields data.
    """
    if bt_cfg.start is None or bt_cfg.end is None:
        raise BacktestError("start and end dates are required")
    start, end = to_date(bt_cfg.start), to_date(bt_cfg.end)
    if end < start:
        raise BacktestError(f"end date {end} is before start date {start}")

    provider = provider or YfinanceProvider()
    logger.info("Fetching %d symbols (%s..%s)", len(bt_cfg.symbols), start, end)
    frames = fetch_universe(provider, bt_cfg.symbols, start, end, throttle_seconds=bt_cfg.fetch_throttle_seconds)
    if not frames:
        raise BacktestError("could not fetch usable data for any symbol: " + ", ".join(bt_cfg.symbols))

    excluded = [s for s in bt_cfg.symbols if s not in frames]
    return run_backtest_from_frames(
        frames,
        replace(bt_cfg, start=start, end=end),
        strat_cfg=strat_cfg,
        cost_cfg=cost_cfg,
        buy_evaluator=buy_evaluator,
        sell_evaluator=sell_evaluator,
        sizer=sizer,
        excluded_symbols=excluded,
    )


def run_backtest_from_frames(
    frames: Mapping[str, OhlcvFrame],
    bt_cfg: BacktestConfig,
    strat_cfg: StrategyConfig = StrategyConfig(),
    cost_cfg: CostConfig = CostConfig(),
    buy_evaluator: BuyEvaluator = check_buy_signal,
    sell_evaluator: SellEvaluator = check_sell_signal,
    sizer: PositionSizer = dynamic_position_size,
    excluded_symbols=(),
) -> BacktestResults:
    """Simulate over already-loaded frames ({symbol: OhlcvFrame}, in trading order).

    Frames may carry history before `bt_cfg.start`; it only serves as
    indicator warm-up, trading starts at `start`.
    """
    bt_cfg = _with_dates(bt_cfg)
    series: Dict[str, InstrumentSeries] = {}
    for symbol, frame in frames.items():
        if frame.df.empty:
            logger.warning("No data for %s, skipping", symbol)
            continue
        series[symbol] = InstrumentSeries(frame, strat_cfg)
    if not series:
        raise BacktestError("no symbol has usable data")

    trader = PortfolioTrader(
        series,
        strat_cfg=strat_cfg,
        cost_cfg=cost_cfg,
        bt_cfg=bt_cfg,
        buy_evaluator=buy_evaluator,
        sell_evaluator=sell_evaluator,
        sizer=sizer,
    )
    ctx = trader.run_full_backtest()

    start = bt_cfg.start if bt_cfg.start is not None else trader.calendar.dates[0]
    end = bt_cfg.end if bt_cfg.end is not None else trader.calendar.dates[-1]
    results = summarize(
        ctx.trades,
        ctx.equity_curve,
        initial_capital=trader.initial_capital,
        start=start,
        end=end,
        symbols=list(series),
        pending_buy_orders=ctx.pending_buys.values(),
        pending_sell_orders=ctx.pending_sells.values(),
        excluded_symbols=excluded_symbols,
    )
    logger.info(
        "Backtest done: %d round trips, final capital %.0f (%.2f%%)",
        results.trades.total_trades,
        results.performance.final_capital,
        results.performance.total_return * 100,
    )
    return results


def write_outputs(results: BacktestResults, output_dir: str | Path) -> dict[str, Path]:
    """Write equity curve and completed trades as CSV; return the paths."""
    out_dir = Path(output_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    eq_path = out_dir / "equity.csv"
    tr_path = out_dir / "trades.csv"
    perf_path = out_dir / "instrument_performance.csv"

    equity_frame(results.equity_curve).to_csv(eq_path, encoding="utf-8")
    pd.DataFrame([asdict(t) for t in results.detailed_trades]).to_csv(tr_path, index=False, encoding="utf-8")
    pd.DataFrame([asdict(p) for p in results.instrument_performance]).to_csv(perf_path, index=False, encoding="utf-8")

    return {"equity": eq_path, "trades": tr_path, "instrument_performance": perf_path}
