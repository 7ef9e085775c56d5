from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from twbt.backtest import BacktestError, run_backtest, write_outputs
from twbt.config import BacktestConfig, CostConfig, StrategyConfig
from twbt.data_provider import CsvProvider, PanelCsvProvider, YfinanceProvider, to_date

logger = logging.getLogger(__name__)


def setup_logging(log_path: Optional[Path] = None, verbose: bool = False) -> None:
    """Log to stdout (and optionally to a file); DEBUG when verbose."""
    level = logging.DEBUG if verbose else logging.INFO
    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_path:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


def load_params_json(path: str) -> dict:
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def main(argv=None) -> int:
    p = argparse.ArgumentParser(description="Backtest the RSI/MACD T+1 strategy over daily bars.")
    p.add_argument("--symbols", type=str, nargs="+", default=["2330"])
    p.add_argument("--start", type=str, default="2023-01-01")
    p.add_argument("--end", type=str, default="2023-12-31")
    p.add_argument("--capital", type=float, default=1_000_000.0, help="Initial capital.")
    p.add_argument("--output_dir", type=str, default="outputs")
    p.add_argument("--csv_dir", type=str, default=None, help="Directory of <symbol>.csv files (Date,Open,High,Low,Close,Volume).")
    p.add_argument("--panel_csv", type=str, default=None, help="Panel OHLC CSV (Date,Ticker,Open,High,Low,Close,...).")
    p.add_argument("--params_json", type=str, default=None, help="JSON file with camelCase strategy params (rsiPeriod, macdSlow, ...).")
    p.add_argument("--throttle", type=float, default=0.5, help="Seconds between per-symbol downloads.")
    p.add_argument("--log_file", type=str, default=None)
    p.add_argument("-v", "--verbose", action="store_true")
    args = p.parse_args(argv)

    setup_logging(Path(args.log_file) if args.log_file else None, verbose=args.verbose)

    strat_cfg = StrategyConfig()
    if args.params_json:
        strat_cfg = StrategyConfig.from_params_dict(load_params_json(args.params_json))

    if args.panel_csv:
        provider = PanelCsvProvider(args.panel_csv)
    elif args.csv_dir:
        provider = CsvProvider(args.csv_dir)
    else:
        provider = YfinanceProvider()

    bt_cfg = BacktestConfig(
        symbols=tuple(args.symbols),
        start=to_date(args.start),
        end=to_date(args.end),
        initial_capital=float(args.capital),
        fetch_throttle_seconds=0.0 if (args.panel_csv or args.csv_dir) else float(args.throttle),
    )

    try:
        results = run_backtest(bt_cfg, strat_cfg=strat_cfg, cost_cfg=CostConfig(), provider=provider)
    except BacktestError as exc:
        logger.error("Backtest failed: %s", exc)
        return 1

    perf, tr = results.performance, results.trades
    print(f"final capital   {perf.final_capital:,.0f}")
    print(f"total return    {perf.total_return:.2%}  (annual {perf.annual_return:.2%})")
    print(f"max drawdown    {perf.max_drawdown:.2%}")
    print(f"trades          {tr.total_trades}  win rate {tr.win_rate:.1%}  profit factor {tr.profit_factor:.2f}")
    for row in results.instrument_performance:
        print(f"  {row.symbol:<8} trades {row.trades:>3}  win {row.win_rate:.1%}  profit {row.total_profit:,.0f}")

    paths = write_outputs(results, args.output_dir)
    for path in paths.values():
        print(path)
    return 0


if __name__ == "__main__":
    sys.exit(main())
