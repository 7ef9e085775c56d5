"""Data providers (yfinance / CSV) and a standardized OHLCV schema."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import date, timedelta
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Protocol

import pandas as pd

from .types import PriceBar

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OhlcvFrame:
    """Standard OHLCV dataframe wrapper."""

    df: pd.DataFrame  # columns: Open, High, Low, Close, Volume; index: naive DatetimeIndex
    symbol: str


class BarProvider(Protocol):
    """Anything that can fetch one symbol's daily bars for an inclusive date range."""

    def fetch(self, symbol: str, start: date, end: date) -> OhlcvFrame:
        ...


def to_date(x) -> date:
    """Coerce a str/datetime/Timestamp/date into a `datetime.date`."""
    return pd.Timestamp(x).date()


def _standardize_ohlcv_columns(df: pd.DataFrame) -> pd.DataFrame:
    # yfinance can return MultiIndex columns depending on options/version.
    # We standardize to a simple 1-level column index.
    if isinstance(df.columns, pd.MultiIndex):
        df = df.copy()
        # Common yfinance layout: (field, ticker)
        if df.columns.nlevels >= 2:
            tickers = list(dict.fromkeys(df.columns.get_level_values(-1)))
            if len(tickers) == 1:
                df.columns = df.columns.get_level_values(0)
            else:
                # multiple tickers → keep only the first ticker's fields
                df = df.xs(tickers[0], axis=1, level=-1, drop_level=True)

    rename_map = {}
    for col in df.columns:
        c = str(col).strip().lower()
        if c == "open":
            rename_map[col] = "Open"
        elif c == "high":
            rename_map[col] = "High"
        elif c == "low":
            rename_map[col] = "Low"
        elif c == "close":
            rename_map[col] = "Close"
        elif c in {"adj close", "adjclose"}:
            # Keep adjusted close separate to avoid duplicate "Close" columns.
            rename_map[col] = "AdjClose"
        elif c == "volume":
            rename_map[col] = "Volume"
    df = df.rename(columns=rename_map).copy()

    if "Close" not in df.columns and "AdjClose" in df.columns:
        df = df.rename(columns={"AdjClose": "Close"})
    if "Close" in df.columns and "AdjClose" in df.columns:
        df = df.drop(columns=["AdjClose"])

    required = ["Open", "High", "Low", "Close", "Volume"]
    missing = [c for c in required if c not in df.columns]
    if missing:
        raise ValueError(f"Missing required OHLCV columns: {missing}")

    df = df[required].astype(float)

    # daily bars: drop tz and time-of-day so dates line up across symbols
    idx = pd.DatetimeIndex(df.index)
    if idx.tz is not None:
        idx = idx.tz_localize(None)
    df.index = idx.normalize()
    df.index.name = "Date"

    df = df.dropna(subset=["Open", "High", "Low", "Close"])
    df = df[~df.index.duplicated(keep="last")].sort_index()
    return df


def _slice_dates(df: pd.DataFrame, start: Optional[date], end: Optional[date]) -> pd.DataFrame:
    if start is not None:
        df = df.loc[df.index >= pd.Timestamp(start)]
    if end is not None:
        df = df.loc[df.index <= pd.Timestamp(end)]
    return df


def frame_to_bars(frame: OhlcvFrame) -> List[PriceBar]:
    """Convert a standardized frame into ascending PriceBar records."""
    return [
        PriceBar(
            date=ts.date(),
            open=float(row.Open),
            high=float(row.High),
            low=float(row.Low),
            close=float(row.Close),
            volume=float(row.Volume),
        )
        for ts, row in zip(frame.df.index, frame.df.itertuples(index=False))
    ]


class YfinanceProvider:
    """Fetch daily data from yfinance.

    Plain numeric TWSE codes (e.g. "2330") get `market_suffix` appended.
    """

    def __init__(self, market_suffix: str = ".TW", auto_adjust: bool = False):
        self.market_suffix = market_suffix
        self.auto_adjust = auto_adjust

    def ticker_for(self, symbol: str) -> str:
        if symbol.isdigit() and self.market_suffix:
            return symbol + self.market_suffix
        return symbol

    def fetch(self, symbol: str, start: date, end: date) -> OhlcvFrame:
        import yfinance as yf  # local import to keep dependency optional in some environments

        # yfinance treats `end` as exclusive
        df = yf.download(
            tickers=self.ticker_for(symbol),
            start=str(to_date(start)),
            end=str(to_date(end) + timedelta(days=1)),
            interval="1d",
            auto_adjust=self.auto_adjust,
            progress=False,
        )
        if df is None or len(df) == 0:
            raise RuntimeError(f"yfinance returned empty data for symbol={symbol}")

        df = _slice_dates(_standardize_ohlcv_columns(df), to_date(start), to_date(end))
        return OhlcvFrame(df=df, symbol=symbol)


class CsvProvider:
    """Load OHLCV data from `<directory>/<symbol>.csv`."""

    def __init__(self, directory: str | Path, datetime_col: str = "Date"):
        self.directory = Path(directory)
        self.datetime_col = datetime_col

    def fetch(self, symbol: str, start: Optional[date] = None, end: Optional[date] = None) -> OhlcvFrame:
        path = self.directory / f"{symbol}.csv"
        if not path.exists():
            raise FileNotFoundError(str(path))

        df = pd.read_csv(path)
        datetime_col = self.datetime_col
        if datetime_col not in df.columns:
            for cand in ["Datetime", "datetime", "date", "timestamp", "Time", "time"]:
                if cand in df.columns:
                    datetime_col = cand
                    break

        if datetime_col not in df.columns:
            raise ValueError(f"CSV must contain a datetime column. Tried '{datetime_col}' and common aliases.")

        df[datetime_col] = pd.to_datetime(df[datetime_col])
        df = df.set_index(datetime_col).sort_index()

        df = _standardize_ohlcv_columns(df)
        df = _slice_dates(df, to_date(start) if start else None, to_date(end) if end else None)
        return OhlcvFrame(df=df, symbol=symbol)


class PanelCsvProvider:
    """Load a panel OHLC CSV in the format: Date,Ticker,...,Open,High,Low,Close,(Volume optional)"""

    def __init__(self, panel_csv_path: str | Path):
        self.panel_csv_path = Path(panel_csv_path)
        self._panel: Optional[pd.DataFrame] = None

    def _load(self) -> pd.DataFrame:
        if self._panel is None:
            self._panel = pd.read_csv(self.panel_csv_path)
        return self._panel

    def fetch(self, symbol: str, start: Optional[date] = None, end: Optional[date] = None) -> OhlcvFrame:
        df = self._load().copy()
        cols = {c.lower(): c for c in df.columns}
        date_col = cols.get("date") or cols.get("time")
        ticker_col = cols.get("ticker") or cols.get("symbol")
        if date_col is None or ticker_col is None:
            raise ValueError("Panel CSV must have Date and Ticker columns.")

        df[date_col] = pd.to_datetime(df[date_col])
        sym_norm = str(symbol).split(".")[0].lstrip("0")
        # Panel ticker may be int-like (e.g., 2330). Match by normalized string.
        df[ticker_col] = df[ticker_col].astype(str).str.strip()
        df = df[df[ticker_col].str.lstrip("0") == sym_norm]

        def pick(name):
            return cols.get(name.lower())

        o, h, lo, c, v = pick("open"), pick("high"), pick("low"), pick("close"), pick("volume")
        if not all([o, h, lo, c]):
            raise ValueError("Panel CSV must contain Open/High/Low/Close columns.")
        out = df[[date_col, o, h, lo, c] + ([v] if v else [])].copy()
        out = out.rename(columns={date_col: "Date", o: "Open", h: "High", lo: "Low", c: "Close"})
        if v:
            out = out.rename(columns={v: "Volume"})
        else:
            out["Volume"] = 0.0
        out = _standardize_ohlcv_columns(out.set_index("Date"))
        out = _slice_dates(out, to_date(start) if start else None, to_date(end) if end else None)
        if out.empty:
            raise RuntimeError(f"panel CSV has no rows for symbol={symbol}")
        return OhlcvFrame(df=out, symbol=symbol)


def fetch_bars(provider: BarProvider, symbol: str, start: date, end: date) -> List[PriceBar]:
    """One symbol's bars in [start, end], ascending by date."""
    return frame_to_bars(provider.fetch(symbol, to_date(start), to_date(end)))


def fetch_universe(
    provider: BarProvider,
    symbols: Iterable[str],
    start: date,
    end: date,
    throttle_seconds: float = 0.0,
) -> Dict[str, OhlcvFrame]:
    """Fetch every symbol, in order, pausing `throttle_seconds` between requests.

    A failing or empty symbol is logged and left out; it never aborts the
    others. The returned dict preserves the declaration order of `symbols`.
    """
    frames: Dict[str, OhlcvFrame] = {}
    symbols = list(symbols)
    for k, symbol in enumerate(symbols):
        try:
            frame = provider.fetch(symbol, to_date(start), to_date(end))
        except Exception as exc:
            logger.warning("Failed to fetch %s: %s: %s", symbol, type(exc).__name__, exc)
            frame = None

        if frame is not None and len(frame.df) > 0:
            frames[symbol] = frame
            logger.info("Loaded %s: %d bars", symbol, len(frame.df))
        elif frame is not None:
            logger.warning("No data for %s in %s..%s, skipping", symbol, start, end)

        if throttle_seconds > 0 and k < len(symbols) - 1:
            time.sleep(throttle_seconds)
    return frames
