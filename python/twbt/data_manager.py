"""Data manager: computes indicators once and serves enriched bars.

Indicators are derived in a single forward pass when the series is built and
are read-only afterwards. The raw frame passed in is never modified.
"""

from __future__ import annotations

from datetime import date
from typing import Dict, Optional, Tuple

import numpy as np
import pandas as pd

from .config import StrategyConfig
from .data_provider import OhlcvFrame
from .indicators import atr as atr_func
from .indicators import macd as macd_func
from .indicators import price_momentum, sma, volume_ratio, wilder_rsi
from .types import EnrichedBar

# indicator column -> EnrichedBar field
_FIELD_MAP = (
    ("avgGain", "avg_gain"),
    ("avgLoss", "avg_loss"),
    ("rsi", "rsi"),
    ("emaFast", "ema_fast"),
    ("emaSlow", "ema_slow"),
    ("macd", "macd"),
    ("macdSignal", "macd_signal"),
    ("macdHist", "macd_histogram"),
    ("ma5", "ma5"),
    ("ma20", "ma20"),
    ("ma60", "ma60"),
    ("volumeMA20", "volume_ma20"),
    ("volumeRatio", "volume_ratio"),
    ("atr", "atr"),
    ("priceMomentum", "price_momentum"),
)


def _opt(x) -> Optional[float]:
    x = float(x)
    return x if np.isfinite(x) else None


def compute_indicators(df: pd.DataFrame, cfg: StrategyConfig) -> pd.DataFrame:
    """Return a copy of an OHLCV frame with indicator columns appended."""
    out = df.copy()
    close = out["Close"].astype(float)

    out = out.join(wilder_rsi(close, cfg.rsi_period))
    out = out.join(macd_func(close, cfg.macd_fast, cfg.macd_slow, cfg.macd_signal))

    out["ma5"] = sma(close, 5)
    out["ma20"] = sma(close, 20)
    out["ma60"] = sma(close, 60) if cfg.enable_ma60 else np.nan
    out = out.join(volume_ratio(out["Volume"], 20))

    out["atr"] = atr_func(out, cfg.atr_period) if cfg.enable_atr_stop else np.nan
    if cfg.enable_price_momentum:
        out["priceMomentum"] = price_momentum(close, cfg.price_momentum_period)
    else:
        out["priceMomentum"] = np.nan
    return out


class InstrumentSeries:
    """Holds OHLCV, indicator columns and enriched bars for a single symbol."""

    def __init__(self, frame: OhlcvFrame, cfg: StrategyConfig):
        self.symbol = frame.symbol
        self.cfg = cfg

        raw = frame.df[~frame.df.index.duplicated(keep="last")].sort_index()
        self.df = compute_indicators(raw, cfg)

        self.bars: Tuple[EnrichedBar, ...] = tuple(self._build_bars())
        self.dates: Tuple[date, ...] = tuple(b.date for b in self.bars)
        self._index: Dict[date, int] = {d: i for i, d in enumerate(self.dates)}

    def _build_bars(self):
        df = self.df
        columns = {col: df[col].to_numpy(dtype=float) for col, _ in _FIELD_MAP}
        opens = df["Open"].to_numpy(dtype=float)
        highs = df["High"].to_numpy(dtype=float)
        lows = df["Low"].to_numpy(dtype=float)
        closes = df["Close"].to_numpy(dtype=float)
        volumes = df["Volume"].to_numpy(dtype=float)
        for i, ts in enumerate(df.index):
            fields = {name: _opt(columns[col][i]) for col, name in _FIELD_MAP}
            yield EnrichedBar(
                date=pd.Timestamp(ts).date(),
                open=float(opens[i]),
                high=float(highs[i]),
                low=float(lows[i]),
                close=float(closes[i]),
                volume=float(volumes[i]),
                **fields,
            )

    def __len__(self) -> int:
        return len(self.bars)

    def index_of(self, d: date) -> Optional[int]:
        return self._index.get(d)

    def bar_on(self, d: date) -> Optional[EnrichedBar]:
        i = self._index.get(d)
        return None if i is None else self.bars[i]
