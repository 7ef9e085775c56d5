"""
Shared fixtures: synthetic OHLCV frames and scripted collaborators.
"""
import numpy as np
import pandas as pd
import pytest

from twbt.config import StrategyConfig
from twbt.data_provider import OhlcvFrame
from twbt.types import BuySignal, SellSignal


def _make_frame(closes, symbol="AAA", start="2024-01-01", dates=None, opens=None, highs=None, lows=None, volumes=None):
    closes = np.asarray(closes, dtype=float)
    n = len(closes)
    index = pd.DatetimeIndex(dates) if dates is not None else pd.bdate_range(start, periods=n)
    opens = closes.copy() if opens is None else np.asarray(opens, dtype=float)
    highs = np.maximum(opens, closes) if highs is None else np.asarray(highs, dtype=float)
    lows = np.minimum(opens, closes) if lows is None else np.asarray(lows, dtype=float)
    volumes = np.full(n, 1000.0) if volumes is None else np.asarray(volumes, dtype=float)
    df = pd.DataFrame(
        {"Open": opens, "High": highs, "Low": lows, "Close": closes, "Volume": volumes},
        index=index,
    )
    df.index.name = "Date"
    return OhlcvFrame(df=df, symbol=symbol)


@pytest.fixture
def make_frame():
    """Factory for OhlcvFrame objects (business-day index by default)."""
    return _make_frame


@pytest.fixture
def fast_cfg():
    """Short MACD periods so the trading warm-up is only 5 bars."""
    return StrategyConfig(macd_fast=2, macd_slow=3, macd_signal=2)


@pytest.fixture
def never_buy():
    return lambda bar, cfg, previous: BuySignal(False, "")


@pytest.fixture
def never_sell():
    return lambda bar, position, holding_days, cfg: SellSignal(False, "")


@pytest.fixture
def buy_on():
    """Build a buy evaluator that fires only on the given dates."""

    def factory(dates, confidence=0.5):
        wanted = set(dates)

        def evaluate(bar, cfg, previous):
            if bar.date in wanted:
                return BuySignal(True, "scripted buy", confidence)
            return BuySignal(False, "")

        return evaluate

    return factory


@pytest.fixture
def sell_on():
    """Build a sell evaluator that fires only on the given dates."""

    def factory(dates):
        wanted = set(dates)

        def evaluate(bar, position, holding_days, cfg):
            if bar.date in wanted:
                return SellSignal(True, "scripted sell")
            return SellSignal(False, "")

        return evaluate

    return factory
