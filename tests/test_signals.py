"""
Tests for the default entry and exit rules.
"""
from dataclasses import replace
from datetime import date

import pytest

from twbt.config import StrategyConfig
from twbt.signals import MAX_CONFIDENCE, calculate_confidence, check_buy_signal, check_sell_signal
from twbt.types import EnrichedBar, Position

D = date(2024, 3, 1)


def _bar(**overrides):
    fields = dict(
        date=D,
        open=100.0,
        high=106.0,
        low=99.0,
        close=105.0,
        volume=2500.0,
        rsi=28.0,
        macd=0.5,
        macd_signal=0.3,
        macd_histogram=0.2,
        ma5=103.0,
        ma20=101.0,
        volume_ma20=1000.0,
        volume_ratio=2.5,
        price_momentum=0.05,
    )
    fields.update(overrides)
    return EnrichedBar(**fields)


def _previous(**overrides):
    fields = dict(rsi=25.0, macd=0.1, macd_signal=0.2, macd_histogram=-0.1)
    fields.update(overrides)
    return _bar(date=date(2024, 2, 29), **fields)


def _position(**overrides):
    fields = dict(
        symbol="2330",
        entry_date=date(2024, 2, 1),
        entry_price=100.0,
        quantity=100,
        invested_amount=10_014.25,
        confidence=0.7,
        buy_signal_date=date(2024, 1, 31),
        high_price_since_entry=100.0,
        trailing_stop_price=95.0,
    )
    fields.update(overrides)
    return Position(**fields)


def _neutral(**overrides):
    """Bar that triggers no exit rule for the default position."""
    fields = dict(close=101.0, rsi=50.0, macd=0.2, macd_signal=0.1, macd_histogram=0.1)
    fields.update(overrides)
    return _bar(**fields)


class TestBuySignal:
    """Entry gate, checked in order."""

    def test_all_conditions_met(self):
        """Should signal with a confidence clamped to the maximum."""
        result = check_buy_signal(_bar(), StrategyConfig(), _previous())
        assert result.signal
        assert result.confidence == pytest.approx(MAX_CONFIDENCE)
        assert "confidence" in result.reason

    def test_missing_indicators(self):
        result = check_buy_signal(_bar(rsi=None), StrategyConfig(), _previous())
        assert not result.signal
        assert result.reason == "insufficient indicator data"

    def test_rsi_not_oversold(self):
        result = check_buy_signal(_bar(rsi=40.0), StrategyConfig(), _previous())
        assert not result.signal
        assert "oversold" in result.reason

    def test_macd_below_signal(self):
        result = check_buy_signal(_bar(macd=0.2), StrategyConfig(), _previous())
        assert not result.signal
        assert "MACD" in result.reason

    def test_rsi_not_turning_up(self):
        cfg = StrategyConfig()
        assert check_buy_signal(_bar(), cfg, _previous(rsi=30.0)).reason == "RSI not turning up"
        assert check_buy_signal(_bar(), cfg, None).reason == "RSI not turning up"

    def test_low_volume(self):
        result = check_buy_signal(_bar(volume_ratio=1.0), StrategyConfig(), _previous())
        assert result.reason == "volume below threshold"

    def test_bearish_candle(self):
        result = check_buy_signal(_bar(close=99.0), StrategyConfig(), _previous())
        assert result.reason == "bearish candle"

    def test_negative_momentum(self):
        result = check_buy_signal(_bar(price_momentum=-0.01), StrategyConfig(), _previous())
        assert result.reason == "negative price momentum"

    def test_negative_momentum_ignored_when_disabled(self):
        cfg = StrategyConfig(enable_price_momentum=False)
        assert check_buy_signal(_bar(price_momentum=-0.01), cfg, _previous()).signal

    def test_confidence_below_threshold(self):
        cfg = StrategyConfig(confidence_threshold=0.99)
        result = check_buy_signal(_bar(), cfg, _previous())
        assert not result.signal
        assert "below" in result.reason


class TestConfidence:
    """Confidence scoring."""

    def test_bounded_above(self):
        for strict in (True, False):
            cfg = StrategyConfig(strict_scoring=strict)
            assert calculate_confidence(_bar(), cfg, _previous()) == pytest.approx(MAX_CONFIDENCE)

    def test_weak_setup(self):
        """Penalties pull a weak setup well below the base score."""
        bar = _bar(rsi=50.0, macd=0.1, macd_signal=0.3, volume_ratio=0.5, close=100.0, price_momentum=-0.05)
        assert calculate_confidence(bar, StrategyConfig()) == pytest.approx(0.05)

    def test_never_negative(self):
        bar = _bar(rsi=80.0, macd=0.1, macd_signal=0.3, volume_ratio=0.0, close=90.0, price_momentum=-0.5)
        assert calculate_confidence(bar, StrategyConfig()) >= 0.0


class TestSellSignal:
    """Exit rules in priority order."""

    def test_take_profit(self):
        result = check_sell_signal(_neutral(close=113.0), _position(), 2, StrategyConfig())
        assert result.signal
        assert result.reason == "take-profit"

    def test_stop_loss(self):
        result = check_sell_signal(_neutral(close=93.0), _position(), 2, StrategyConfig())
        assert result.reason == "stop-loss"

    def test_trailing_stop_hit(self):
        pos = _position(high_price_since_entry=110.0, trailing_stop_price=104.5)
        result = check_sell_signal(_neutral(close=104.0), pos, 2, StrategyConfig())
        assert result.signal
        assert result.reason.startswith("trailing stop hit")

    def test_trailing_stop_not_activated(self):
        """Below the activation gain the trailing stop never fires."""
        pos = _position(high_price_since_entry=102.0, trailing_stop_price=101.5)
        result = check_sell_signal(_neutral(close=101.0), pos, 2, StrategyConfig())
        assert not result.signal

    def test_trailing_stop_disabled(self):
        cfg = StrategyConfig(enable_trailing_stop=False)
        pos = _position(high_price_since_entry=110.0, trailing_stop_price=104.5)
        assert not check_sell_signal(_neutral(close=104.0), pos, 2, cfg).signal

    def test_atr_stop(self):
        pos = _position(atr_stop_price=97.0)
        result = check_sell_signal(_neutral(close=96.5), pos, 2, StrategyConfig())
        assert result.reason == "ATR stop hit"

    def test_min_holding_protects_discretionary_exits(self):
        """RSI overbought only fires once the minimum holding period is over."""
        cfg = StrategyConfig()
        bar = _neutral(rsi=80.0)
        assert not check_sell_signal(bar, _position(), cfg.min_holding_days, cfg).signal
        assert check_sell_signal(bar, _position(), cfg.min_holding_days + 1, cfg).reason == "RSI overbought"

    def test_macd_death_cross(self):
        bar = _neutral(macd=-0.1, macd_signal=0.0, macd_histogram=-0.1)
        result = check_sell_signal(bar, _position(), 10, StrategyConfig())
        assert result.reason == "MACD death cross"

    def test_max_holding_days(self):
        result = check_sell_signal(_neutral(), _position(), 31, StrategyConfig())
        assert result.signal
        assert "30 days" in result.reason

    def test_nothing_fires(self):
        assert not check_sell_signal(_neutral(), _position(), 10, StrategyConfig()).signal

    def test_does_not_modify_position(self):
        pos = _position(high_price_since_entry=110.0, trailing_stop_price=104.5)
        before = replace(pos)
        check_sell_signal(_neutral(close=120.0, high=125.0), pos, 2, StrategyConfig())
        assert pos == before
