"""Default RSI/MACD entry and exit rules.

Evaluators are pure: they read an enriched bar (and, for exits, the open
position) and return a decision with a human-readable reason. Trailing-stop
state is maintained by the trader, never here.
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol

from .config import StrategyConfig
from .types import BuySignal, EnrichedBar, Position, SellSignal

logger = logging.getLogger(__name__)

MAX_CONFIDENCE = 0.95


class BuyEvaluator(Protocol):
    def __call__(self, bar: EnrichedBar, cfg: StrategyConfig, previous: Optional[EnrichedBar]) -> BuySignal:
        ...


class SellEvaluator(Protocol):
    def __call__(self, bar: EnrichedBar, position: Position, holding_days: int, cfg: StrategyConfig) -> SellSignal:
        ...


def _rsi_score(rsi: float, cfg: StrategyConfig) -> float:
    if cfg.strict_scoring:
        if rsi < 20:
            return 0.35
        if rsi < 25:
            return 0.30
        if rsi < 30:
            return 0.25
        if rsi < 35:
            return 0.15
        return -0.10
    if rsi < 25:
        return 0.25
    if rsi < 35:
        return 0.20
    if rsi < 45:
        return 0.15
    return 0.0


def _macd_score(bar: EnrichedBar, previous: Optional[EnrichedBar], cfg: StrategyConfig) -> float:
    macd = bar.macd or 0.0
    signal = bar.macd_signal or 0.0
    hist = bar.macd_histogram or 0.0
    if macd <= signal:
        return 0.0
    if not cfg.strict_scoring:
        return 0.15

    prev_macd = (previous.macd if previous else None) or 0.0
    prev_signal = (previous.macd_signal if previous else None) or 0.0
    new_cross = prev_macd <= prev_signal
    if new_cross and hist > 0:
        return 0.25
    if new_cross:
        return 0.20
    if hist > 0:
        return 0.15
    return 0.10


def _volume_score(bar: EnrichedBar, cfg: StrategyConfig) -> float:
    ratio = bar.volume_ratio or 0.0
    if cfg.strict_scoring:
        if ratio > cfg.volume_threshold * 1.5:
            return 0.15
        if ratio > cfg.volume_threshold:
            return 0.10
        return -0.05
    return 0.10 if ratio > cfg.volume_threshold else 0.0


def _trend_score(bar: EnrichedBar, cfg: StrategyConfig) -> float:
    close = bar.close
    ma5 = bar.ma5 or 0.0
    ma20 = bar.ma20 or 0.0
    ma60 = bar.ma60 or 0.0
    if not cfg.strict_scoring:
        return 0.08 if close > ma20 else 0.0
    if cfg.enable_ma60 and close > ma5 > ma20 > ma60:
        return 0.15
    if close > ma5 > ma20:
        return 0.12
    if close > ma20:
        return 0.08
    return -0.05


def _momentum_score(bar: EnrichedBar, cfg: StrategyConfig) -> float:
    if not cfg.enable_price_momentum:
        return 0.0
    momentum = bar.price_momentum or 0.0
    if momentum > cfg.price_momentum_threshold:
        return 0.10
    if momentum > 0:
        return 0.05
    if momentum < -cfg.price_momentum_threshold:
        return -0.05
    return 0.0


def calculate_confidence(bar: EnrichedBar, cfg: StrategyConfig, previous: Optional[EnrichedBar] = None) -> float:
    """Entry confidence in [0, 0.95] from RSI depth, RSI turn, MACD, volume, trend and momentum."""
    confidence = 0.30 if cfg.strict_scoring else 0.45
    rsi = bar.rsi or 0.0
    confidence += _rsi_score(rsi, cfg)

    if previous is not None and rsi > (previous.rsi or 0.0):
        improvement = rsi - (previous.rsi or 0.0)
        if improvement > 3:
            confidence += 0.15
        elif improvement > 1:
            confidence += 0.10
        else:
            confidence += 0.05

    confidence += _macd_score(bar, previous, cfg)
    confidence += _volume_score(bar, cfg)
    confidence += _trend_score(bar, cfg)
    confidence += _momentum_score(bar, cfg)
    return max(0.0, min(confidence, MAX_CONFIDENCE))


def check_buy_signal(bar: EnrichedBar, cfg: StrategyConfig, previous: Optional[EnrichedBar] = None) -> BuySignal:
    """Oversold RSI turning up + MACD above signal + volume + bullish candle + confidence."""
    if bar.rsi is None or bar.macd is None or bar.macd_signal is None:
        return BuySignal(False, "insufficient indicator data")

    rsi, macd, signal = bar.rsi, bar.macd, bar.macd_signal
    if rsi > cfg.rsi_oversold:
        return BuySignal(False, f"RSI {rsi:.2f} above oversold level {cfg.rsi_oversold}")
    if macd <= signal:
        return BuySignal(False, "MACD not above signal line")
    prev_rsi = (previous.rsi if previous else None) or 0.0
    if previous is None or rsi <= prev_rsi:
        return BuySignal(False, "RSI not turning up")
    if (bar.volume_ratio or 0.0) < cfg.volume_threshold:
        return BuySignal(False, "volume below threshold")
    if bar.close <= bar.open:
        return BuySignal(False, "bearish candle")
    if (
        cfg.strict_scoring
        and cfg.hierarchical_decision
        and cfg.enable_price_momentum
        and bar.price_momentum is not None
        and bar.price_momentum < 0
    ):
        return BuySignal(False, "negative price momentum")

    confidence = calculate_confidence(bar, cfg, previous)
    if confidence < cfg.confidence_threshold:
        return BuySignal(False, f"confidence {confidence:.1%} below {cfg.confidence_threshold:.1%}")

    logger.debug("%s buy signal, confidence %.1f%%", bar.date, confidence * 100)
    return BuySignal(True, f"buy signal, confidence {confidence:.1%}", confidence)


def check_sell_signal(bar: EnrichedBar, position: Position, holding_days: int, cfg: StrategyConfig) -> SellSignal:
    """Exit rules, in priority order.

    1. trailing stop (once the high-water gain reached the activation level)
    2. ATR stop
    3. fixed take-profit / stop-loss
    4. minimum holding period: nothing below fires while it lasts
    5. RSI overbought, MACD death cross, maximum holding days
    """
    price = bar.close
    entry = position.entry_price
    profit_rate = (price - entry) / entry

    if cfg.enable_trailing_stop:
        peak_gain = (position.high_price_since_entry - entry) / entry
        if peak_gain >= cfg.trailing_activate_percent and price <= position.trailing_stop_price:
            return SellSignal(
                True,
                f"trailing stop hit ({cfg.trailing_stop_percent:.1%} off high, peak gain {peak_gain:.2%})",
            )

    if cfg.enable_atr_stop and position.atr_stop_price is not None and price <= position.atr_stop_price:
        return SellSignal(True, "ATR stop hit")

    if profit_rate >= cfg.stop_profit:
        return SellSignal(True, "take-profit")
    if profit_rate <= -cfg.stop_loss:
        return SellSignal(True, "stop-loss")

    if holding_days <= cfg.min_holding_days:
        return SellSignal(False, "")

    if (bar.rsi or 0.0) > cfg.rsi_overbought:
        return SellSignal(True, "RSI overbought")
    if (bar.macd or 0.0) < (bar.macd_signal or 0.0) and (bar.macd_histogram or 0.0) < 0:
        return SellSignal(True, "MACD death cross")
    if holding_days > cfg.max_holding_days:
        return SellSignal(True, f"held more than {cfg.max_holding_days} days")

    return SellSignal(False, "")
