"""Exposure and position sizing.

The trader only depends on the `PositionSizer` call signature, so another
sizing rule can be swapped in without touching the simulation loop.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Mapping, Protocol

from .config import StrategyConfig
from .types import Position

logger = logging.getLogger(__name__)

BASE_POSITION = 0.15


class PositionSizer(Protocol):
    def __call__(self, confidence: float, current_exposure: float, cfg: StrategyConfig) -> float:
        ...


def calculate_current_exposure(
    positions: Mapping[str, Position],
    cash: float,
    series: Mapping[str, object],
    on: date,
) -> float:
    """Market value of open positions / (cash + that value).

    Positions are valued at their close on `on`. A symbol with no bar on that
    exact date is left out of the valuation, which understates exposure.
    """
    position_value = 0.0
    for symbol, pos in positions.items():
        s = series.get(symbol)
        bar = s.bar_on(on) if s is not None else None
        if bar is not None:
            position_value += bar.close * pos.quantity

    total = cash + position_value
    exposure = position_value / total if total > 0 else 0.0
    logger.debug(
        "exposure on %s: positions %.0f / total %.0f = %.1f%%", on, position_value, total, exposure * 100
    )
    return exposure


def dynamic_position_size(confidence: float, current_exposure: float, cfg: StrategyConfig) -> float:
    """Fraction of current cash to deploy for a new position.

    - base 15%, scaled x1.5 (confidence > 0.8), x1.0 (> 0.65) or x0.7
    - halved once exposure exceeds `max_total_exposure`, x0.75 above 60%
    - never above `max_position_size`
    """
    if not cfg.dynamic_position_size:
        return 0.225 if confidence > 0.8 else 0.15 if confidence > 0.65 else 0.105

    if confidence > 0.8:
        multiplier = 1.5
    elif confidence > 0.65:
        multiplier = 1.0
    else:
        multiplier = 0.7
    size = BASE_POSITION * multiplier

    if current_exposure > cfg.max_total_exposure:
        size *= 0.5
    elif current_exposure > 0.6:
        size *= 0.75

    return min(size, cfg.max_position_size)
