"""Trading calendar derived from the data itself.

A date is a trading day when at least one instrument has a bar on it. There is
no exchange holiday table: make-up trading days and unscheduled closures show
up in the data.
"""

from __future__ import annotations

from bisect import bisect_right
from datetime import date
from typing import Iterable, Mapping, Optional, Tuple


class TradingCalendar:
    """Sorted union of per-instrument dates."""

    def __init__(self, dates: Iterable[date], max_lookahead_days: int = 10):
        self.dates: Tuple[date, ...] = tuple(sorted(set(dates)))
        self._date_set = frozenset(self.dates)
        self.max_lookahead_days = int(max_lookahead_days)

    @classmethod
    def from_series(cls, series: Mapping[str, object], max_lookahead_days: int = 10) -> "TradingCalendar":
        """Build from {symbol: InstrumentSeries}-like objects exposing `.dates`."""
        all_dates = []
        for s in series.values():
            all_dates.extend(s.dates)
        return cls(all_dates, max_lookahead_days=max_lookahead_days)

    def __len__(self) -> int:
        return len(self.dates)

    def is_trading_day(self, d: date) -> bool:
        return d in self._date_set

    def next_trading_day(self, d: date) -> Optional[date]:
        """First trading day strictly after `d`.

        Gives up (None) when the next one is more than `max_lookahead_days`
        calendar days away, or when `d` is at/after the last known date.
        """
        i = bisect_right(self.dates, d)
        if i >= len(self.dates):
            return None
        nxt = self.dates[i]
        if (nxt - d).days > self.max_lookahead_days:
            return None
        return nxt

    def between(self, start: Optional[date] = None, end: Optional[date] = None) -> Tuple[date, ...]:
        """Trading days within the inclusive [start, end] window."""
        return tuple(
            d for d in self.dates if (start is None or d >= start) and (end is None or d <= end)
        )
