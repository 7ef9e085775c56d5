"""
Tests for the data-derived trading calendar.
"""
from datetime import date
from types import SimpleNamespace

from twbt.trading_calendar import TradingCalendar


class TestTradingCalendar:
    """Union calendar and next-trading-day lookup."""

    def test_union_of_instrument_dates(self):
        """Dates from every instrument are merged, sorted and de-duplicated."""
        series = {
            "A": SimpleNamespace(dates=(date(2024, 1, 2), date(2024, 1, 4))),
            "B": SimpleNamespace(dates=(date(2024, 1, 3), date(2024, 1, 4))),
        }
        cal = TradingCalendar.from_series(series)
        assert cal.dates == (date(2024, 1, 2), date(2024, 1, 3), date(2024, 1, 4))
        assert len(cal) == 3

    def test_is_trading_day(self):
        cal = TradingCalendar([date(2024, 1, 2)])
        assert cal.is_trading_day(date(2024, 1, 2))
        assert not cal.is_trading_day(date(2024, 1, 3))

    def test_next_trading_day_skips_weekend(self):
        """Friday's next trading day is Monday."""
        cal = TradingCalendar([date(2024, 1, 5), date(2024, 1, 8)])
        assert cal.next_trading_day(date(2024, 1, 5)) == date(2024, 1, 8)

    def test_next_trading_day_from_non_trading_day(self):
        cal = TradingCalendar([date(2024, 1, 5), date(2024, 1, 8)])
        assert cal.next_trading_day(date(2024, 1, 6)) == date(2024, 1, 8)

    def test_next_trading_day_is_strictly_later(self):
        cal = TradingCalendar([date(2024, 1, 2), date(2024, 1, 3)])
        assert cal.next_trading_day(date(2024, 1, 2)) == date(2024, 1, 3)

    def test_lookahead_limit(self):
        """A gap of exactly the limit is fine; anything longer gives up."""
        cal = TradingCalendar([date(2024, 1, 1), date(2024, 1, 11)], max_lookahead_days=10)
        assert cal.next_trading_day(date(2024, 1, 1)) == date(2024, 1, 11)

        cal = TradingCalendar([date(2024, 1, 1), date(2024, 1, 12)], max_lookahead_days=10)
        assert cal.next_trading_day(date(2024, 1, 1)) is None

    def test_no_trading_day_after_last(self):
        cal = TradingCalendar([date(2024, 1, 2), date(2024, 1, 3)])
        assert cal.next_trading_day(date(2024, 1, 3)) is None

    def test_between_is_inclusive(self):
        days = [date(2024, 1, d) for d in (2, 3, 4, 5)]
        cal = TradingCalendar(days)
        assert cal.between(date(2024, 1, 3), date(2024, 1, 4)) == (date(2024, 1, 3), date(2024, 1, 4))
        assert cal.between(None, None) == tuple(days)
        assert cal.between(date(2024, 1, 6), None) == ()
