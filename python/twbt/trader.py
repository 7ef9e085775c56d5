"""Multi-symbol daily portfolio trader.

Day loop over the union trading calendar; symbols are processed in declaration
order, strictly sequentially:
- signals are evaluated on the close of day D
- fills happen at Open of the first bar dated on/after the next trading day
  (flexible T+1; never on the signal day)
- equity is marked to market at Close once all symbols are processed; a
  holding with no bar on that date is left out of the valuation

All run state lives in a `SimulationContext`, so two runs never share
positions, orders or cash.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Dict, List, Mapping, Optional

from .config import BacktestConfig, CostConfig, StrategyConfig
from .cost_model import TWCostModel
from .data_manager import InstrumentSeries
from .signals import BuyEvaluator, SellEvaluator, check_buy_signal, check_sell_signal
from .sizing import PositionSizer, calculate_current_exposure, dynamic_position_size
from .trading_calendar import TradingCalendar
from .types import EnrichedBar, EquityPoint, PendingBuyOrder, PendingSellOrder, Position, Trade

logger = logging.getLogger(__name__)


@dataclass
class SimulationContext:
    """Run-scoped mutable state, owned by one backtest run."""

    cash: float
    positions: Dict[str, Position] = field(default_factory=dict)
    pending_buys: Dict[str, PendingBuyOrder] = field(default_factory=dict)
    pending_sells: Dict[str, PendingSellOrder] = field(default_factory=dict)
    trades: List[Trade] = field(default_factory=list)
    equity_curve: List[EquityPoint] = field(default_factory=list)


def _delay_note(target: Optional[date], executed: date) -> str:
    if target is None or target == executed:
        return ""
    return f", target {target.isoformat()}, deferred"


class PortfolioTrader:
    """Event-driven simulation of the T+1 order lifecycle.

    Per symbol: FLAT -> PENDING_BUY -> HOLDING -> PENDING_SELL -> FLAT.
    At most one pending order per side; a new signal while one is pending is
    ignored.
    """

    def __init__(
        self,
        series: Mapping[str, InstrumentSeries],
        strat_cfg: StrategyConfig,
        cost_cfg: CostConfig,
        bt_cfg: BacktestConfig,
        buy_evaluator: BuyEvaluator = check_buy_signal,
        sell_evaluator: SellEvaluator = check_sell_signal,
        sizer: PositionSizer = dynamic_position_size,
        calendar: Optional[TradingCalendar] = None,
    ):
        self.series = dict(series)
        self.symbols = list(self.series)
        self.strat_cfg = strat_cfg
        self.bt_cfg = bt_cfg
        self.cost_model = TWCostModel(cost_cfg)

        self.buy_evaluator = buy_evaluator
        self.sell_evaluator = sell_evaluator
        self.sizer = sizer
        self.calendar = calendar or TradingCalendar.from_series(
            self.series, max_lookahead_days=bt_cfg.max_calendar_lookahead_days
        )

        self.initial_capital = float(bt_cfg.initial_capital)
        self._warmup = strat_cfg.warmup_bars

    # ---------- public API ----------

    def new_context(self) -> SimulationContext:
        return SimulationContext(cash=self.initial_capital)

    def run_full_backtest(self) -> SimulationContext:
        """Run every trading day inside [bt_cfg.start, bt_cfg.end]."""
        ctx = self.new_context()
        days = self.calendar.between(self.bt_cfg.start, self.bt_cfg.end)
        logger.info("Simulating %d trading days across %d symbols", len(days), len(self.symbols))
        for d in days:
            self.step(ctx, d)
        self._report_stranded_orders(ctx)
        return ctx

    def step(self, ctx: SimulationContext, d: date) -> None:
        """Process one trading date for every symbol, then record equity."""
        if not self.calendar.is_trading_day(d):
            logger.debug("Skipping non-trading day %s", d)
            return
        for symbol in self.symbols:
            self._step_symbol(ctx, symbol, d)
        ctx.equity_curve.append(self._mark_to_market(ctx, d))

    # ---------- per-symbol step ----------

    def _step_symbol(self, ctx: SimulationContext, symbol: str, d: date) -> None:
        s = self.series[symbol]
        i = s.index_of(d)
        if i is None:
            logger.debug("%s %s: no bar, skipping", d, symbol)
            return
        if i < self._warmup:
            return
        bar = s.bars[i]
        if bar.date != d:
            logger.warning("%s %s: bar dated %s, skipping", d, symbol, bar.date)
            return

        self._fill_pending_sell(ctx, symbol, bar)
        self._fill_pending_buy(ctx, symbol, bar)

        pos = ctx.positions.get(symbol)
        if pos is not None:
            self._update_trailing_stop(pos, bar)

        if pos is not None and symbol not in ctx.pending_sells:
            holding_days = (d - pos.entry_date).days
            decision = self.sell_evaluator(bar, pos, holding_days, self.strat_cfg)
            if decision.signal:
                order = PendingSellOrder(
                    symbol=symbol,
                    reason=decision.reason,
                    signal_date=d,
                    target_execution_date=self.calendar.next_trading_day(d),
                    position=replace(pos),
                )
                ctx.pending_sells[symbol] = order
                logger.debug("%s %s: SELL order queued for %s (%s)", d, symbol, order.target_execution_date, decision.reason)

        if symbol not in ctx.positions and symbol not in ctx.pending_buys:
            previous = s.bars[i - 1] if i > 0 else None
            decision = self.buy_evaluator(bar, self.strat_cfg, previous)
            if decision.signal:
                order = PendingBuyOrder(
                    symbol=symbol,
                    confidence=float(decision.confidence or 0.0),
                    reason=decision.reason,
                    signal_date=d,
                    target_execution_date=self.calendar.next_trading_day(d),
                )
                ctx.pending_buys[symbol] = order
                logger.debug("%s %s: BUY order queued for %s (%s)", d, symbol, order.target_execution_date, decision.reason)

    @staticmethod
    def _is_due(target: Optional[date], d: date) -> bool:
        return target is not None and d >= target

    def _fill_pending_sell(self, ctx: SimulationContext, symbol: str, bar: EnrichedBar) -> None:
        order = ctx.pending_sells.get(symbol)
        if order is None or not self._is_due(order.target_execution_date, bar.date):
            return

        pos = order.position
        d = bar.date
        proceeds = self.cost_model.sell_proceeds(bar.open, pos.quantity)
        profit = proceeds - pos.invested_amount
        profit_rate = profit / pos.invested_amount
        holding_days = (d - pos.entry_date).days
        outcome = "profit" if profit_rate >= 0 else "loss"
        reason = (
            f"{order.reason}, realized {outcome} {abs(profit_rate):.2%} "
            f"(T+1 open{_delay_note(order.target_execution_date, d)})"
        )

        ctx.trades.append(
            Trade(
                symbol=symbol,
                action="SELL",
                date=d,
                price=float(bar.open),
                quantity=int(pos.quantity),
                amount=float(proceeds),
                reason=reason,
                confidence=pos.confidence,
                buy_signal_date=pos.buy_signal_date,
                sell_signal_date=order.signal_date,
                entry_date=pos.entry_date,
                entry_price=pos.entry_price,
                invested_amount=pos.invested_amount,
                holding_days=holding_days,
                profit=float(profit),
                profit_rate=float(profit_rate),
            )
        )
        ctx.cash += proceeds
        del ctx.positions[symbol]
        del ctx.pending_sells[symbol]
        logger.info(
            "%s %s SELL %d @ %.2f | %s %.2f%% | held %d days",
            d, symbol, pos.quantity, bar.open, outcome, profit_rate * 100, holding_days,
        )

    def _fill_pending_buy(self, ctx: SimulationContext, symbol: str, bar: EnrichedBar) -> None:
        order = ctx.pending_buys.get(symbol)
        if order is None or not self._is_due(order.target_execution_date, bar.date):
            return

        # one-shot: the order is consumed whether or not it fills
        del ctx.pending_buys[symbol]
        d = bar.date

        exposure = calculate_current_exposure(ctx.positions, ctx.cash, self.series, d)
        fraction = float(self.sizer(order.confidence, exposure, self.strat_cfg))
        invest = min(ctx.cash * fraction, ctx.cash * self.strat_cfg.max_position_size)

        if invest < self.bt_cfg.min_ticket:
            logger.warning("%s %s BUY dropped: amount %.0f below minimum %.0f", d, symbol, invest, self.bt_cfg.min_ticket)
            return
        if not math.isfinite(bar.open) or bar.open <= 0:
            logger.warning("%s %s BUY dropped: invalid open %s", d, symbol, bar.open)
            return

        unit_cost = self.cost_model.buy_cost_per_share(bar.open)
        quantity = int(invest // unit_cost)
        cost = unit_cost * quantity
        if quantity < 1 or cost > ctx.cash:
            logger.warning("%s %s BUY dropped: quantity %d, cost %.0f, cash %.0f", d, symbol, quantity, cost, ctx.cash)
            return

        atr_stop = None
        if self.strat_cfg.enable_atr_stop and bar.atr is not None:
            atr_stop = bar.open - self.strat_cfg.atr_multiplier * bar.atr

        ctx.positions[symbol] = Position(
            symbol=symbol,
            entry_date=d,
            entry_price=float(bar.open),
            quantity=quantity,
            invested_amount=float(cost),
            confidence=order.confidence,
            buy_signal_date=order.signal_date,
            high_price_since_entry=float(bar.open),
            trailing_stop_price=float(bar.open) * (1.0 - self.strat_cfg.trailing_stop_percent),
            atr_stop_price=atr_stop,
            entry_atr=bar.atr,
        )
        ctx.trades.append(
            Trade(
                symbol=symbol,
                action="BUY",
                date=d,
                price=float(bar.open),
                quantity=quantity,
                amount=float(cost),
                reason=f"{order.reason} (T+1 open{_delay_note(order.target_execution_date, d)})",
                confidence=order.confidence,
                buy_signal_date=order.signal_date,
                entry_date=d,
                entry_price=float(bar.open),
            )
        )
        ctx.cash -= cost
        logger.info(
            "%s %s BUY %d @ %.2f | exposure %.1f%% | size %.1f%% | cash left %.0f",
            d, symbol, quantity, bar.open, exposure * 100, fraction * 100, ctx.cash,
        )

    def _update_trailing_stop(self, pos: Position, bar: EnrichedBar) -> None:
        """Raise the high-water mark; tighten (never loosen) the trailing stop."""
        if bar.high <= pos.high_price_since_entry:
            return
        pos.high_price_since_entry = float(bar.high)
        gain = (pos.high_price_since_entry - pos.entry_price) / pos.entry_price
        if gain >= self.strat_cfg.trailing_activate_percent:
            candidate = pos.high_price_since_entry * (1.0 - self.strat_cfg.trailing_stop_percent)
            pos.trailing_stop_price = max(pos.trailing_stop_price, candidate)

    def _mark_to_market(self, ctx: SimulationContext, d: date) -> EquityPoint:
        positions_value = 0.0
        for symbol, pos in ctx.positions.items():
            bar = self.series[symbol].bar_on(d)
            if bar is not None:
                positions_value += bar.close * pos.quantity
        return EquityPoint(
            date=d,
            total_value=float(ctx.cash + positions_value),
            cash=float(ctx.cash),
            positions_value=float(positions_value),
        )

    def _report_stranded_orders(self, ctx: SimulationContext) -> None:
        for kind, orders in (("BUY", ctx.pending_buys), ("SELL", ctx.pending_sells)):
            if not orders:
                continue
            logger.info("%d %s order(s) still pending at end of run", len(orders), kind)
            for symbol, order in orders.items():
                logger.info(
                    "  %s: signal %s, target %s - no trading day left in the window",
                    symbol, order.signal_date, order.target_execution_date,
                )
