"""TWSE-like cost model."""

from __future__ import annotations

from .config import CostConfig


class TWCostModel:
    """Broker commission on both sides, securities transaction tax on sells.

    Both are fixed fractions of notional applied at fill time, so a buy
    costs price * (1 + buy_cost_rate) per share and a sell returns
    price * (1 - sell_cost_rate).
    """

    def __init__(self, cfg: CostConfig):
        self.cfg = cfg

    @property
    def buy_cost_rate(self) -> float:
        return float(self.cfg.commission_rate)

    @property
    def sell_cost_rate(self) -> float:
        return float(self.cfg.commission_rate + self.cfg.stt_rate)

    def buy_cost_per_share(self, price: float) -> float:
        """Cash needed for one share at `price`, commission included."""
        return float(price) * (1.0 + self.buy_cost_rate)

    def sell_proceeds(self, price: float, quantity: int) -> float:
        """Net cash received for selling `quantity` shares at `price`."""
        return float(price) * int(quantity) * (1.0 - self.sell_cost_rate)
