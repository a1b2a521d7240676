"""
Edge & Cost Model.

raw edge = fair probability - market price, per side of the binary market.
Net edge subtracts, in order:
1. Platform fee (1% of positive raw edge)
2. Spread cost (live spread clamped to 0.5-3%, else 24h-volume tiers)
3. Slippage (stake / 24h volume tiers, 0.2-3%)

Guards:
- Fair >= 85% on a price older than 3 minutes: no edge (staleness artifact)
- Fair >= 90% with raw edge > 40%: raw edge capped at 40%
"""

from datetime import datetime
from typing import Optional

import structlog

from config.settings import CostSettings
from sharpedge.models.schemas import (
    EdgeResult,
    FairProbability,
    MatchResult,
    MonitoredMarket,
    MovementDirection,
    MovementResult,
    Side,
    is_valid_number,
)

logger = structlog.get_logger()


def _is_price(value: Optional[float]) -> bool:
    return value is not None and is_valid_number(value) and 0.0 < value < 1.0


def market_price(market: MonitoredMarket, side: Side) -> Optional[float]:
    """
    Price paid to buy a side.

    Best ask, else best bid, else 1 - the other side's best bid.
    """
    if side == Side.YES:
        ask, bid, other_bid = market.yes_ask, market.yes_bid, market.no_bid
    else:
        ask, bid, other_bid = market.no_ask, market.no_bid, market.yes_bid

    if _is_price(ask):
        return ask
    if _is_price(bid):
        return bid
    if _is_price(other_bid):
        return 1.0 - other_bid
    return None


class EdgeCalculator:
    """
    Converts fair-vs-market gaps into net expected edge.

    Usage:
        calculator = EdgeCalculator(settings.costs, stake_usd=100.0)
        edge = calculator.evaluate(market, match, fair, movement, now)
    """

    def __init__(self, config: CostSettings, stake_usd: float = 100.0):
        self.config = config
        self.stake_usd = stake_usd
        self.logger = logger.bind(component="edge")

    # =========================================================================
    # Cost components
    # =========================================================================

    def platform_fee(self, raw_edge: float) -> float:
        return max(0.0, raw_edge) * self.config.platform_fee_rate

    def spread_cost(self, volume_24h: float, live_spread: Optional[float] = None) -> float:
        if live_spread is not None and is_valid_number(live_spread) and live_spread >= 0:
            return min(self.config.max_spread, max(self.config.min_spread, live_spread))
        for min_volume, cost in self.config.spread_tiers:
            if volume_24h >= min_volume:
                return cost
        return self.config.default_spread

    def slippage(self, volume_24h: float, stake_usd: Optional[float] = None) -> float:
        stake = self.stake_usd if stake_usd is None else stake_usd
        if not is_valid_number(volume_24h) or volume_24h <= 0:
            return self.config.default_slippage
        ratio = stake / volume_24h
        for max_ratio, cost in self.config.slippage_tiers:
            if ratio < max_ratio:
                return cost
        return self.config.default_slippage

    def net_edge(
        self,
        raw_edge: float,
        volume_24h: float,
        live_spread: Optional[float] = None,
    ) -> tuple[float, float, float, float]:
        """
        Returns:
            (net_edge, platform_fee, spread_cost, slippage)
        """
        fee = self.platform_fee(raw_edge)
        spread = self.spread_cost(volume_24h, live_spread)
        slip = self.slippage(volume_24h)
        return raw_edge - fee - spread - slip, fee, spread, slip

    # =========================================================================
    # Evaluation
    # =========================================================================

    def evaluate(
        self,
        market: MonitoredMarket,
        match: MatchResult,
        fair: FairProbability,
        movement: Optional[MovementResult],
        now: datetime,
    ) -> Optional[EdgeResult]:
        """
        Pick the recommended side and compute its net edge.

        Returns:
            EdgeResult, or None when no side has positive edge, an input is
            malformed, or the staleness guard fires
        """
        fairs = {Side.YES: fair.fair_prob, Side.NO: fair.complement_prob}
        if not all(is_valid_number(p) and 0.0 <= p <= 1.0 for p in fairs.values()):
            return None

        volume = market.volume_24h if is_valid_number(market.volume_24h) else 0.0

        raw: dict[Side, float] = {}
        prices: dict[Side, float] = {}
        for side in (Side.YES, Side.NO):
            price = market_price(market, side)
            if price is None:
                continue
            prices[side] = price
            raw[side] = fairs[side] - price

        positive = {side: edge for side, edge in raw.items() if edge > 0}
        if not positive:
            return None

        chosen = max(positive, key=positive.get)
        override = False

        if movement is not None and movement.confirmed and movement.direction is not None:
            favored = Side.YES if movement.direction == MovementDirection.SHORTENING else Side.NO
            if (
                favored != chosen
                and favored in raw
                and raw[favored] >= self.config.movement_override_min_edge
            ):
                self.logger.debug(
                    "Movement override flipped side",
                    title=market.title,
                    from_side=chosen.value,
                    to_side=favored.value,
                )
                chosen = favored
                override = True

        side_fair = fairs[chosen]
        raw_edge = raw[chosen]

        if side_fair >= self.config.stale_fair_prob:
            age = market.price_age_seconds(now)
            if age is None or age > self.config.stale_price_seconds:
                self.logger.debug(
                    "Stale price on heavy favourite",
                    title=market.title,
                    fair=round(side_fair, 4),
                    age_seconds=age,
                )
                return None

        capped = False
        if side_fair >= self.config.extreme_fair_prob and raw_edge > self.config.max_raw_edge:
            raw_edge = self.config.max_raw_edge
            capped = True

        net, fee, spread, slip = self.net_edge(raw_edge, volume, market.spread)
        if not is_valid_number(net):
            return None

        outcome = match.yes.name if chosen == Side.YES else match.no.name
        return EdgeResult(
            side=chosen,
            outcome=outcome,
            fair_prob=side_fair,
            market_price=prices[chosen],
            raw_edge=raw_edge,
            net_edge=net,
            platform_fee=fee,
            spread_cost=spread,
            slippage=slip,
            capped=capped,
            movement_override=override,
        )
