"""
Signal Lifecycle Manager.

State machine:
    none -> active -> {executed | dismissed | expired}

- First qualifying poll creates an active signal
- Later qualifying polls update that row in place
- A new signal on the opposite outcome expires the prior one, so an event
  never has more than one active recommendation
- Executed / dismissed are terminal and block re-creation for that
  event + outcome
- Active signals expire once the event has started

Every read-modify-write for an event runs under that event's asyncio.Lock.
"""

import asyncio
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

import structlog

from config.settings import SignalSettings
from sharpedge.engine.edge import market_price
from sharpedge.models.schemas import (
    EdgeResult,
    MatchResult,
    MonitoredMarket,
    MonitoringStatus,
    MovementResult,
    SignalOpportunity,
    SignalStatus,
    SignalTier,
    TriggerReason,
    Urgency,
    calculate_kelly_fraction,
)
from sharpedge.storage.base import SignalStore

logger = structlog.get_logger()


@dataclass
class LifecycleOutcome:
    """What one lifecycle pass did for an event."""
    signal: SignalOpportunity
    created: bool
    expired: list[SignalOpportunity] = field(default_factory=list)


class SignalLifecycleManager:
    """
    Owns signal creation, in-place updates and terminal transitions.

    Usage:
        lifecycle = SignalLifecycleManager(store, settings.signals)
        outcome = await lifecycle.process(market, match, edge, movement, now)
    """

    def __init__(self, store: SignalStore, config: SignalSettings):
        self.store = store
        self.config = config
        self.logger = logger.bind(component="lifecycle")

        self._locks: dict[str, asyncio.Lock] = {}
        # Per-row write failures in the bulk passes; the poll cycle reads the delta
        self.write_failures = 0

    def lock_for(self, event_key: str) -> asyncio.Lock:
        lock = self._locks.get(event_key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[event_key] = lock
        return lock

    # =========================================================================
    # Scoring
    # =========================================================================

    def trigger_reason(
        self,
        edge: EdgeResult,
        movement: Optional[MovementResult],
    ) -> Optional[TriggerReason]:
        """
        Qualification: net edge >= 2% and (raw edge >= 5% or confirmed movement).
        """
        if edge.net_edge < self.config.min_net_edge:
            return None
        edge_trigger = edge.raw_edge >= self.config.min_raw_edge
        movement_trigger = movement is not None and movement.confirmed
        if edge_trigger and movement_trigger:
            return TriggerReason.BOTH
        if edge_trigger:
            return TriggerReason.EDGE
        if movement_trigger:
            return TriggerReason.MOVEMENT
        return None

    def classify_tier(self, net_edge: float, raw_edge: float, has_movement: bool) -> SignalTier:
        large_raw = raw_edge >= self.config.large_raw_edge
        if (net_edge >= self.config.elite_net_edge and has_movement) or large_raw:
            return SignalTier.ELITE
        # Second clause is shadowed by the elite check above
        if (net_edge >= self.config.strong_net_edge and has_movement) or (large_raw and not has_movement):
            return SignalTier.STRONG
        return SignalTier.STATIC

    def confidence(self, net_edge: float) -> int:
        score = self.config.confidence_base + math.floor(net_edge * self.config.confidence_slope)
        return int(min(self.config.confidence_cap, score))

    def urgency(self, event_start: datetime, now: datetime) -> Urgency:
        seconds = (event_start - now).total_seconds()
        if seconds < self.config.critical_seconds:
            return Urgency.CRITICAL
        if seconds < self.config.high_seconds:
            return Urgency.HIGH
        return Urgency.NORMAL

    def stake_fraction(self, fair_prob: float, price: float) -> float:
        kelly = calculate_kelly_fraction(fair_prob, price, self.config.kelly_fraction)
        return min(kelly, self.config.max_exposure_fraction)

    # =========================================================================
    # Transitions
    # =========================================================================

    async def process(
        self,
        market: MonitoredMarket,
        match: MatchResult,
        edge: EdgeResult,
        movement: Optional[MovementResult],
        now: datetime,
    ) -> Optional[LifecycleOutcome]:
        """
        Create or update the event's signal if the edge qualifies.

        Returns:
            LifecycleOutcome, or None when nothing qualified or the
            event + outcome is blocked by a terminal signal
        """
        trigger = self.trigger_reason(edge, movement)
        if trigger is None:
            return None

        has_movement = movement is not None and movement.confirmed
        fields = self._signal_fields(market, match, edge, movement, trigger, has_movement, now)

        async with self.lock_for(market.event_key):
            existing = await self.store.get_signals_for_event(market.event_key)

            blocked = [
                s for s in existing
                if s.outcome == edge.outcome and s.status.is_terminal
            ]
            if blocked:
                self.logger.debug(
                    "Signal blocked by terminal state",
                    title=market.title,
                    outcome=edge.outcome,
                    status=blocked[0].status.value,
                )
                return None

            active = [s for s in existing if s.status == SignalStatus.ACTIVE]
            same = [s for s in active if s.outcome == edge.outcome]

            if same:
                signal = same[0]
                for name, value in fields.items():
                    setattr(signal, name, value)
                signal.updated_at = now
                await self.store.upsert_signal(signal)
                # Duplicates can only come from a pre-lock race; keep the first
                for extra in same[1:] + [s for s in active if s.outcome != edge.outcome]:
                    await self._expire(extra, now, reason="superseded")
                return LifecycleOutcome(signal=signal, created=False)

            expired = []
            for prior in active:
                await self._expire(prior, now, reason="opposite_side")
                expired.append(prior)

            signal = SignalOpportunity(created_at=now, updated_at=now, **fields)
            await self.store.upsert_signal(signal)

            market.status = MonitoringStatus.TRIGGERED
            await self.store.upsert_monitored_market(market)

        self.logger.info(
            "🎯 Signal created",
            **signal.to_log(),
            expired_prior=len(expired),
        )
        return LifecycleOutcome(signal=signal, created=True, expired=expired)

    async def refresh_active(
        self,
        markets: dict[str, MonitoredMarket],
        now: datetime,
    ) -> int:
        """
        Refresh price/volume on every active signal whose market is known,
        whether or not it still qualifies.

        Returns:
            Number of signals refreshed
        """
        refreshed = 0
        for signal in await self.store.list_active_signals():
            market = markets.get(signal.event_key)
            if market is None:
                continue
            async with self.lock_for(signal.event_key):
                current = await self.store.get_signal(signal.signal_id)
                if current is None or current.status != SignalStatus.ACTIVE:
                    continue
                price = market_price(market, current.side)
                if price is not None:
                    current.market_price = price
                current.volume_24h = market.volume_24h
                current.price_refreshed_at = market.last_price_refresh or now
                try:
                    await self.store.upsert_signal(current)
                except Exception as e:
                    self._write_failed("Signal refresh write failed", current, e)
                    continue
                refreshed += 1
        return refreshed

    async def expire_started(self, now: datetime) -> list[SignalOpportunity]:
        """Expire active signals whose event has started."""
        expired = []
        for signal in await self.store.list_active_signals():
            if signal.event_start > now:
                continue
            async with self.lock_for(signal.event_key):
                current = await self.store.get_signal(signal.signal_id)
                if current is None or current.status != SignalStatus.ACTIVE:
                    continue
                try:
                    await self._expire(current, now, reason="event_started")
                except Exception as e:
                    self._write_failed("Signal expiry write failed", current, e)
                    continue
                expired.append(current)
        return expired

    def _write_failed(self, message: str, signal: SignalOpportunity, error: Exception) -> None:
        self.write_failures += 1
        self.logger.error(
            message,
            signal_id=signal.signal_id,
            title=signal.event_title,
            error=str(error),
            exc_info=True,
        )

    async def mark_executed(self, signal_id: str, now: datetime) -> Optional[SignalOpportunity]:
        return await self._finalize(signal_id, SignalStatus.EXECUTED, now)

    async def dismiss(self, signal_id: str, now: datetime) -> Optional[SignalOpportunity]:
        return await self._finalize(signal_id, SignalStatus.DISMISSED, now)

    async def _finalize(
        self,
        signal_id: str,
        status: SignalStatus,
        now: datetime,
    ) -> Optional[SignalOpportunity]:
        """Move an active signal to a terminal state."""
        signal = await self.store.get_signal(signal_id)
        if signal is None:
            self.logger.warning("Unknown signal", signal_id=signal_id)
            return None

        async with self.lock_for(signal.event_key):
            signal = await self.store.get_signal(signal_id)
            if signal is None or signal.status != SignalStatus.ACTIVE:
                self.logger.warning(
                    "Signal not active",
                    signal_id=signal_id,
                    status=signal.status.value if signal else None,
                )
                return None
            signal.status = status
            signal.updated_at = now
            await self.store.upsert_signal(signal)

        self.logger.info("Signal finalized", signal_id=signal_id, status=status.value)
        return signal

    async def _expire(self, signal: SignalOpportunity, now: datetime, reason: str) -> None:
        signal.status = SignalStatus.EXPIRED
        signal.updated_at = now
        await self.store.upsert_signal(signal)
        self.logger.debug(
            "Signal expired",
            signal_id=signal.signal_id,
            title=signal.event_title,
            reason=reason,
        )

    def _signal_fields(
        self,
        market: MonitoredMarket,
        match: MatchResult,
        edge: EdgeResult,
        movement: Optional[MovementResult],
        trigger: TriggerReason,
        has_movement: bool,
        now: datetime,
    ) -> dict:
        factors = {
            "platform_fee": round(edge.platform_fee, 6),
            "spread_cost": round(edge.spread_cost, 6),
            "slippage": round(edge.slippage, 6),
            "capped": edge.capped,
            "movement_override": edge.movement_override,
        }
        if movement is not None:
            factors.update({
                "movement_triggered": movement.triggered,
                "movement_velocity": round(movement.velocity, 6),
                "movement_books": movement.books_confirming,
                "movement_direction": movement.direction.value if movement.direction else None,
                "book_deltas": movement.book_deltas,
            })

        return {
            "event_key": market.event_key,
            "event_title": market.title,
            "sport": market.sport,
            "outcome": edge.outcome,
            "side": edge.side,
            "market_price": edge.market_price,
            "fair_prob": edge.fair_prob,
            "raw_edge": edge.raw_edge,
            "net_edge": edge.net_edge,
            "confidence": self.confidence(edge.net_edge),
            "urgency": self.urgency(market.start_time, now),
            "tier": self.classify_tier(edge.net_edge, edge.raw_edge, has_movement),
            "trigger": trigger,
            "event_start": market.start_time,
            "stake_fraction": self.stake_fraction(edge.fair_prob, edge.market_price),
            "volume_24h": market.volume_24h,
            "match_method": match.method.value,
            "factors": factors,
            "price_refreshed_at": market.last_price_refresh or now,
        }
