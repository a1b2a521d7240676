"""Tests for the signal lifecycle state machine."""

import asyncio
from datetime import timedelta

import pytest

from config.settings import SignalSettings
from sharpedge.engine.lifecycle import SignalLifecycleManager
from sharpedge.models.schemas import (
    EdgeResult,
    MatchMethod,
    MatchResult,
    MonitoringStatus,
    MovementDirection,
    MovementResult,
    OutcomeMatch,
    Side,
    SignalStatus,
    SignalTier,
    TriggerReason,
    Urgency,
)
from sharpedge.storage.memory import InMemoryStore


class FailingSignalWriteStore(InMemoryStore):
    """Store whose signal writes fail once `failing` is set."""

    failing = False

    async def upsert_signal(self, signal):
        if self.failing:
            raise RuntimeError("row write failed")
        await super().upsert_signal(signal)


@pytest.fixture
def lifecycle(store):
    return SignalLifecycleManager(store, SignalSettings())


@pytest.fixture
def match(game_factory):
    return MatchResult(
        game=game_factory(),
        market_key="h2h",
        yes=OutcomeMatch(0, "Boston Celtics", MatchMethod.NICKNAME, 1.0),
        no=OutcomeMatch(1, "Miami Heat", MatchMethod.NICKNAME, 1.0),
    )


def edge_for(side=Side.YES, raw=0.06, net=0.0524, price=0.55):
    return EdgeResult(
        side=side,
        outcome="Boston Celtics" if side == Side.YES else "Miami Heat",
        fair_prob=price + raw,
        market_price=price,
        raw_edge=raw,
        net_edge=net,
        platform_fee=raw * 0.01,
        spread_cost=0.005,
        slippage=0.002,
    )


CONFIRMED = MovementResult(
    triggered=True,
    velocity=0.0015,
    books_confirming=2,
    direction=MovementDirection.SHORTENING,
    book_deltas={"pinnacle": 0.04, "betfair_ex_eu": 0.04},
)


class TestScoring:
    """Tests for trigger, tier, confidence and urgency."""

    def test_trigger_reasons(self, lifecycle):
        assert lifecycle.trigger_reason(edge_for(), None) == TriggerReason.EDGE
        assert lifecycle.trigger_reason(edge_for(), CONFIRMED) == TriggerReason.BOTH
        assert lifecycle.trigger_reason(edge_for(raw=0.03, net=0.022), CONFIRMED) == TriggerReason.MOVEMENT
        assert lifecycle.trigger_reason(edge_for(raw=0.03, net=0.022), None) is None
        assert lifecycle.trigger_reason(edge_for(raw=0.06, net=0.015), CONFIRMED) is None

    @pytest.mark.parametrize("net,raw,movement,tier", [
        (0.06, 0.07, True, SignalTier.ELITE),
        (0.02, 0.12, False, SignalTier.ELITE),
        (0.035, 0.045, True, SignalTier.STRONG),
        (0.06, 0.07, False, SignalTier.STATIC),
        (0.025, 0.05, True, SignalTier.STATIC),
    ])
    def test_classify_tier(self, lifecycle, net, raw, movement, tier):
        assert lifecycle.classify_tier(net, raw, movement) == tier

    def test_confidence(self, lifecycle):
        assert lifecycle.confidence(0.0524) == 76
        assert lifecycle.confidence(0.02) == 60
        assert lifecycle.confidence(0.20) == 85

    def test_urgency(self, lifecycle, now):
        assert lifecycle.urgency(now + timedelta(minutes=30), now) == Urgency.CRITICAL
        assert lifecycle.urgency(now + timedelta(hours=3), now) == Urgency.HIGH
        assert lifecycle.urgency(now + timedelta(hours=8), now) == Urgency.NORMAL

    def test_stake_fraction_capped(self, lifecycle):
        assert lifecycle.stake_fraction(0.95, 0.40) == pytest.approx(0.05)
        assert lifecycle.stake_fraction(0.40, 0.55) == 0.0


class TestTransitions:
    """Tests for create / update / expire / terminal states."""

    @pytest.mark.asyncio
    async def test_creates_signal(self, lifecycle, store, market_factory, match, now):
        """Test that the first qualifying poll creates an active signal."""
        market = market_factory()

        outcome = await lifecycle.process(market, match, edge_for(), None, now)

        assert outcome.created
        signal = outcome.signal
        assert signal.status == SignalStatus.ACTIVE
        assert signal.side == Side.YES
        assert signal.outcome == "Boston Celtics"
        assert signal.tier == SignalTier.STATIC
        assert signal.trigger == TriggerReason.EDGE
        assert signal.confidence == 76
        assert signal.urgency == Urgency.HIGH
        assert signal.match_method == "nickname"
        assert signal.factors["spread_cost"] == pytest.approx(0.005)

        stored = await store.get_signal(signal.signal_id)
        assert stored is not None
        markets = await store.list_monitored_markets()
        assert markets[0].status == MonitoringStatus.TRIGGERED

    @pytest.mark.asyncio
    async def test_repoll_updates_in_place(self, lifecycle, store, market_factory, match, now):
        """Test that re-polling the same edge updates the existing row."""
        market = market_factory()

        first = await lifecycle.process(market, match, edge_for(), None, now)
        second = await lifecycle.process(
            market, match, edge_for(raw=0.07, net=0.0623), CONFIRMED, now + timedelta(minutes=5)
        )

        assert not second.created
        assert second.signal.signal_id == first.signal.signal_id
        rows = await store.get_signals_for_event(market.event_key)
        assert len(rows) == 1
        assert rows[0].raw_edge == pytest.approx(0.07)
        assert rows[0].trigger == TriggerReason.BOTH
        assert rows[0].created_at == now
        assert rows[0].updated_at == now + timedelta(minutes=5)

    @pytest.mark.asyncio
    async def test_opposite_side_expires_prior(self, lifecycle, store, market_factory, match, now):
        """Test that a signal on the other outcome leaves exactly one active signal."""
        market = market_factory()

        first = await lifecycle.process(market, match, edge_for(Side.YES), None, now)
        second = await lifecycle.process(market, match, edge_for(Side.NO, price=0.40), None, now)

        assert second.created
        assert [s.signal_id for s in second.expired] == [first.signal.signal_id]

        rows = await store.get_signals_for_event(market.event_key)
        active = [s for s in rows if s.status == SignalStatus.ACTIVE]
        assert len(active) == 1
        assert active[0].outcome == "Miami Heat"
        prior = await store.get_signal(first.signal.signal_id)
        assert prior.status == SignalStatus.EXPIRED

    @pytest.mark.asyncio
    async def test_terminal_blocks_recreation(self, lifecycle, store, market_factory, match, now):
        """Test that executed/dismissed signals block the same outcome."""
        market = market_factory()
        created = await lifecycle.process(market, match, edge_for(), None, now)

        executed = await lifecycle.mark_executed(created.signal.signal_id, now)
        assert executed.status == SignalStatus.EXECUTED

        assert await lifecycle.process(market, match, edge_for(), None, now) is None
        assert len(await store.get_signals_for_event(market.event_key)) == 1

        other = await lifecycle.process(market, match, edge_for(Side.NO, price=0.40), None, now)
        assert other.created

    @pytest.mark.asyncio
    async def test_dismiss_only_active(self, lifecycle, market_factory, match, now):
        market = market_factory()
        created = await lifecycle.process(market, match, edge_for(), None, now)

        dismissed = await lifecycle.dismiss(created.signal.signal_id, now)
        assert dismissed.status == SignalStatus.DISMISSED
        assert await lifecycle.mark_executed(created.signal.signal_id, now) is None
        assert await lifecycle.dismiss("missing", now) is None

    @pytest.mark.asyncio
    async def test_not_qualifying(self, lifecycle, store, market_factory, match, now):
        market = market_factory()
        assert await lifecycle.process(market, match, edge_for(raw=0.03, net=0.01), None, now) is None
        assert await store.list_signals() == []

    @pytest.mark.asyncio
    async def test_expire_started(self, lifecycle, store, market_factory, match, now):
        """Test that active signals expire once the event has started."""
        market = market_factory(start=now + timedelta(hours=1))
        created = await lifecycle.process(market, match, edge_for(), None, now)

        assert await lifecycle.expire_started(now) == []
        expired = await lifecycle.expire_started(now + timedelta(hours=2))

        assert [s.signal_id for s in expired] == [created.signal.signal_id]
        stored = await store.get_signal(created.signal.signal_id)
        assert stored.status == SignalStatus.EXPIRED
        assert await store.list_active_signals() == []

    @pytest.mark.asyncio
    async def test_refresh_active(self, lifecycle, store, market_factory, match, now):
        """Test that active signals pick up the latest price and volume."""
        market = market_factory()
        created = await lifecycle.process(market, match, edge_for(), None, now)

        later = now + timedelta(minutes=1)
        fresh = market_factory(yes_ask=0.58, volume=700_000, refreshed=later)
        assert await lifecycle.refresh_active({fresh.event_key: fresh}, later) == 1

        stored = await store.get_signal(created.signal.signal_id)
        assert stored.market_price == 0.58
        assert stored.volume_24h == 700_000
        assert stored.price_refreshed_at == later

    @pytest.mark.asyncio
    async def test_concurrent_polls_single_signal(self, lifecycle, store, market_factory, match, now):
        """Test that concurrent processing of one event yields one active signal."""
        await asyncio.gather(*(
            lifecycle.process(market_factory(), match, edge_for(), None, now)
            for _ in range(5)
        ))

        rows = await store.get_signals_for_event("evt-1")
        assert len([s for s in rows if s.status == SignalStatus.ACTIVE]) == 1


class TestBulkWriteFailures:
    """Tests for per-row write failures in the bulk passes."""

    @pytest.fixture
    def failing_store(self):
        return FailingSignalWriteStore()

    @pytest.mark.asyncio
    async def test_expire_write_failure_counted(self, failing_store, market_factory, match, now):
        """Test that a failed expiry write is counted and leaves the signal active."""
        lifecycle = SignalLifecycleManager(failing_store, SignalSettings())
        market = market_factory(start=now + timedelta(hours=1))
        await lifecycle.process(market, match, edge_for(), None, now)

        failing_store.failing = True
        expired = await lifecycle.expire_started(now + timedelta(hours=2))

        assert expired == []
        assert lifecycle.write_failures == 1
        assert len(await failing_store.list_active_signals()) == 1

    @pytest.mark.asyncio
    async def test_refresh_write_failure_counted(self, failing_store, market_factory, match, now):
        """Test that a failed refresh write is counted instead of raised."""
        lifecycle = SignalLifecycleManager(failing_store, SignalSettings())
        market = market_factory()
        await lifecycle.process(market, match, edge_for(), None, now)

        failing_store.failing = True
        fresh = market_factory(yes_ask=0.58)

        assert await lifecycle.refresh_active({fresh.event_key: fresh}, now) == 0
        assert lifecycle.write_failures == 1
