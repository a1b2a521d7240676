"""Tests for the store implementations (in-memory and SQLite)."""

from datetime import timedelta

import pytest
import pytest_asyncio

from sharpedge.models.schemas import (
    MonitoringStatus,
    SharpBookSnapshot,
    Side,
    SignalOpportunity,
    SignalStatus,
    SignalTier,
    TriggerReason,
    Urgency,
)
from sharpedge.storage.memory import InMemoryStore
from sharpedge.storage.sqlite import SqliteStore


@pytest_asyncio.fixture(params=["memory", "sqlite"])
async def any_store(request):
    """Each test runs against both store implementations."""
    store = InMemoryStore() if request.param == "memory" else SqliteStore(":memory:")
    await store.open()
    yield store
    await store.close()


def make_signal(now, outcome="Boston Celtics", status=SignalStatus.ACTIVE, event_key="evt-1"):
    return SignalOpportunity(
        event_key=event_key,
        event_title="Celtics vs Heat",
        sport="nba",
        outcome=outcome,
        side=Side.YES,
        market_price=0.55,
        fair_prob=0.61,
        raw_edge=0.06,
        net_edge=0.0524,
        confidence=76,
        urgency=Urgency.HIGH,
        tier=SignalTier.STATIC,
        trigger=TriggerReason.EDGE,
        event_start=now + timedelta(hours=3),
        status=status,
        factors={"spread_cost": 0.005, "book_deltas": {"pinnacle": 0.04}},
        created_at=now,
        updated_at=now,
        price_refreshed_at=now,
    )


class TestStores:
    """Behaviour shared by every SignalStore."""

    @pytest.mark.asyncio
    async def test_market_upsert_by_event_key(self, any_store, market_factory, now):
        market = market_factory()
        await any_store.upsert_monitored_market(market)

        market.yes_ask = 0.58
        market.status = MonitoringStatus.TRIGGERED
        await any_store.upsert_monitored_market(market)

        markets = await any_store.list_monitored_markets()
        assert len(markets) == 1
        assert markets[0].yes_ask == 0.58
        assert markets[0].status == MonitoringStatus.TRIGGERED
        assert markets[0].start_time == now + timedelta(hours=3)
        assert markets[0].last_price_refresh == now

    @pytest.mark.asyncio
    async def test_expired_markets_hidden(self, any_store, market_factory):
        market = market_factory()
        market.status = MonitoringStatus.EXPIRED
        await any_store.upsert_monitored_market(market)

        assert await any_store.list_monitored_markets() == []
        assert len(await any_store.list_monitored_markets(include_expired=True)) == 1

    @pytest.mark.asyncio
    async def test_snapshot_range_and_prune(self, any_store, now):
        """Test that snapshots are filtered by time and pruned by age."""
        snapshots = [
            SharpBookSnapshot("evt-1", "Boston Celtics", "pinnacle", 0.20 + i / 100,
                              now - timedelta(minutes=40 - 10 * i))
            for i in range(5)
        ]
        snapshots.append(SharpBookSnapshot("evt-1", "Miami Heat", "pinnacle", 0.8, now))
        await any_store.add_snapshots(list(reversed(snapshots)))

        recent = await any_store.get_snapshots("evt-1", "Boston Celtics", now - timedelta(minutes=30))
        assert [s.captured_at for s in recent] == [
            now - timedelta(minutes=30),
            now - timedelta(minutes=20),
            now - timedelta(minutes=10),
            now,
        ]

        removed = await any_store.prune_snapshots(now - timedelta(minutes=30))
        assert removed == 1
        everything = await any_store.get_snapshots("evt-1", "Boston Celtics", now - timedelta(days=1))
        assert len(everything) == 4

    @pytest.mark.asyncio
    async def test_signal_round_trip(self, any_store, now):
        signal = make_signal(now)
        await any_store.upsert_signal(signal)

        stored = await any_store.get_signal(signal.signal_id)

        assert stored.side == Side.YES
        assert stored.tier == SignalTier.STATIC
        assert stored.trigger == TriggerReason.EDGE
        assert stored.factors["book_deltas"] == {"pinnacle": 0.04}
        assert stored.event_start == now + timedelta(hours=3)
        assert await any_store.get_signal("missing") is None

    @pytest.mark.asyncio
    async def test_signal_upsert_and_status_filter(self, any_store, now):
        first = make_signal(now)
        second = make_signal(now, outcome="Miami Heat")
        other = make_signal(now, event_key="evt-2")
        for signal in (first, second, other):
            await any_store.upsert_signal(signal)

        first.status = SignalStatus.EXPIRED
        await any_store.upsert_signal(first)

        assert len(await any_store.get_signals_for_event("evt-1")) == 2
        active = await any_store.list_active_signals()
        assert {s.signal_id for s in active} == {second.signal_id, other.signal_id}
        expired = await any_store.list_signals(SignalStatus.EXPIRED)
        assert [s.signal_id for s in expired] == [first.signal_id]


class TestSqliteStore:
    """SQLite-specific behaviour."""

    @pytest.mark.asyncio
    async def test_requires_open(self):
        store = SqliteStore(":memory:")
        with pytest.raises(RuntimeError):
            await store.list_signals()

    @pytest.mark.asyncio
    async def test_persists_to_file(self, tmp_path, now):
        path = str(tmp_path / "data" / "signals.db")
        signal = make_signal(now)

        store = SqliteStore(path)
        await store.open()
        await store.upsert_signal(signal)
        await store.close()

        reopened = SqliteStore(path)
        await reopened.open()
        try:
            stored = await reopened.get_signal(signal.signal_id)
        finally:
            await reopened.close()
        assert stored.net_edge == pytest.approx(0.0524)
