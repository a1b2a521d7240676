"""In-process store for tests and dry runs."""

from copy import deepcopy
from datetime import datetime
from typing import Optional

from sharpedge.models.schemas import (
    MonitoredMarket,
    MonitoringStatus,
    SharpBookSnapshot,
    SignalOpportunity,
    SignalStatus,
)
from sharpedge.storage.base import SignalStore


class InMemoryStore(SignalStore):
    """
    Dict-backed SignalStore.

    Records are copied on the way in and out so callers can't mutate
    stored state without an explicit upsert.
    """

    def __init__(self):
        self._markets: dict[str, MonitoredMarket] = {}
        self._snapshots: list[SharpBookSnapshot] = []
        self._signals: dict[str, SignalOpportunity] = {}

    async def list_monitored_markets(self, include_expired: bool = False) -> list[MonitoredMarket]:
        return [
            deepcopy(m) for m in self._markets.values()
            if include_expired or m.status != MonitoringStatus.EXPIRED
        ]

    async def upsert_monitored_market(self, market: MonitoredMarket) -> None:
        self._markets[market.event_key] = deepcopy(market)

    async def add_snapshots(self, snapshots: list[SharpBookSnapshot]) -> None:
        self._snapshots.extend(deepcopy(s) for s in snapshots)

    async def get_snapshots(
        self,
        event_key: str,
        outcome: str,
        since: datetime,
    ) -> list[SharpBookSnapshot]:
        rows = [
            deepcopy(s) for s in self._snapshots
            if s.event_key == event_key and s.outcome == outcome and s.captured_at >= since
        ]
        rows.sort(key=lambda s: s.captured_at)
        return rows

    async def prune_snapshots(self, before: datetime) -> int:
        kept = [s for s in self._snapshots if s.captured_at >= before]
        removed = len(self._snapshots) - len(kept)
        self._snapshots = kept
        return removed

    async def get_signal(self, signal_id: str) -> Optional[SignalOpportunity]:
        signal = self._signals.get(signal_id)
        return deepcopy(signal) if signal else None

    async def get_signals_for_event(self, event_key: str) -> list[SignalOpportunity]:
        return [deepcopy(s) for s in self._signals.values() if s.event_key == event_key]

    async def upsert_signal(self, signal: SignalOpportunity) -> None:
        self._signals[signal.signal_id] = deepcopy(signal)

    async def list_signals(self, status: Optional[SignalStatus] = None) -> list[SignalOpportunity]:
        return [
            deepcopy(s) for s in self._signals.values()
            if status is None or s.status == status
        ]
