"""
Durable-store interface.

Holds MonitoredMarket, SharpBookSnapshot and SignalOpportunity records.
Writes are short per-row upserts keyed by event key / signal id.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from sharpedge.models.schemas import (
    MonitoredMarket,
    SharpBookSnapshot,
    SignalOpportunity,
    SignalStatus,
)


class SignalStore(ABC):
    """Abstract store used by the poll cycle and the lifecycle manager."""

    async def open(self) -> None:
        """Acquire resources (connections, schema)."""

    async def close(self) -> None:
        """Release resources."""

    # -------------------------------------------------------------------------
    # Monitored markets
    # -------------------------------------------------------------------------

    @abstractmethod
    async def list_monitored_markets(self, include_expired: bool = False) -> list[MonitoredMarket]:
        """Markets the engine should evaluate this poll."""

    @abstractmethod
    async def upsert_monitored_market(self, market: MonitoredMarket) -> None:
        """Insert or replace by event key."""

    # -------------------------------------------------------------------------
    # Sharp-book snapshots
    # -------------------------------------------------------------------------

    @abstractmethod
    async def add_snapshots(self, snapshots: list[SharpBookSnapshot]) -> None:
        """Append snapshots."""

    @abstractmethod
    async def get_snapshots(
        self,
        event_key: str,
        outcome: str,
        since: datetime,
    ) -> list[SharpBookSnapshot]:
        """Snapshots for (event, outcome) captured at or after `since`, oldest first."""

    @abstractmethod
    async def prune_snapshots(self, before: datetime) -> int:
        """Delete snapshots captured before `before`; returns rows removed."""

    # -------------------------------------------------------------------------
    # Signals
    # -------------------------------------------------------------------------

    @abstractmethod
    async def get_signal(self, signal_id: str) -> Optional[SignalOpportunity]:
        """Look up one signal."""

    @abstractmethod
    async def get_signals_for_event(self, event_key: str) -> list[SignalOpportunity]:
        """Every signal (any status) for an event."""

    @abstractmethod
    async def upsert_signal(self, signal: SignalOpportunity) -> None:
        """Insert or replace by signal id."""

    @abstractmethod
    async def list_signals(self, status: Optional[SignalStatus] = None) -> list[SignalOpportunity]:
        """All signals, optionally filtered by status."""

    async def list_active_signals(self) -> list[SignalOpportunity]:
        return await self.list_signals(SignalStatus.ACTIVE)
