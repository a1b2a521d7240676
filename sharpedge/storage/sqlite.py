"""
aiosqlite-backed store.

Timestamps are stored as UTC ISO-8601 strings with fixed microsecond
precision so range queries can compare them as text.
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import aiosqlite
import orjson
import structlog

from sharpedge.models.schemas import (
    MonitoredMarket,
    MonitoringStatus,
    SharpBookSnapshot,
    Side,
    SignalOpportunity,
    SignalStatus,
    SignalTier,
    TriggerReason,
    Urgency,
)
from sharpedge.storage.base import SignalStore

logger = structlog.get_logger()


SCHEMA = """
CREATE TABLE IF NOT EXISTS monitored_markets (
    event_key TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    question TEXT NOT NULL DEFAULT '',
    sport TEXT NOT NULL,
    market_type TEXT NOT NULL,
    start_time TEXT NOT NULL,
    yes_token_id TEXT NOT NULL,
    no_token_id TEXT NOT NULL,
    yes_bid REAL,
    yes_ask REAL,
    no_bid REAL,
    no_ask REAL,
    spread REAL,
    volume_24h REAL NOT NULL DEFAULT 0,
    status TEXT NOT NULL,
    source TEXT NOT NULL,
    last_price_refresh TEXT
);

CREATE TABLE IF NOT EXISTS sharp_book_snapshots (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    event_key TEXT NOT NULL,
    outcome TEXT NOT NULL,
    bookmaker TEXT NOT NULL,
    implied_prob REAL NOT NULL,
    captured_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_snapshots_event_outcome
    ON sharp_book_snapshots (event_key, outcome, captured_at);

CREATE TABLE IF NOT EXISTS signal_opportunities (
    signal_id TEXT PRIMARY KEY,
    event_key TEXT NOT NULL,
    event_title TEXT NOT NULL,
    sport TEXT NOT NULL,
    outcome TEXT NOT NULL,
    side TEXT NOT NULL,
    market_price REAL NOT NULL,
    fair_prob REAL NOT NULL,
    raw_edge REAL NOT NULL,
    net_edge REAL NOT NULL,
    confidence INTEGER NOT NULL,
    urgency TEXT NOT NULL,
    tier TEXT NOT NULL,
    trigger_reason TEXT NOT NULL,
    status TEXT NOT NULL,
    stake_fraction REAL NOT NULL DEFAULT 0,
    volume_24h REAL NOT NULL DEFAULT 0,
    match_method TEXT NOT NULL DEFAULT '',
    factors TEXT NOT NULL DEFAULT '{}',
    event_start TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    price_refreshed_at TEXT
);

CREATE INDEX IF NOT EXISTS idx_signals_event ON signal_opportunities (event_key);
CREATE INDEX IF NOT EXISTS idx_signals_status ON signal_opportunities (status);
"""

MARKET_COLUMNS = (
    "event_key", "title", "question", "sport", "market_type", "start_time",
    "yes_token_id", "no_token_id", "yes_bid", "yes_ask", "no_bid", "no_ask",
    "spread", "volume_24h", "status", "source", "last_price_refresh",
)

SIGNAL_COLUMNS = (
    "signal_id", "event_key", "event_title", "sport", "outcome", "side",
    "market_price", "fair_prob", "raw_edge", "net_edge", "confidence",
    "urgency", "tier", "trigger_reason", "status", "stake_fraction", "volume_24h",
    "match_method", "factors", "event_start", "created_at", "updated_at",
    "price_refreshed_at",
)


def _ts(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _dt(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromisoformat(value)


def _upsert_sql(table: str, columns: tuple[str, ...], key: str) -> str:
    placeholders = ", ".join("?" for _ in columns)
    updates = ", ".join(f"{c} = excluded.{c}" for c in columns if c != key)
    return (
        f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders}) "
        f"ON CONFLICT({key}) DO UPDATE SET {updates}"
    )


class SqliteStore(SignalStore):
    """
    SignalStore on a local SQLite file (or ":memory:").

    Usage:
        store = SqliteStore(settings.sqlite_path)
        await store.open()
        ...
        await store.close()
    """

    def __init__(self, path: str):
        self.path = path
        self._db: Optional[aiosqlite.Connection] = None
        self.logger = logger.bind(component="sqlite_store")

    async def open(self) -> None:
        if self._db is not None:
            return
        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        self._db = await aiosqlite.connect(self.path)
        self._db.row_factory = aiosqlite.Row
        await self._db.executescript(SCHEMA)
        await self._db.commit()
        self.logger.debug("Opened store", path=self.path)

    async def close(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None

    @property
    def db(self) -> aiosqlite.Connection:
        if self._db is None:
            raise RuntimeError("SqliteStore is not open")
        return self._db

    async def _fetch(self, sql: str, params: tuple[Any, ...] = ()) -> list[aiosqlite.Row]:
        async with self.db.execute(sql, params) as cursor:
            return list(await cursor.fetchall())

    # -------------------------------------------------------------------------
    # Monitored markets
    # -------------------------------------------------------------------------

    async def list_monitored_markets(self, include_expired: bool = False) -> list[MonitoredMarket]:
        if include_expired:
            rows = await self._fetch("SELECT * FROM monitored_markets")
        else:
            rows = await self._fetch(
                "SELECT * FROM monitored_markets WHERE status != ?",
                (MonitoringStatus.EXPIRED.value,),
            )
        return [self._row_to_market(row) for row in rows]

    async def upsert_monitored_market(self, market: MonitoredMarket) -> None:
        values = (
            market.event_key, market.title, market.question, market.sport,
            market.market_type, _ts(market.start_time), market.yes_token_id,
            market.no_token_id, market.yes_bid, market.yes_ask, market.no_bid,
            market.no_ask, market.spread, market.volume_24h, market.status.value,
            market.source, _ts(market.last_price_refresh),
        )
        await self.db.execute(_upsert_sql("monitored_markets", MARKET_COLUMNS, "event_key"), values)
        await self.db.commit()

    def _row_to_market(self, row: aiosqlite.Row) -> MonitoredMarket:
        return MonitoredMarket(
            event_key=row["event_key"],
            title=row["title"],
            question=row["question"],
            sport=row["sport"],
            market_type=row["market_type"],
            start_time=_dt(row["start_time"]),
            yes_token_id=row["yes_token_id"],
            no_token_id=row["no_token_id"],
            yes_bid=row["yes_bid"],
            yes_ask=row["yes_ask"],
            no_bid=row["no_bid"],
            no_ask=row["no_ask"],
            spread=row["spread"],
            volume_24h=row["volume_24h"],
            status=MonitoringStatus(row["status"]),
            source=row["source"],
            last_price_refresh=_dt(row["last_price_refresh"]),
        )

    # -------------------------------------------------------------------------
    # Snapshots
    # -------------------------------------------------------------------------

    async def add_snapshots(self, snapshots: list[SharpBookSnapshot]) -> None:
        if not snapshots:
            return
        await self.db.executemany(
            "INSERT INTO sharp_book_snapshots "
            "(event_key, outcome, bookmaker, implied_prob, captured_at) VALUES (?, ?, ?, ?, ?)",
            [
                (s.event_key, s.outcome, s.bookmaker, s.implied_prob, _ts(s.captured_at))
                for s in snapshots
            ],
        )
        await self.db.commit()

    async def get_snapshots(
        self,
        event_key: str,
        outcome: str,
        since: datetime,
    ) -> list[SharpBookSnapshot]:
        rows = await self._fetch(
            "SELECT event_key, outcome, bookmaker, implied_prob, captured_at "
            "FROM sharp_book_snapshots "
            "WHERE event_key = ? AND outcome = ? AND captured_at >= ? "
            "ORDER BY captured_at",
            (event_key, outcome, _ts(since)),
        )
        return [
            SharpBookSnapshot(
                event_key=row["event_key"],
                outcome=row["outcome"],
                bookmaker=row["bookmaker"],
                implied_prob=row["implied_prob"],
                captured_at=_dt(row["captured_at"]),
            )
            for row in rows
        ]

    async def prune_snapshots(self, before: datetime) -> int:
        cursor = await self.db.execute(
            "DELETE FROM sharp_book_snapshots WHERE captured_at < ?",
            (_ts(before),),
        )
        await self.db.commit()
        return cursor.rowcount

    # -------------------------------------------------------------------------
    # Signals
    # -------------------------------------------------------------------------

    async def get_signal(self, signal_id: str) -> Optional[SignalOpportunity]:
        rows = await self._fetch(
            "SELECT * FROM signal_opportunities WHERE signal_id = ?",
            (signal_id,),
        )
        return self._row_to_signal(rows[0]) if rows else None

    async def get_signals_for_event(self, event_key: str) -> list[SignalOpportunity]:
        rows = await self._fetch(
            "SELECT * FROM signal_opportunities WHERE event_key = ? ORDER BY created_at",
            (event_key,),
        )
        return [self._row_to_signal(row) for row in rows]

    async def upsert_signal(self, signal: SignalOpportunity) -> None:
        values = (
            signal.signal_id, signal.event_key, signal.event_title, signal.sport,
            signal.outcome, signal.side.value, signal.market_price, signal.fair_prob,
            signal.raw_edge, signal.net_edge, signal.confidence, signal.urgency.value,
            signal.tier.value, signal.trigger.value, signal.status.value,
            signal.stake_fraction, signal.volume_24h, signal.match_method,
            orjson.dumps(signal.factors).decode(), _ts(signal.event_start),
            _ts(signal.created_at), _ts(signal.updated_at), _ts(signal.price_refreshed_at),
        )
        await self.db.execute(_upsert_sql("signal_opportunities", SIGNAL_COLUMNS, "signal_id"), values)
        await self.db.commit()

    async def list_signals(self, status: Optional[SignalStatus] = None) -> list[SignalOpportunity]:
        if status is None:
            rows = await self._fetch("SELECT * FROM signal_opportunities ORDER BY created_at")
        else:
            rows = await self._fetch(
                "SELECT * FROM signal_opportunities WHERE status = ? ORDER BY created_at",
                (status.value,),
            )
        return [self._row_to_signal(row) for row in rows]

    def _row_to_signal(self, row: aiosqlite.Row) -> SignalOpportunity:
        return SignalOpportunity(
            signal_id=row["signal_id"],
            event_key=row["event_key"],
            event_title=row["event_title"],
            sport=row["sport"],
            outcome=row["outcome"],
            side=Side(row["side"]),
            market_price=row["market_price"],
            fair_prob=row["fair_prob"],
            raw_edge=row["raw_edge"],
            net_edge=row["net_edge"],
            confidence=row["confidence"],
            urgency=Urgency(row["urgency"]),
            tier=SignalTier(row["tier"]),
            trigger=TriggerReason(row["trigger_reason"]),
            status=SignalStatus(row["status"]),
            stake_fraction=row["stake_fraction"],
            volume_24h=row["volume_24h"],
            match_method=row["match_method"],
            factors=orjson.loads(row["factors"]),
            event_start=_dt(row["event_start"]),
            created_at=_dt(row["created_at"]),
            updated_at=_dt(row["updated_at"]),
            price_refreshed_at=_dt(row["price_refreshed_at"]),
        )
