"""
Data models for the signal engine.

Defines the core data structures for:
- Bookmaker games, markets and quotes (The Odds API)
- Monitored prediction markets (Polymarket)
- Match, probability, movement and edge results
- Signal opportunities and the per-run summary
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel


def utc_now() -> datetime:
    """Timezone-aware current time."""
    return datetime.now(timezone.utc)


def is_valid_number(value) -> bool:
    """True for finite int/float values (bools excluded)."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


class MarketType(str, Enum):
    """Bookmaker market keys."""
    H2H = "h2h"
    TOTALS = "totals"
    SPREADS = "spreads"


class MonitoringStatus(str, Enum):
    """Prediction-market monitoring status."""
    WATCHING = "watching"
    TRIGGERED = "triggered"
    EXPIRED = "expired"


class MatchMethod(str, Enum):
    """How an outcome was resolved by the event matcher."""
    EXACT = "exact"
    TOKEN_OVERLAP = "token-overlap"
    NICKNAME = "nickname"
    FUZZY = "fuzzy"
    AI = "ai"


class MovementDirection(str, Enum):
    """Direction of a sharp-book move in implied probability."""
    SHORTENING = "shortening"  # Implied probability rising
    DRIFTING = "drifting"      # Implied probability falling


class Side(str, Enum):
    """Prediction-market side."""
    YES = "YES"
    NO = "NO"


class SignalTier(str, Enum):
    """Coarse signal quality bucket."""
    ELITE = "elite"
    STRONG = "strong"
    STATIC = "static"


class TriggerReason(str, Enum):
    """What qualified the signal."""
    EDGE = "edge"
    MOVEMENT = "movement"
    BOTH = "both"


class SignalStatus(str, Enum):
    """Signal lifecycle states."""
    ACTIVE = "active"
    EXECUTED = "executed"
    DISMISSED = "dismissed"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self in (SignalStatus.EXECUTED, SignalStatus.DISMISSED)


class Urgency(str, Enum):
    """Urgency derived from time to event start."""
    CRITICAL = "critical"
    HIGH = "high"
    NORMAL = "normal"


# =============================================================================
# Bookmaker data
# =============================================================================

@dataclass
class BookmakerQuote:
    """One bookmaker's decimal price for one outcome."""
    bookmaker: str
    outcome: str
    price: float
    market_type: str = MarketType.H2H.value
    is_sharp: bool = False
    point: Optional[float] = None
    last_update: Optional[datetime] = None

    @property
    def implied_prob(self) -> Optional[float]:
        """Raw implied probability (includes vig)."""
        if not is_valid_number(self.price) or self.price <= 1.0:
            return None
        return 1.0 / self.price


@dataclass
class BookmakerMarket:
    """A bookmaker's quotes for one market of one game."""
    key: str
    outcomes: list[BookmakerQuote] = field(default_factory=list)


@dataclass
class Bookmaker:
    """A bookmaker and the markets it offers for a game."""
    key: str
    title: str = ""
    is_sharp: bool = False
    markets: list[BookmakerMarket] = field(default_factory=list)

    def market(self, key: str) -> Optional[BookmakerMarket]:
        for market in self.markets:
            if market.key == key:
                return market
        return None


@dataclass
class BookmakerGame:
    """A single game as listed by the odds provider."""
    game_id: str
    sport_key: str
    home_team: str
    away_team: str
    commence_time: datetime
    bookmakers: list[Bookmaker] = field(default_factory=list)

    @property
    def display_name(self) -> str:
        return f"{self.home_team} vs {self.away_team}"

    def reference_outcomes(self, market_key: str) -> list[str]:
        """Outcome names from the first bookmaker quoting the market."""
        for book in self.bookmakers:
            market = book.market(market_key)
            if market and len(market.outcomes) >= 2:
                return [q.outcome for q in market.outcomes]
        return []


# =============================================================================
# Prediction market data
# =============================================================================

@dataclass
class MonitoredMarket:
    """A Polymarket yes/no token pair tracked for one real-world event."""
    event_key: str
    title: str
    sport: str
    start_time: datetime
    yes_token_id: str
    no_token_id: str
    question: str = ""
    market_type: str = MarketType.H2H.value

    yes_bid: Optional[float] = None
    yes_ask: Optional[float] = None
    no_bid: Optional[float] = None
    no_ask: Optional[float] = None
    spread: Optional[float] = None
    volume_24h: float = 0.0

    status: MonitoringStatus = MonitoringStatus.WATCHING
    source: str = "discovery"
    last_price_refresh: Optional[datetime] = None

    def price_age_seconds(self, now: datetime) -> Optional[float]:
        if self.last_price_refresh is None:
            return None
        return (now - self.last_price_refresh).total_seconds()


@dataclass
class TokenPrice:
    """Best bid/ask and spread for one CLOB token."""
    token_id: str
    best_bid: Optional[float] = None
    best_ask: Optional[float] = None
    spread: Optional[float] = None


@dataclass
class SharpBookSnapshot:
    """Persisted per-book implied probability for the movement window."""
    event_key: str
    outcome: str
    bookmaker: str
    implied_prob: float
    captured_at: datetime


# =============================================================================
# Engine results
# =============================================================================

@dataclass
class OutcomeMatch:
    """One resolved outcome of a match."""
    index: int
    name: str
    method: MatchMethod
    score: float


@dataclass
class MatchResult:
    """Event matcher output: a game plus both resolved outcomes."""
    game: BookmakerGame
    market_key: str
    yes: OutcomeMatch
    no: OutcomeMatch

    def __post_init__(self):
        if self.yes.index == self.no.index:
            raise ValueError("yes and no outcome indices must differ")

    @property
    def method(self) -> MatchMethod:
        return self.yes.method


@dataclass
class FairProbability:
    """De-vigged, sharp-weighted probability for one outcome."""
    outcome: str
    fair_prob: float
    complement_prob: float
    raw_consensus: float
    books_used: int
    sharp_books_used: int


@dataclass
class MovementResult:
    """Outcome of the movement detector for one (event, outcome)."""
    triggered: bool = False
    velocity: float = 0.0
    books_confirming: int = 0
    direction: Optional[MovementDirection] = None
    book_deltas: dict[str, float] = field(default_factory=dict)

    @property
    def confirmed(self) -> bool:
        return self.triggered and self.books_confirming >= 2


@dataclass
class EdgeResult:
    """Edge and cost breakdown for the recommended side."""
    side: Side
    outcome: str
    fair_prob: float
    market_price: float
    raw_edge: float
    net_edge: float
    platform_fee: float
    spread_cost: float
    slippage: float
    capped: bool = False
    movement_override: bool = False


@dataclass
class SignalOpportunity:
    """The persisted unit of work."""
    event_key: str
    event_title: str
    sport: str
    outcome: str
    side: Side
    market_price: float
    fair_prob: float
    raw_edge: float
    net_edge: float
    confidence: int
    urgency: Urgency
    tier: SignalTier
    trigger: TriggerReason
    event_start: datetime
    status: SignalStatus = SignalStatus.ACTIVE
    stake_fraction: float = 0.0
    volume_24h: float = 0.0
    match_method: str = ""
    factors: dict = field(default_factory=dict)
    signal_id: str = field(default_factory=lambda: str(uuid4()))
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    price_refreshed_at: Optional[datetime] = None

    def to_log(self) -> dict:
        """Convert to loggable dict."""
        return {
            "signal_id": self.signal_id,
            "title": self.event_title,
            "outcome": self.outcome,
            "side": self.side.value,
            "tier": self.tier.value,
            "trigger": self.trigger.value,
            "raw_edge": round(self.raw_edge, 4),
            "net_edge": round(self.net_edge, 4),
            "confidence": self.confidence,
            "status": self.status.value,
        }


class RunSummary(BaseModel):
    """Structured result of one poll cycle."""
    events_polled: int = 0
    events_matched: int = 0
    edges_found: int = 0
    movement_confirmed: int = 0
    signals_created: int = 0
    signals_updated: int = 0
    signals_expired: int = 0
    alerts_sent: int = 0
    errors: int = 0
    duration_ms: int = 0


# =============================================================================
# Utility Functions
# =============================================================================

def calculate_kelly_fraction(
    win_prob: float,
    price: float,
    fraction: float = 0.25,  # Quarter Kelly
) -> float:
    """
    Kelly stake for a binary contract bought at `price` paying 1.

    Returns:
        Recommended stake as a fraction of bankroll (never negative)
    """
    if not (is_valid_number(win_prob) and is_valid_number(price)):
        return 0.0
    if price <= 0 or price >= 1:
        return 0.0
    # Decimal odds of a contract at `price` are 1/price, so b = (1 - price) / price
    b = (1 - price) / price
    q = 1 - win_prob
    kelly = (b * win_prob - q) / b
    return max(0.0, kelly * fraction)
