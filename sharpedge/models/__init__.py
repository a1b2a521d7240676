"""Data models and sport rosters."""

from sharpedge.models.schemas import (
    Bookmaker,
    BookmakerGame,
    BookmakerMarket,
    BookmakerQuote,
    EdgeResult,
    FairProbability,
    MarketType,
    MatchMethod,
    MatchResult,
    MonitoredMarket,
    MonitoringStatus,
    MovementDirection,
    MovementResult,
    OutcomeMatch,
    RunSummary,
    SharpBookSnapshot,
    Side,
    SignalOpportunity,
    SignalStatus,
    SignalTier,
    TokenPrice,
    TriggerReason,
    Urgency,
)
from sharpedge.models.teams import SPORTS, SHARP_BOOKS, SportProfile, get_sport

__all__ = [
    "Bookmaker",
    "BookmakerGame",
    "BookmakerMarket",
    "BookmakerQuote",
    "EdgeResult",
    "FairProbability",
    "MarketType",
    "MatchMethod",
    "MatchResult",
    "MonitoredMarket",
    "MonitoringStatus",
    "MovementDirection",
    "MovementResult",
    "OutcomeMatch",
    "RunSummary",
    "SharpBookSnapshot",
    "Side",
    "SignalOpportunity",
    "SignalStatus",
    "SignalTier",
    "TokenPrice",
    "TriggerReason",
    "Urgency",
    "SPORTS",
    "SHARP_BOOKS",
    "SportProfile",
    "get_sport",
]
