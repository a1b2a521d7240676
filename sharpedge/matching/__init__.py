"""Event matching across bookmaker and prediction-market naming schemes."""

from sharpedge.matching.matcher import EventMatcher, MatchRequest
from sharpedge.matching.resolver import TeamResolution, TeamResolver

__all__ = [
    "EventMatcher",
    "MatchRequest",
    "TeamResolution",
    "TeamResolver",
]
