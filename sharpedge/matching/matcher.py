"""
Event Matcher.

Resolves a Polymarket event title to a bookmaker game and both outcome
indices. Strategies are tried in order, first success wins:

1. Structural   - parse "A vs B", compare normalised names to outcomes
2. Nickname     - expand abbreviations/nicknames/cities via the roster
3. Fuzzy        - best "home vs away" similarity above the floor
4. AI           - budgeted text-resolution call (see resolver.py)

Every candidate result must then pass the nickname guard: both final
team labels have to be vouched for by the event text itself.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Optional

import structlog

from config.settings import MatchingSettings
from sharpedge.matching.normalize import (
    build_alias_map,
    contains_term,
    dice_similarity,
    guard_terms,
    is_draw_outcome,
    normalize_name,
    resolve_alias,
    split_teams,
    team_named_in,
    title_similarity,
)
from sharpedge.matching.resolver import TeamResolver
from sharpedge.models.schemas import (
    BookmakerGame,
    MarketType,
    MatchMethod,
    MatchResult,
    MonitoredMarket,
    OutcomeMatch,
)
from sharpedge.models.teams import SportProfile, get_sport

logger = structlog.get_logger()


@dataclass
class MatchRequest:
    """What the matcher needs to know about a monitored market."""
    title: str
    question: str
    sport: str
    market_type: str
    start_time: datetime

    @classmethod
    def from_market(cls, market: MonitoredMarket) -> "MatchRequest":
        return cls(
            title=market.title,
            question=market.question,
            sport=market.sport,
            market_type=market.market_type,
            start_time=market.start_time,
        )

    @property
    def event_text(self) -> str:
        if self.question and self.question != self.title:
            return f"{self.title} {self.question}"
        return self.title

    @property
    def profile(self) -> Optional[SportProfile]:
        return get_sport(self.sport)


Strategy = Callable[[MatchRequest, list[BookmakerGame]], Awaitable[Optional[MatchResult]]]
KeyFn = Callable[[str], str]


class EventMatcher:
    """
    Multi-strategy event matcher.

    Usage:
        matcher = EventMatcher(settings.matching, resolver)
        result = await matcher.match(MatchRequest.from_market(market), games)
    """

    def __init__(
        self,
        config: MatchingSettings,
        resolver: Optional[TeamResolver] = None,
    ):
        self.config = config
        self.resolver = resolver
        self.logger = logger.bind(component="event_matcher")

        self._alias_maps: dict[str, dict[str, str]] = {}

        self.strategies: list[Strategy] = [
            self._match_structural,
            self._match_nickname,
            self._match_fuzzy,
            self._match_ai,
        ]

    async def match(
        self,
        request: MatchRequest,
        games: list[BookmakerGame],
    ) -> Optional[MatchResult]:
        """
        Match a market to a game.

        Returns:
            MatchResult with distinct yes/no indices, or None (fail closed)
        """
        candidates = self._eligible_games(request, games)
        if not candidates:
            self.logger.debug("No games within start window", title=request.title)
            return None

        for strategy in self.strategies:
            result = await strategy(request, candidates)
            if result is None:
                continue

            if not self._passes_nickname_guard(request, result):
                self.logger.info(
                    "🛡️ Nickname guard rejected match",
                    title=request.title,
                    game=result.game.display_name,
                    method=result.method.value,
                )
                continue

            self.logger.debug(
                "Matched event",
                title=request.title,
                game=result.game.display_name,
                method=result.method.value,
                yes=result.yes.name,
                no=result.no.name,
            )
            return result

        return None

    # =========================================================================
    # Strategies
    # =========================================================================

    async def _match_structural(
        self,
        request: MatchRequest,
        games: list[BookmakerGame],
    ) -> Optional[MatchResult]:
        sides = split_teams(request.title)
        if not sides:
            return None
        for game in games:
            result = self._pair_sides(request, game, sides[0], sides[1], normalize_name)
            if result:
                return result
        return None

    async def _match_nickname(
        self,
        request: MatchRequest,
        games: list[BookmakerGame],
    ) -> Optional[MatchResult]:
        profile = request.profile
        sides = split_teams(request.title)
        if not sides or profile is None:
            return None

        alias_map = self._alias_map(profile)
        if not any(resolve_alias(side, alias_map) for side in sides):
            return None

        key_fn = self._canonical_key(alias_map)
        for game in games:
            result = self._pair_sides(
                request, game, sides[0], sides[1], key_fn,
                method=MatchMethod.NICKNAME, score=1.0,
            )
            if result:
                return result
        return None

    async def _match_fuzzy(
        self,
        request: MatchRequest,
        games: list[BookmakerGame],
    ) -> Optional[MatchResult]:
        best_game: Optional[BookmakerGame] = None
        best_score = 0.0
        for game in games:
            score = title_similarity(request.title, game.display_name)
            if score > best_score:
                best_game, best_score = game, score

        if best_game is None or best_score < self.config.fuzzy_similarity_floor:
            return None

        profile = request.profile
        home, away = best_game.home_team, best_game.away_team
        if not (
            self._named_in(request.event_text, home, profile)
            or self._named_in(request.event_text, away, profile)
        ):
            return None

        side_a, side_b = self._order_by_title(request.title, home, away, profile)
        key_fn = self._key_for(profile)
        return self._pair_sides(
            request, best_game, side_a, side_b, key_fn,
            method=MatchMethod.FUZZY, score=round(best_score, 4),
        )

    async def _match_ai(
        self,
        request: MatchRequest,
        games: list[BookmakerGame],
    ) -> Optional[MatchResult]:
        if self.resolver is None:
            return None

        resolution = await self.resolver.resolve(request.title, request.sport)
        if resolution is None:
            return None

        profile = request.profile
        if not (
            self._named_in(request.event_text, resolution.team_a, profile)
            or self._named_in(request.event_text, resolution.team_b, profile)
        ):
            self.logger.debug(
                "AI answer not grounded in title",
                title=request.title,
                team_a=resolution.team_a,
                team_b=resolution.team_b,
            )
            self.resolver.remember(request.title, request.sport, None)
            return None

        key_fn = self._key_for(profile)
        for game in games:
            result = self._pair_sides(
                request, game, resolution.team_a, resolution.team_b, key_fn,
                method=MatchMethod.AI, score=resolution.confidence,
            )
            if result:
                return result
        return None

    # =========================================================================
    # Helpers
    # =========================================================================

    def _eligible_games(
        self,
        request: MatchRequest,
        games: list[BookmakerGame],
    ) -> list[BookmakerGame]:
        """Games within the start-time window, closest first."""
        max_diff = self.config.max_start_diff_hours * 3600
        eligible = []
        for game in games:
            diff = abs((game.commence_time - request.start_time).total_seconds())
            if diff <= max_diff:
                eligible.append((diff, game))
        eligible.sort(key=lambda item: item[0])
        return [game for _, game in eligible]

    def _named_in(self, text: str, team: str, profile: Optional[SportProfile]) -> bool:
        alias_map = self._alias_map(profile) if profile else None
        return team_named_in(text, team, profile, alias_map)

    def _alias_map(self, profile: SportProfile) -> dict[str, str]:
        if profile.code not in self._alias_maps:
            self._alias_maps[profile.code] = build_alias_map(profile)
        return self._alias_maps[profile.code]

    def _canonical_key(self, alias_map: dict[str, str]) -> KeyFn:
        def key(name: str) -> str:
            return normalize_name(resolve_alias(name, alias_map) or name)
        return key

    def _key_for(self, profile: Optional[SportProfile]) -> KeyFn:
        if profile is None:
            return normalize_name
        return self._canonical_key(self._alias_map(profile))

    def _pair_sides(
        self,
        request: MatchRequest,
        game: BookmakerGame,
        side_a: str,
        side_b: str,
        key_fn: KeyFn,
        method: Optional[MatchMethod] = None,
        score: Optional[float] = None,
    ) -> Optional[MatchResult]:
        """
        Resolve both title sides against one game.

        Team labels are the game's outcomes (draw excluded) for h2h and
        spreads, and the home/away names for totals. Returns None when
        either side is unresolved or both land on the same label.
        """
        outcomes = game.reference_outcomes(request.market_type)
        if len(outcomes) < 2:
            return None

        is_totals = request.market_type == MarketType.TOTALS.value
        if is_totals:
            labels = [(0, game.home_team), (1, game.away_team)]
        else:
            labels = [(i, name) for i, name in enumerate(outcomes) if not is_draw_outcome(name)]

        found_a = self._locate(side_a, labels, key_fn)
        found_b = self._locate(side_b, labels, key_fn)
        if found_a is None or found_b is None:
            return None
        if found_a[0] == found_b[0]:
            self.logger.debug(
                "Outcome index collision",
                title=request.title,
                game=game.display_name,
            )
            return None

        if is_totals:
            return self._totals_result(request, game, outcomes, method, score)

        names = dict(labels)
        name_a, name_b = names[found_a[0]], names[found_b[0]]
        match_a = self._outcome_match(found_a, name_a, method, score)
        match_b = self._outcome_match(found_b, name_b, method, score)
        if self._question_names_second(request, name_a, name_b, request.profile):
            match_a, match_b = match_b, match_a
        return MatchResult(game=game, market_key=request.market_type, yes=match_a, no=match_b)

    def _locate(
        self,
        side: str,
        labels: list[tuple[int, str]],
        key_fn: KeyFn,
    ) -> Optional[tuple[int, float, bool]]:
        """
        Find the label for one side.

        Returns:
            (index, score, exact) or None if missing or ambiguous
        """
        target = key_fn(side)
        if not target:
            return None

        exact = [i for i, label in labels if key_fn(label) == target]
        if len(exact) == 1:
            return exact[0], 1.0, True
        if len(exact) > 1:
            return None

        target_tokens = set(target.split())
        overlaps = []
        for i, label in labels:
            label_tokens = set(key_fn(label).split())
            shared = len(target_tokens & label_tokens)
            if shared >= 2:
                overlaps.append((shared, dice_similarity(target_tokens, label_tokens), i))
        if not overlaps:
            return None
        overlaps.sort(reverse=True)
        if len(overlaps) > 1 and overlaps[0][0] == overlaps[1][0]:
            return None
        shared, similarity, index = overlaps[0]
        return index, similarity, False

    def _outcome_match(
        self,
        found: tuple[int, float, bool],
        name: str,
        method: Optional[MatchMethod],
        score: Optional[float],
    ) -> OutcomeMatch:
        index, tier_score, exact = found
        if method is None:
            method = MatchMethod.EXACT if exact else MatchMethod.TOKEN_OVERLAP
        return OutcomeMatch(
            index=index,
            name=name,
            method=method,
            score=tier_score if score is None else score,
        )

    def _totals_result(
        self,
        request: MatchRequest,
        game: BookmakerGame,
        outcomes: list[str],
        method: Optional[MatchMethod],
        score: Optional[float],
    ) -> Optional[MatchResult]:
        """Yes side is the Over/Under the question names (Over by default)."""
        positions = {normalize_name(name): i for i, name in enumerate(outcomes)}
        if "over" not in positions or "under" not in positions:
            return None

        question = request.question or request.title
        yes_label = "over"
        if contains_term(question, "under") and not contains_term(question, "over"):
            yes_label = "under"
        no_label = "under" if yes_label == "over" else "over"

        method = method or MatchMethod.EXACT
        score = 1.0 if score is None else score
        return MatchResult(
            game=game,
            market_key=request.market_type,
            yes=OutcomeMatch(positions[yes_label], outcomes[positions[yes_label]], method, score),
            no=OutcomeMatch(positions[no_label], outcomes[positions[no_label]], method, score),
        )

    def _question_names_second(
        self,
        request: MatchRequest,
        name_a: str,
        name_b: str,
        profile: Optional[SportProfile],
    ) -> bool:
        """True when the question names only the second title team."""
        question = request.question
        if not question or normalize_name(question) == normalize_name(request.title):
            return False
        names_a = self._named_in(question, name_a, profile)
        names_b = self._named_in(question, name_b, profile)
        return names_b and not names_a

    def _order_by_title(
        self,
        title: str,
        home: str,
        away: str,
        profile: Optional[SportProfile],
    ) -> tuple[str, str]:
        """Order two team names by first appearance in the title."""
        padded = f" {normalize_name(title)} "
        alias_map = self._alias_map(profile) if profile else None

        def position(team: str) -> int:
            hits = [
                padded.find(f" {term} ")
                for term in guard_terms(team, profile, alias_map)
                if f" {term} " in padded
            ]
            return min(hits) if hits else len(padded)

        if position(away) < position(home):
            return away, home
        return home, away

    def _passes_nickname_guard(self, request: MatchRequest, result: MatchResult) -> bool:
        """Both final team labels must be vouched for by the event text."""
        if result.yes.index == result.no.index:
            return False
        if result.market_key == MarketType.TOTALS.value:
            names = [result.game.home_team, result.game.away_team]
        else:
            names = [result.yes.name, result.no.name]
        profile = request.profile
        return all(self._named_in(request.event_text, name, profile) for name in names)
