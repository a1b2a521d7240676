"""Tests for the multi-strategy event matcher."""

from datetime import timedelta

import httpx
import orjson
import pytest

from config.settings import MatchingSettings, ResolverSettings
from sharpedge.matching import normalize
from sharpedge.matching.matcher import EventMatcher, MatchRequest
from sharpedge.matching.resolver import TeamResolver
from sharpedge.models.schemas import MatchMethod


def resolver_for(answer: dict) -> TeamResolver:
    """TeamResolver whose endpoint always returns `answer`."""
    def handler(request: httpx.Request) -> httpx.Response:
        content = orjson.dumps(answer).decode()
        return httpx.Response(200, json={"choices": [{"message": {"content": content}}]})

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    config = ResolverSettings(enabled=True, api_key="sk-test")
    return TeamResolver(config, client)


@pytest.fixture
def matcher():
    return EventMatcher(MatchingSettings())


@pytest.fixture
def request_factory(now):
    def build(title, question="", sport="nba", market_type="h2h", start=None):
        return MatchRequest(
            title=title,
            question=question or title,
            sport=sport,
            market_type=market_type,
            start_time=start or now + timedelta(hours=3),
        )
    return build


class TestStrategies:
    """Tests for each matching tier."""

    @pytest.mark.asyncio
    async def test_structural_full_names(self, matcher, request_factory, game_factory):
        """Test that full team names resolve exactly."""
        result = await matcher.match(
            request_factory("Boston Celtics vs Miami Heat"), [game_factory()]
        )

        assert result is not None
        assert result.method == MatchMethod.EXACT
        assert result.yes.name == "Boston Celtics"
        assert result.yes.index == 0
        assert result.no.index == 1

    @pytest.mark.asyncio
    async def test_nickname_expansion(self, matcher, request_factory, game_factory):
        """Test that nicknames resolve through the roster."""
        result = await matcher.match(request_factory("Celtics vs Heat"), [game_factory()])

        assert result is not None
        assert result.method == MatchMethod.NICKNAME
        assert result.yes.name == "Boston Celtics"
        assert result.no.name == "Miami Heat"

    @pytest.mark.asyncio
    async def test_title_order_sets_yes_side(self, matcher, request_factory, game_factory):
        """Test that the first team in the title is the yes outcome."""
        result = await matcher.match(request_factory("Heat @ Celtics"), [game_factory()])

        assert result.yes.name == "Miami Heat"
        assert result.yes.index == 1
        assert result.no.index == 0

    @pytest.mark.asyncio
    async def test_question_naming_second_team_flips_yes(
        self, matcher, request_factory, game_factory
    ):
        """Test that a question naming only the second team makes it the yes side."""
        request = request_factory("Celtics vs Heat", question="Will Miami win?")
        result = await matcher.match(request, [game_factory()])

        assert result.yes.name == "Miami Heat"
        assert result.no.name == "Boston Celtics"

    @pytest.mark.asyncio
    async def test_fuzzy_fallback(self, matcher, request_factory, game_factory):
        """Test that unparseable titles fall back to similarity scoring."""
        result = await matcher.match(request_factory("Celtics Heat showdown"), [game_factory()])

        assert result is not None
        assert result.method == MatchMethod.FUZZY
        assert result.yes.name == "Boston Celtics"
        assert result.yes.score >= 0.5

    @pytest.mark.asyncio
    async def test_fuzzy_guard_reuses_roster_map(
        self, matcher, request_factory, game_factory, monkeypatch
    ):
        """Test that the nickname guard runs on the matcher's cached roster map."""
        def rebuild(profile):
            raise AssertionError("alias map rebuilt")

        monkeypatch.setattr(normalize, "build_alias_map", rebuild)

        result = await matcher.match(request_factory("Celtics Heat showdown"), [game_factory()])

        assert result is not None
        assert result.method == MatchMethod.FUZZY

    @pytest.mark.asyncio
    async def test_three_way_market_drops_draw(self, matcher, request_factory, game_factory):
        """Test that draw outcomes are never assigned to a team."""
        game = game_factory(
            home="Boston Bruins",
            away="Toronto Maple Leafs",
            books={"pinnacle": (2.30, 2.90, 4.10)},
            sport_key="icehockey_nhl",
        )
        result = await matcher.match(request_factory("Bruins vs Leafs", sport="nhl"), [game])

        assert result is not None
        assert {result.yes.index, result.no.index} == {0, 1}

    @pytest.mark.asyncio
    async def test_totals_market_defaults_to_over(self, matcher, request_factory, game_factory):
        """Test that a totals question resolves to Over unless it names Under."""
        game = game_factory(market_key="totals", outcomes=["Over", "Under"])

        over = await matcher.match(
            request_factory("Celtics vs Heat", market_type="totals",
                            question="Celtics vs Heat: Over 221.5 points?"),
            [game],
        )
        under = await matcher.match(
            request_factory("Celtics vs Heat", market_type="totals",
                            question="Celtics vs Heat: Under 221.5 points?"),
            [game],
        )

        assert over.yes.name == "Over"
        assert over.no.name == "Under"
        assert under.yes.name == "Under"


class TestFailClosed:
    """Tests for the matcher refusing bad matches."""

    @pytest.mark.asyncio
    async def test_game_outside_start_window(self, matcher, request_factory, game_factory, now):
        """Test that games starting more than 24h away are ignored."""
        game = game_factory(commence=now + timedelta(hours=30))
        assert await matcher.match(request_factory("Celtics vs Heat"), [game]) is None

    @pytest.mark.asyncio
    async def test_index_collision_rejected(self, matcher, request_factory, game_factory):
        """Test that both sides resolving to one team yields no match."""
        result = await matcher.match(request_factory("Celtics vs Boston"), [game_factory()])
        assert result is None

    @pytest.mark.asyncio
    async def test_ticker_only_title_rejected(self, matcher, request_factory, game_factory):
        """Test that a title naming teams only by ticker fails the nickname guard."""
        assert await matcher.match(request_factory("BOS vs MIA"), [game_factory()]) is None

    @pytest.mark.asyncio
    async def test_unknown_teams(self, matcher, request_factory, game_factory):
        """Test that a title about other teams yields no match."""
        result = await matcher.match(request_factory("Lakers vs Clippers"), [game_factory()])
        assert result is None

    @pytest.mark.asyncio
    async def test_indices_always_distinct(self, matcher, request_factory, game_factory):
        """Test that every returned match has distinct outcome indices."""
        titles = ["Boston Celtics vs Miami Heat", "Celtics vs Heat", "Heat @ Celtics"]
        for title in titles:
            result = await matcher.match(request_factory(title), [game_factory()])
            assert result.yes.index != result.no.index


class TestAIStrategy:
    """Tests for the budgeted AI tier."""

    @pytest.mark.asyncio
    async def test_ai_match(self, request_factory, game_factory):
        """Test that a grounded AI answer is accepted."""
        resolver = resolver_for({
            "team_a": "Boston Celtics", "team_b": "Miami Heat", "confidence": 0.9,
        })
        matcher = EventMatcher(MatchingSettings(), resolver)
        matcher.strategies = [matcher._match_ai]

        result = await matcher.match(request_factory("Celtics vs Heat"), [game_factory()])

        assert result is not None
        assert result.method == MatchMethod.AI
        assert result.yes.name == "Boston Celtics"
        assert result.yes.score == pytest.approx(0.9)

    @pytest.mark.asyncio
    async def test_ungrounded_ai_answer_rejected_and_cached(self, request_factory, game_factory):
        """Test that an answer naming teams absent from the title is dropped."""
        resolver = resolver_for({
            "team_a": "Los Angeles Lakers", "team_b": "Los Angeles Clippers", "confidence": 0.95,
        })
        matcher = EventMatcher(MatchingSettings(), resolver)
        matcher.strategies = [matcher._match_ai]
        request = request_factory("Celtics vs Heat")

        assert await matcher.match(request, [game_factory()]) is None
        assert await matcher.match(request, [game_factory()]) is None
        assert resolver.calls_made == 1
