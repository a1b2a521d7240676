"""Tests for the budgeted AI team resolver."""

import asyncio

import httpx
import orjson
import pytest

from config.settings import ResolverSettings
from sharpedge.matching.resolver import TeamResolution, TeamResolver


class FakeEndpoint:
    """Chat-completions stand-in that counts requests."""

    def __init__(self, content=None, status_code=200, delay=0.0):
        self.content = content if content is not None else {
            "team_a": "Boston Celtics", "team_b": "Miami Heat", "confidence": 0.9,
        }
        self.status_code = status_code
        self.delay = delay
        self.requests = []

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(orjson.loads(request.content))
        if self.delay:
            await asyncio.sleep(self.delay)
        content = self.content if isinstance(self.content, str) else orjson.dumps(self.content).decode()
        return httpx.Response(
            self.status_code,
            json={"choices": [{"message": {"content": content}}]},
        )

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


@pytest.fixture
def config():
    return ResolverSettings(enabled=True, api_key="sk-test", max_calls_per_run=2)


class TestTeamResolver:
    """Tests for TeamResolver."""

    @pytest.mark.asyncio
    async def test_resolves_and_caches(self, config):
        """Test that a confident answer is returned and reused."""
        endpoint = FakeEndpoint()
        resolver = TeamResolver(config, endpoint.client())

        first = await resolver.resolve("Celtics vs Heat", "nba")
        second = await resolver.resolve("  celtics VS heat ", "NBA")

        assert isinstance(first, TeamResolution)
        assert first.team_a == "Boston Celtics"
        assert second == first
        assert len(endpoint.requests) == 1

    @pytest.mark.asyncio
    async def test_request_uses_strict_schema(self, config):
        """Test that the call asks for the strict team_resolution schema."""
        endpoint = FakeEndpoint()
        resolver = TeamResolver(config, endpoint.client())

        await resolver.resolve("Celtics vs Heat", "nba")

        body = endpoint.requests[0]
        assert body["response_format"]["json_schema"]["strict"] is True
        assert body["response_format"]["json_schema"]["name"] == "team_resolution"

    @pytest.mark.asyncio
    async def test_budget_exhaustion(self, config):
        """Test that calls beyond the per-run budget return no match."""
        endpoint = FakeEndpoint()
        resolver = TeamResolver(config, endpoint.client())

        assert await resolver.resolve("Title one", "nba") is not None
        assert await resolver.resolve("Title two", "nba") is not None
        assert await resolver.resolve("Title three", "nba") is None

        assert resolver.calls_made == 2
        assert resolver.budget_remaining == 0
        assert len(endpoint.requests) == 2

    @pytest.mark.asyncio
    async def test_low_confidence_is_no_match(self, config):
        """Test that answers below the confidence floor are dropped and cached."""
        endpoint = FakeEndpoint({"team_a": "A", "team_b": "B", "confidence": 0.4})
        resolver = TeamResolver(config, endpoint.client())

        assert await resolver.resolve("Celtics vs Heat", "nba") is None
        assert await resolver.resolve("Celtics vs Heat", "nba") is None
        assert len(endpoint.requests) == 1

    @pytest.mark.asyncio
    async def test_timeout_is_no_match(self):
        """Test that a slow endpoint is abandoned after the timeout."""
        config = ResolverSettings(enabled=True, api_key="sk-test", timeout_seconds=0.05)
        resolver = TeamResolver(config, FakeEndpoint(delay=1.0).client())

        assert await resolver.resolve("Celtics vs Heat", "nba") is None
        assert resolver.calls_made == 1

    @pytest.mark.asyncio
    async def test_malformed_response_is_no_match(self, config):
        """Test that content failing the schema is treated as no match."""
        resolver = TeamResolver(config, FakeEndpoint("not json").client())
        assert await resolver.resolve("Celtics vs Heat", "nba") is None

        resolver = TeamResolver(config, FakeEndpoint({"team_a": "", "team_b": "B", "confidence": 1}).client())
        assert await resolver.resolve("Celtics vs Heat", "nba") is None

    @pytest.mark.asyncio
    async def test_http_error_is_no_match(self, config):
        """Test that a 5xx from the endpoint is treated as no match."""
        resolver = TeamResolver(config, FakeEndpoint(status_code=500).client())
        assert await resolver.resolve("Celtics vs Heat", "nba") is None

    @pytest.mark.asyncio
    async def test_disabled_never_calls(self):
        """Test that a disabled resolver makes no requests."""
        endpoint = FakeEndpoint()
        resolver = TeamResolver(ResolverSettings(enabled=False), endpoint.client())

        assert await resolver.resolve("Celtics vs Heat", "nba") is None
        assert endpoint.requests == []
        assert resolver.calls_made == 0
