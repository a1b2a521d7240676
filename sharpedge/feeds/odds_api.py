"""
The Odds API Feed.

Aggregates decimal odds from 40+ sportsbooks including Pinnacle, Betfair,
DraftKings, etc.

API Docs: https://the-odds-api.com/liveapi/guides/v4/

Endpoint used:
- /sports/{sport}/odds: games with per-bookmaker, per-market outcomes

A failing request yields an empty game list for that sport; the poll
cycle carries on with the other sports.
"""

import asyncio
import time
from datetime import datetime
from typing import Optional

import httpx
import structlog

from config.settings import OddsAPISettings
from sharpedge.models.schemas import (
    Bookmaker,
    BookmakerGame,
    BookmakerMarket,
    BookmakerQuote,
    is_valid_number,
)
from sharpedge.models.teams import SportProfile, is_sharp_book

logger = structlog.get_logger()


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """ISO-8601 with a trailing Z -> aware datetime."""
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


class OddsAPIFeed:
    """
    Per-sport bookmaker odds from The Odds API.

    Usage:
        feed = OddsAPIFeed(settings.odds_api, http_client)
        games = await feed.get_odds(get_sport("nba"))
    """

    def __init__(
        self,
        config: OddsAPISettings,
        client: httpx.AsyncClient,
    ):
        self.config = config
        self.logger = logger.bind(feed="odds_api")

        self._http_client = client

        # Rate limiting
        self._request_timestamps: list[float] = []
        self._rate_lock = asyncio.Lock()
        self._requests_remaining: Optional[int] = None
        self._requests_used: int = 0

        # Health
        self._connected: bool = False
        self._error_count: int = 0
        self._last_success_ms: int = 0

    # =========================================================================
    # Rate Limiting
    # =========================================================================

    async def _wait_for_rate_limit(self) -> None:
        """Wait if we're hitting the per-minute request limit."""
        async with self._rate_lock:
            now = time.time()
            self._request_timestamps = [
                ts for ts in self._request_timestamps
                if now - ts < 60
            ]
            if len(self._request_timestamps) >= self.config.requests_per_minute:
                wait_time = 60 - (now - self._request_timestamps[0])
                if wait_time > 0:
                    self.logger.debug("Rate limit reached, waiting", seconds=wait_time)
                    await asyncio.sleep(wait_time)
            self._request_timestamps.append(time.time())

    # =========================================================================
    # API Calls
    # =========================================================================

    async def _make_request(
        self,
        endpoint: str,
        params: Optional[dict] = None,
    ) -> Optional[dict | list]:
        """Make an API request with rate limiting."""
        await self._wait_for_rate_limit()

        url = f"{self.config.base_url}{endpoint}"
        full_params = {"apiKey": self.config.api_key}
        if params:
            full_params.update(params)

        try:
            response = await self._http_client.get(url, params=full_params)

            # Track usage from headers
            if "x-requests-remaining" in response.headers:
                self._requests_remaining = int(float(response.headers["x-requests-remaining"]))
            if "x-requests-used" in response.headers:
                self._requests_used = int(float(response.headers["x-requests-used"]))
                self.logger.debug(
                    "API request",
                    endpoint=endpoint,
                    used=self._requests_used,
                    remaining=self._requests_remaining,
                )

            if response.status_code == 200:
                self._connected = True
                self._last_success_ms = int(time.time() * 1000)
                return response.json()
            elif response.status_code == 401:
                self.logger.error("Invalid API key")
                self._connected = False
            elif response.status_code == 429:
                self.logger.warning("Rate limited by API", endpoint=endpoint)
            else:
                self.logger.warning(
                    "API error",
                    status=response.status_code,
                    body=response.text[:200],
                )
            self._error_count += 1
            return None

        except (httpx.HTTPError, ValueError) as e:
            self.logger.error("Request failed", endpoint=endpoint, error=str(e))
            self._error_count += 1
            return None

    async def get_odds(
        self,
        sport: SportProfile,
        markets: Optional[str] = None,
    ) -> list[BookmakerGame]:
        """
        Get upcoming games with decimal odds for a sport.

        Args:
            sport: The sport profile to fetch
            markets: Comma-separated market keys (defaults to configured)

        Returns:
            List of BookmakerGame objects (empty on any failure)
        """
        params = {
            "regions": self.config.regions,
            "markets": markets or self.config.markets,
            "oddsFormat": "decimal",
        }
        data = await self._make_request(f"/sports/{sport.odds_api_sport}/odds", params)

        if not data or not isinstance(data, list):
            return []

        games = []
        for event_data in data:
            game = self._parse_event(event_data, sport)
            if game:
                games.append(game)

        self.logger.info(
            "Fetched games",
            sport=sport.name,
            count=len(games),
            requests_remaining=self._requests_remaining,
        )
        return games

    def _parse_event(self, data: dict, sport: SportProfile) -> Optional[BookmakerGame]:
        """Parse API response into BookmakerGame."""
        if not isinstance(data, dict):
            return None

        commence_time = parse_timestamp(data.get("commence_time"))
        home = data.get("home_team") or ""
        away = data.get("away_team") or ""
        if commence_time is None or not home or not away:
            self.logger.debug("Skipping incomplete event", event_id=data.get("id"))
            return None

        game = BookmakerGame(
            game_id=data.get("id", ""),
            sport_key=data.get("sport_key", sport.odds_api_sport),
            home_team=home,
            away_team=away,
            commence_time=commence_time,
        )

        for book_data in data.get("bookmakers") or []:
            bookmaker = self._parse_bookmaker(book_data)
            if bookmaker:
                game.bookmakers.append(bookmaker)

        return game

    def _parse_bookmaker(self, data: dict) -> Optional[Bookmaker]:
        """Parse one bookmaker's markets, dropping malformed prices."""
        key = data.get("key", "") if isinstance(data, dict) else ""
        if not key:
            return None

        sharp = is_sharp_book(key)
        last_update = parse_timestamp(data.get("last_update"))
        bookmaker = Bookmaker(key=key, title=data.get("title", key), is_sharp=sharp)

        for market_data in data.get("markets") or []:
            market_key = market_data.get("key", "h2h")
            quotes = []
            for outcome in market_data.get("outcomes") or []:
                price = outcome.get("price")
                name = outcome.get("name")
                if not name or not is_valid_number(price):
                    continue
                quotes.append(BookmakerQuote(
                    bookmaker=key,
                    outcome=name,
                    price=float(price),
                    market_type=market_key,
                    is_sharp=sharp,
                    point=outcome.get("point"),
                    last_update=parse_timestamp(market_data.get("last_update")) or last_update,
                ))
            if len(quotes) >= 2:
                bookmaker.markets.append(BookmakerMarket(key=market_key, outcomes=quotes))

        return bookmaker if bookmaker.markets else None

    # =========================================================================
    # Metrics
    # =========================================================================

    def get_metrics(self) -> dict:
        """Get feed health metrics."""
        return {
            "name": "odds_api",
            "connected": self._connected,
            "requests_remaining": self._requests_remaining,
            "requests_used": self._requests_used,
            "error_count": self._error_count,
            "age_seconds": (int(time.time() * 1000) - self._last_success_ms) / 1000 if self._last_success_ms else 0,
        }
