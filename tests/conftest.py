"""Shared fixtures for the signal engine tests."""

from datetime import datetime, timedelta, timezone

import pytest

from config.settings import (
    AlertSettings,
    ClobSettings,
    ConsensusSettings,
    CostSettings,
    MatchingSettings,
    MovementSettings,
    OddsAPISettings,
    ResolverSettings,
    Settings,
    SignalSettings,
)
from sharpedge.models.schemas import (
    Bookmaker,
    BookmakerGame,
    BookmakerMarket,
    BookmakerQuote,
    MonitoredMarket,
)
from sharpedge.models.teams import is_sharp_book
from sharpedge.storage.memory import InMemoryStore


NOW = datetime(2026, 1, 10, 18, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    """Fixed poll time."""
    return NOW


@pytest.fixture
def settings():
    """Settings with a dummy odds key and no env/.env influence."""
    return Settings(
        _env_file=None,
        odds_api=OddsAPISettings(api_key="test-key"),
        clob=ClobSettings(),
        resolver=ResolverSettings(),
        matching=MatchingSettings(),
        consensus=ConsensusSettings(),
        movement=MovementSettings(),
        costs=CostSettings(),
        signals=SignalSettings(),
        alerts=AlertSettings(webhook_url="https://hooks.example.com/alerts"),
    )


@pytest.fixture
def store():
    """Fresh in-memory store for each test."""
    return InMemoryStore()


@pytest.fixture
def game_factory():
    """
    Build a BookmakerGame from {bookmaker: prices}.

    Prices are listed in outcome order: home, away[, draw].
    """
    def build(
        home: str = "Boston Celtics",
        away: str = "Miami Heat",
        books: dict = None,
        commence: datetime = NOW + timedelta(hours=3),
        market_key: str = "h2h",
        outcomes: list[str] = None,
        game_id: str = "game-1",
        sport_key: str = "basketball_nba",
    ) -> BookmakerGame:
        books = books or {
            "pinnacle": (1.60, 2.50),
            "draftkings": (1.57, 2.45),
        }
        names = outcomes
        game = BookmakerGame(
            game_id=game_id,
            sport_key=sport_key,
            home_team=home,
            away_team=away,
            commence_time=commence,
        )
        for key, prices in books.items():
            labels = names or [home, away, "Draw"][:len(prices)]
            quotes = [
                BookmakerQuote(
                    bookmaker=key,
                    outcome=label,
                    price=price,
                    market_type=market_key,
                    is_sharp=is_sharp_book(key),
                )
                for label, price in zip(labels, prices)
            ]
            game.bookmakers.append(Bookmaker(
                key=key,
                title=key.title(),
                is_sharp=is_sharp_book(key),
                markets=[BookmakerMarket(key=market_key, outcomes=quotes)],
            ))
        return game

    return build


@pytest.fixture
def market_factory():
    """Build a MonitoredMarket with liquid, fresh prices."""
    def build(
        title: str = "Celtics vs Heat",
        question: str = "",
        sport: str = "nba",
        start: datetime = NOW + timedelta(hours=3),
        yes_ask: float = 0.55,
        yes_bid: float = 0.54,
        no_ask: float = 0.46,
        no_bid: float = 0.45,
        volume: float = 600_000.0,
        spread=None,
        event_key: str = "evt-1",
        market_type: str = "h2h",
        refreshed: datetime = NOW,
    ) -> MonitoredMarket:
        return MonitoredMarket(
            event_key=event_key,
            title=title,
            question=question or title,
            sport=sport,
            start_time=start,
            yes_token_id=f"{event_key}-yes",
            no_token_id=f"{event_key}-no",
            market_type=market_type,
            yes_bid=yes_bid,
            yes_ask=yes_ask,
            no_bid=no_bid,
            no_ask=no_ask,
            spread=spread,
            volume_24h=volume,
            last_price_refresh=refreshed,
        )

    return build
