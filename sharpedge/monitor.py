"""
Poll cycle - the single per-poll entry point.

One run:
1. Expire started events and their active signals
2. Fetch bookmaker odds (per sport) and CLOB prices (chunked) concurrently
3. Refresh market prices and every active signal
4. Per market, concurrently: match -> snapshot -> consensus -> movement
   -> edge -> lifecycle -> alert gate
5. Prune snapshots older than the movement window

Per-market failures are logged, counted and skipped. The run is invoked
on an external cadence; it does not schedule itself.
"""

import asyncio
import ssl
import time
from datetime import datetime
from typing import Callable, Optional

import certifi
import httpx
import structlog

from config.settings import Settings
from sharpedge.engine.alert_gate import AlertDispatcher, AlertGate
from sharpedge.engine.consensus import ConsensusEngine
from sharpedge.engine.edge import EdgeCalculator
from sharpedge.engine.lifecycle import SignalLifecycleManager
from sharpedge.engine.movement import MovementDetector
from sharpedge.feeds.clob import ClobPriceClient
from sharpedge.feeds.odds_api import OddsAPIFeed
from sharpedge.matching.matcher import EventMatcher, MatchRequest
from sharpedge.matching.resolver import TeamResolver
from sharpedge.models.schemas import (
    BookmakerGame,
    MonitoredMarket,
    MonitoringStatus,
    RunSummary,
    SharpBookSnapshot,
    TokenPrice,
    utc_now,
)
from sharpedge.models.teams import SportProfile, get_sport
from sharpedge.storage.base import SignalStore
from sharpedge.utils.alerts import WebhookDispatcher

logger = structlog.get_logger()


class PollCycle:
    """
    Wires feeds, matcher, engine and store into one run.

    Usage:
        cycle = PollCycle(settings, store)
        summary = await cycle.run_once()
        await cycle.close()
    """

    def __init__(
        self,
        settings: Settings,
        store: SignalStore,
        http_client: Optional[httpx.AsyncClient] = None,
        dispatcher: Optional[AlertDispatcher] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        # Missing credentials are fatal here, never per run
        settings.validate_credentials()

        self.settings = settings
        self.store = store
        self.clock = clock
        self.logger = logger.bind(component="poll_cycle")

        self._http_client = http_client
        self._owns_client = http_client is None
        if self._http_client is None:
            ssl_context = ssl.create_default_context(cafile=certifi.where())
            self._http_client = httpx.AsyncClient(
                verify=ssl_context,
                timeout=settings.odds_api.timeout_seconds,
                headers={"Accept": "application/json"},
            )

        self.odds_feed = OddsAPIFeed(settings.odds_api, self._http_client)
        self.clob = ClobPriceClient(settings.clob, self._http_client)
        self.consensus = ConsensusEngine(settings.consensus)
        self.movement = MovementDetector(settings.movement)
        self.edge = EdgeCalculator(settings.costs, stake_usd=settings.signals.stake_usd)
        self.lifecycle = SignalLifecycleManager(store, settings.signals)

        if dispatcher is None and settings.alerts.webhook_url:
            dispatcher = WebhookDispatcher(self._http_client)
        self.alert_gate = AlertGate(settings.alerts, dispatcher)

    async def close(self) -> None:
        if self._owns_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    # =========================================================================
    # Run
    # =========================================================================

    async def run_once(self) -> RunSummary:
        """Execute one poll cycle and return its summary."""
        started = time.perf_counter()
        now = self.clock()
        summary = RunSummary()
        write_failures = self.lifecycle.write_failures

        expired = await self.lifecycle.expire_started(now)
        summary.signals_expired += len(expired)

        markets = await self._live_markets(now, summary)
        summary.events_polled = len(markets)

        if markets:
            games_by_sport, prices = await asyncio.gather(
                self._fetch_odds(markets),
                self._fetch_prices(markets),
            )

            for market in markets:
                await self._apply_prices(market, prices, now, summary)

            refreshed = await self.lifecycle.refresh_active(
                {m.event_key: m for m in markets}, now
            )
            self.logger.debug("Refreshed active signals", count=refreshed)

            # Fresh resolver per run: cache and call budget never leak across runs
            resolver = None
            if self.settings.resolver.enabled:
                resolver = TeamResolver(self.settings.resolver, self._http_client)
            matcher = EventMatcher(self.settings.matching, resolver)

            await asyncio.gather(*(
                self._process_safely(
                    market,
                    games_by_sport.get(self._sport_code(market), []),
                    matcher,
                    now,
                    summary,
                )
                for market in markets
            ))

        window_start = now - self.movement.window
        try:
            pruned = await self.store.prune_snapshots(window_start)
        except Exception as e:
            self.logger.error("Snapshot prune failed", error=str(e), exc_info=True)
            summary.errors += 1
            pruned = 0

        summary.errors += self.lifecycle.write_failures - write_failures
        summary.duration_ms = int((time.perf_counter() - started) * 1000)
        self.logger.info(
            "✅ Poll cycle complete",
            **summary.model_dump(),
            snapshots_pruned=pruned,
        )
        return summary

    def _sport_code(self, market: MonitoredMarket) -> str:
        profile = get_sport(market.sport)
        return profile.code if profile else ""

    async def _live_markets(self, now: datetime, summary: RunSummary) -> list[MonitoredMarket]:
        """Watching/triggered markets; started ones are retired."""
        live = []
        for market in await self.store.list_monitored_markets():
            if market.start_time <= now:
                market.status = MonitoringStatus.EXPIRED
                try:
                    await self.store.upsert_monitored_market(market)
                except Exception as e:
                    summary.errors += 1
                    self.logger.error(
                        "Market expiry write failed",
                        title=market.title,
                        event_key=market.event_key,
                        error=str(e),
                        exc_info=True,
                    )
                continue
            live.append(market)
        return live

    # =========================================================================
    # Fetching
    # =========================================================================

    async def _fetch_odds(self, markets: list[MonitoredMarket]) -> dict[str, list[BookmakerGame]]:
        """Bookmaker games per sport code, one concurrent request per sport."""
        wanted: dict[str, tuple[SportProfile, set[str]]] = {}
        for market in markets:
            profile = get_sport(market.sport)
            if profile is None:
                self.logger.debug("Unknown sport", sport=market.sport, title=market.title)
                continue
            entry = wanted.setdefault(profile.code, (profile, set()))
            entry[1].add(market.market_type)

        if not wanted:
            return {}

        semaphore = asyncio.Semaphore(len(wanted))

        async def fetch(profile: SportProfile, market_types: set[str]) -> list[BookmakerGame]:
            async with semaphore:
                return await self.odds_feed.get_odds(profile, ",".join(sorted(market_types)))

        results = await asyncio.gather(
            *(fetch(profile, types) for profile, types in wanted.values()),
            return_exceptions=True,
        )

        games_by_sport: dict[str, list[BookmakerGame]] = {}
        for (code, _), result in zip(wanted.items(), results):
            if isinstance(result, BaseException):
                self.logger.error("Odds fetch failed", sport=code, error=str(result))
                games_by_sport[code] = []
            else:
                games_by_sport[code] = result
        return games_by_sport

    async def _fetch_prices(self, markets: list[MonitoredMarket]) -> dict[str, TokenPrice]:
        token_ids = []
        for market in markets:
            token_ids.extend([market.yes_token_id, market.no_token_id])
        try:
            return await self.clob.get_prices(token_ids)
        except Exception as e:
            self.logger.error("Price fetch failed, keeping stale prices", error=str(e))
            return {}

    async def _apply_prices(
        self,
        market: MonitoredMarket,
        prices: dict[str, TokenPrice],
        now: datetime,
        summary: RunSummary,
    ) -> None:
        """Copy fresh quotes onto the market; missing fields keep stale values."""
        fresh = {}
        yes = prices.get(market.yes_token_id)
        if yes is not None:
            fresh.update(yes_bid=yes.best_bid, yes_ask=yes.best_ask, spread=yes.spread)
        no = prices.get(market.no_token_id)
        if no is not None:
            fresh.update(no_bid=no.best_bid, no_ask=no.best_ask)

        fresh = {name: value for name, value in fresh.items() if value is not None}
        if not fresh:
            return

        for name, value in fresh.items():
            setattr(market, name, value)
        market.last_price_refresh = now

        try:
            await self.store.upsert_monitored_market(market)
        except Exception as e:
            summary.errors += 1
            self.logger.error(
                "Market refresh write failed",
                title=market.title,
                error=str(e),
                exc_info=True,
            )

    # =========================================================================
    # Per-market pipeline
    # =========================================================================

    async def _process_safely(
        self,
        market: MonitoredMarket,
        games: list[BookmakerGame],
        matcher: EventMatcher,
        now: datetime,
        summary: RunSummary,
    ) -> None:
        try:
            await self._process_market(market, games, matcher, now, summary)
        except Exception as e:
            summary.errors += 1
            self.logger.error(
                "Market processing failed",
                title=market.title,
                event_key=market.event_key,
                error=str(e),
                exc_info=True,
            )

    async def _process_market(
        self,
        market: MonitoredMarket,
        games: list[BookmakerGame],
        matcher: EventMatcher,
        now: datetime,
        summary: RunSummary,
    ) -> None:
        if market.volume_24h < self.settings.signals.min_volume:
            self.logger.debug("Below volume floor", title=market.title, volume=market.volume_24h)
            return

        match = await matcher.match(MatchRequest.from_market(market), games)
        if match is None:
            return
        summary.events_matched += 1

        game, key = match.game, match.market_key
        yes_name, no_name = match.yes.name, match.no.name

        sharp_books = self.consensus.book_probabilities(game, key, yes_name, no_name, sharp_only=True)
        snapshots = []
        for bookmaker, (fair_yes, fair_no, _) in sharp_books.items():
            snapshots.append(SharpBookSnapshot(market.event_key, yes_name, bookmaker, fair_yes, now))
            snapshots.append(SharpBookSnapshot(market.event_key, no_name, bookmaker, fair_no, now))
        await self.store.add_snapshots(snapshots)

        fair = self.consensus.fair_probability(game, key, yes_name, no_name)
        if fair is None:
            self.logger.debug("No consensus", title=market.title)
            return

        history = await self.store.get_snapshots(
            market.event_key, yes_name, now - self.movement.window
        )
        movement = self.movement.analyze(history, now)
        if movement.confirmed:
            summary.movement_confirmed += 1
            self.logger.info(
                "📈 Sharp movement confirmed",
                title=market.title,
                direction=movement.direction.value,
                books=movement.books_confirming,
                velocity=round(movement.velocity, 5),
            )

        edge = self.edge.evaluate(market, match, fair, movement, now)
        if edge is None:
            return
        if edge.net_edge > 0:
            summary.edges_found += 1

        outcome = await self.lifecycle.process(market, match, edge, movement, now)
        if outcome is None:
            return

        if outcome.created:
            summary.signals_created += 1
        else:
            summary.signals_updated += 1
        summary.signals_expired += len(outcome.expired)

        if await self.alert_gate.process(outcome.signal, outcome.created, now):
            summary.alerts_sent += 1
