"""
Consensus Probability Engine.

Removes each bookmaker's margin (vig) and combines books into a weighted
fair probability, sharp books counting 1.5x.

Three-way markets (hockey/soccer draw) feeding a two-way question are
cleaned first: the draw is dropped and the remaining pair renormalised,
before any probability math runs.
"""

from typing import Optional

import structlog

from config.settings import ConsensusSettings
from sharpedge.matching.normalize import is_draw_outcome, normalize_name
from sharpedge.models.schemas import (
    BookmakerGame,
    BookmakerQuote,
    FairProbability,
    MarketType,
    is_valid_number,
)
from sharpedge.models.teams import is_sharp_book

logger = structlog.get_logger()


def devig(prices: list[float]) -> Optional[list[float]]:
    """
    Normalise decimal prices to margin-free probabilities.

    Any price that is missing, non-finite or <= 1.0 makes the whole
    market unusable.
    """
    if len(prices) < 2:
        return None
    implied = []
    for price in prices:
        if not is_valid_number(price) or price <= 1.0:
            return None
        implied.append(1.0 / price)
    total = sum(implied)
    if total <= 0:
        return None
    return [p / total for p in implied]


def clean_outcomes(quotes: list[BookmakerQuote], two_way: bool = True) -> list[BookmakerQuote]:
    """Drop draw/tie outcomes when the target question is two-way."""
    if not two_way:
        return list(quotes)
    return [q for q in quotes if not is_draw_outcome(q.outcome)]


def find_quote(quotes: list[BookmakerQuote], name: str) -> Optional[BookmakerQuote]:
    """Locate an outcome by normalised name (books order outcomes differently)."""
    target = normalize_name(name)
    for quote in quotes:
        if normalize_name(quote.outcome) == target:
            return quote
    return None


class ConsensusEngine:
    """
    Sharp-weighted, de-vigged consensus.

    Usage:
        engine = ConsensusEngine(settings.consensus)
        fair = engine.fair_probability(game, "h2h", "Boston Celtics", "Miami Heat")
    """

    def __init__(self, config: ConsensusSettings):
        self.config = config
        self.logger = logger.bind(component="consensus")

    def weight(self, bookmaker: str, is_sharp: bool = False) -> float:
        if is_sharp or is_sharp_book(bookmaker):
            return self.config.sharp_weight
        return self.config.soft_weight

    def book_probabilities(
        self,
        game: BookmakerGame,
        market_key: str,
        yes_name: str,
        no_name: str,
        sharp_only: bool = False,
    ) -> dict[str, tuple[float, float, float]]:
        """
        Per-book (fair_yes, fair_no, implied_yes) for a two-way question.

        Books whose fair probability falls outside the configured band
        are left out.
        """
        results: dict[str, tuple[float, float, float]] = {}
        reference_point: Optional[float] = None

        for book in game.bookmakers:
            sharp = book.is_sharp or is_sharp_book(book.key)
            if sharp_only and not sharp:
                continue
            market = book.market(market_key)
            if market is None:
                continue

            quotes = clean_outcomes(market.outcomes, two_way=True)
            yes_quote = find_quote(quotes, yes_name)
            no_quote = find_quote(quotes, no_name)
            if yes_quote is None or no_quote is None:
                continue

            # Totals lines must agree on the point to be comparable
            if market_key == MarketType.TOTALS.value:
                if reference_point is None:
                    reference_point = yes_quote.point
                elif yes_quote.point != reference_point:
                    continue

            fair = devig([yes_quote.price, no_quote.price])
            if fair is None:
                continue

            fair_yes, fair_no = fair
            if not (self.config.min_book_fair_prob <= fair_yes <= self.config.max_book_fair_prob):
                self.logger.debug(
                    "Rejected outlier book",
                    bookmaker=book.key,
                    outcome=yes_name,
                    fair=round(fair_yes, 4),
                )
                continue

            results[book.key] = (fair_yes, fair_no, yes_quote.implied_prob)

        return results

    def fair_probability(
        self,
        game: BookmakerGame,
        market_key: str,
        yes_name: str,
        no_name: str,
    ) -> Optional[FairProbability]:
        """
        Weighted fair probability of the yes outcome.

        Returns:
            FairProbability, or None when no book contributes or the
            complement check fails
        """
        books = self.book_probabilities(game, market_key, yes_name, no_name)
        if not books:
            return None

        total_weight = 0.0
        weighted_yes = 0.0
        weighted_no = 0.0
        weighted_raw = 0.0
        sharp_count = 0

        for bookmaker, (fair_yes, fair_no, implied_yes) in books.items():
            sharp = is_sharp_book(bookmaker) or self._flagged_sharp(game, bookmaker)
            w = self.weight(bookmaker, sharp)
            total_weight += w
            weighted_yes += w * fair_yes
            weighted_no += w * fair_no
            weighted_raw += w * implied_yes
            if sharp:
                sharp_count += 1

        if total_weight <= 0:
            return None

        fair_yes = weighted_yes / total_weight
        fair_no = weighted_no / total_weight
        raw = weighted_raw / total_weight

        if not all(is_valid_number(v) for v in (fair_yes, fair_no, raw)):
            return None

        if abs((fair_yes + fair_no) - 1.0) > self.config.complement_tolerance:
            self.logger.warning(
                "Complement check failed",
                game=game.display_name,
                outcome=yes_name,
                total=round(fair_yes + fair_no, 4),
            )
            return None

        return FairProbability(
            outcome=yes_name,
            fair_prob=fair_yes,
            complement_prob=fair_no,
            raw_consensus=raw,
            books_used=len(books),
            sharp_books_used=sharp_count,
        )

    def consensus_distribution(
        self,
        game: BookmakerGame,
        market_key: str,
    ) -> Optional[dict[str, float]]:
        """
        Weighted de-vigged distribution over every outcome of a market.

        Only books quoting the full reference outcome set contribute, so
        the result sums to 1.
        """
        reference = game.reference_outcomes(market_key)
        if len(reference) < 2:
            return None

        totals = {name: 0.0 for name in reference}
        total_weight = 0.0

        for book in game.bookmakers:
            market = book.market(market_key)
            if market is None:
                continue
            quotes = [find_quote(market.outcomes, name) for name in reference]
            if any(q is None for q in quotes) or len(market.outcomes) != len(reference):
                continue
            fair = devig([q.price for q in quotes])
            if fair is None:
                continue
            w = self.weight(book.key, book.is_sharp)
            total_weight += w
            for name, p in zip(reference, fair):
                totals[name] += w * p

        if total_weight <= 0:
            return None
        return {name: value / total_weight for name, value in totals.items()}

    def _flagged_sharp(self, game: BookmakerGame, bookmaker: str) -> bool:
        for book in game.bookmakers:
            if book.key == bookmaker:
                return book.is_sharp
        return False
