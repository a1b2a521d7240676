"""
Movement Detector.

Looks at the rolling window of per-book implied probabilities for one
(event, outcome) and decides whether sharp money has moved in a
coordinated way.

A sharp book counts when:
- its window delta reaches max(0.02, 0.12 * starting probability)
- at least 70% of its absolute movement happened in the last 10 minutes

Movement is confirmed when >= 2 counting books agree on direction and no
counting book moved >= 2% the other way.
"""

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

import structlog

from config.settings import MovementSettings
from sharpedge.models.schemas import (
    MovementDirection,
    MovementResult,
    SharpBookSnapshot,
    is_valid_number,
)
from sharpedge.models.teams import is_sharp_book

logger = structlog.get_logger()


@dataclass
class BookMove:
    """Window statistics for one bookmaker."""
    bookmaker: str
    start_prob: float
    delta: float
    elapsed_minutes: float
    recent_share: float

    @property
    def velocity(self) -> float:
        if self.elapsed_minutes <= 0:
            return 0.0
        return abs(self.delta) / self.elapsed_minutes


class MovementDetector:
    """
    Coordinated sharp-book movement detection.

    Usage:
        detector = MovementDetector(settings.movement)
        result = detector.analyze(snapshots, now)
    """

    def __init__(self, config: MovementSettings):
        self.config = config
        self.logger = logger.bind(component="movement")

    @property
    def window(self) -> timedelta:
        return timedelta(minutes=self.config.window_minutes)

    def threshold(self, start_prob: float) -> float:
        """Probability-relative significance threshold."""
        return max(self.config.min_threshold, self.config.relative_threshold * start_prob)

    def book_move(
        self,
        bookmaker: str,
        snapshots: list[SharpBookSnapshot],
        now: datetime,
    ) -> Optional[BookMove]:
        """Window delta and recency share for one book's sorted snapshots."""
        if len(snapshots) < 2:
            return None

        probs = [s.implied_prob for s in snapshots]
        if not all(is_valid_number(p) for p in probs):
            return None

        start, end = probs[0], probs[-1]
        recent_cutoff = now - timedelta(minutes=self.config.recent_minutes)

        total_movement = 0.0
        recent_movement = 0.0
        for prev, curr in zip(snapshots, snapshots[1:]):
            step = abs(curr.implied_prob - prev.implied_prob)
            total_movement += step
            if curr.captured_at >= recent_cutoff:
                recent_movement += step

        recent_share = recent_movement / total_movement if total_movement > 0 else 0.0
        elapsed = (snapshots[-1].captured_at - snapshots[0].captured_at).total_seconds() / 60

        return BookMove(
            bookmaker=bookmaker,
            start_prob=start,
            delta=end - start,
            elapsed_minutes=elapsed,
            recent_share=recent_share,
        )

    def analyze(
        self,
        snapshots: list[SharpBookSnapshot],
        now: datetime,
    ) -> MovementResult:
        """
        Analyse one (event, outcome) snapshot history.

        Snapshots outside the window and from non-sharp books are ignored.
        """
        window_start = now - self.window
        by_book: dict[str, list[SharpBookSnapshot]] = defaultdict(list)
        for snap in snapshots:
            if not is_sharp_book(snap.bookmaker):
                continue
            if window_start <= snap.captured_at <= now:
                by_book[snap.bookmaker].append(snap)

        moves: list[BookMove] = []
        for bookmaker, book_snaps in by_book.items():
            book_snaps.sort(key=lambda s: s.captured_at)
            move = self.book_move(bookmaker, book_snaps, now)
            if move is not None:
                moves.append(move)

        book_deltas = {m.bookmaker: round(m.delta, 4) for m in moves}

        counting = [
            m for m in moves
            if abs(m.delta) >= self.threshold(m.start_prob)
            and m.recent_share >= self.config.min_recent_share
        ]
        rising = [m for m in counting if m.delta > 0]
        falling = [m for m in counting if m.delta < 0]

        for group, opposite, direction in (
            (rising, falling, MovementDirection.SHORTENING),
            (falling, rising, MovementDirection.DRIFTING),
        ):
            if len(group) < self.config.min_confirming_books:
                continue

            vetoes = [m for m in opposite if abs(m.delta) >= self.config.counter_move_veto]
            if vetoes:
                self.logger.debug(
                    "Movement vetoed by counter-move",
                    direction=direction.value,
                    confirming=[m.bookmaker for m in group],
                    vetoed_by=[m.bookmaker for m in vetoes],
                )
                return MovementResult(
                    triggered=False,
                    books_confirming=len(group),
                    direction=None,
                    book_deltas=book_deltas,
                )

            velocity = sum(m.velocity for m in group) / len(group)
            return MovementResult(
                triggered=True,
                velocity=velocity,
                books_confirming=len(group),
                direction=direction,
                book_deltas=book_deltas,
            )

        return MovementResult(
            triggered=False,
            books_confirming=max(len(rising), len(falling)),
            book_deltas=book_deltas,
        )
