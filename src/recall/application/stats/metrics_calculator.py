"""
Metrics calculator for deriving insights from cards and review logs.

This is a pure computation module with no I/O.
"""

from collections import Counter
from dataclasses import dataclass, field
from enum import Enum

from recall.domain.constants import (
    DEFAULT_ANSWER_TIME_MS,
    DEFAULT_FORECAST_DAYS,
    MATURE_INTERVAL_DAYS,
    NEW_CARD_ANSWER_TIME_MS,
    VERY_MATURE_INTERVAL_DAYS,
)
from recall.domain.models import Card, CardState, Grade, QueueStatus, ReviewLogEntry


class Maturity(str, Enum):
    UNSEEN = "unseen"
    YOUNG = "young"
    MATURE = "mature"
    VERY_MATURE = "very_mature"


@dataclass
class DeckCounts:
    """
    Card totals for one deck.

    `*_due` fields count only active cards that a session would consider due.
    """

    total: int = 0
    new: int = 0
    learning: int = 0
    review: int = 0
    suspended: int = 0
    buried: int = 0
    learning_due: int = 0
    review_due: int = 0
    maturity: dict[str, int] = field(default_factory=dict)


class MetricsCalculator:
    """
    Computes derived metrics from cards and review logs.

    Stateless and side-effect free.
    """

    def retention(self, logs: list[ReviewLogEntry]) -> float | None:
        """
        Percentage of answers graded Good or Easy.
        """
        if not logs:
            return None
        passed = sum(1 for entry in logs if entry.grade >= Grade.GOOD)
        return passed / len(logs) * 100

    def maturity(self, card: Card) -> Maturity:
        if card.state is CardState.NEW or card.interval_days == 0:
            return Maturity.UNSEEN
        if card.interval_days < MATURE_INTERVAL_DAYS:
            return Maturity.YOUNG
        if card.interval_days < VERY_MATURE_INTERVAL_DAYS:
            return Maturity.MATURE
        return Maturity.VERY_MATURE

    def deck_counts(self, cards: list[Card], now: int, today: int) -> DeckCounts:
        counts = DeckCounts(total=len(cards))
        maturity: Counter[str] = Counter()

        for card in cards:
            maturity[self.maturity(card).value] += 1

            if card.queue_status is QueueStatus.SUSPENDED:
                counts.suspended += 1
            elif card.queue_status.is_buried:
                counts.buried += 1

            if card.state is CardState.NEW:
                counts.new += 1
            elif card.state.is_stepped:
                counts.learning += 1
                if card.is_schedulable and card.due <= now:
                    counts.learning_due += 1
            else:
                counts.review += 1
                if card.is_schedulable and card.due <= today:
                    counts.review_due += 1

        counts.maturity = dict(maturity)
        return counts

    def due_forecast(
        self, cards: list[Card], today: int, days: int = DEFAULT_FORECAST_DAYS
    ) -> list[int]:
        """
        Review cards falling due on each of the next `days` days.

        Index 0 is today and includes overdue cards.
        """
        forecast = [0] * days
        for card in cards:
            if card.state is not CardState.REVIEW or card.queue_status is QueueStatus.SUSPENDED:
                continue
            offset = max(0, card.due - today)
            if offset < days:
                forecast[offset] += 1
        return forecast

    def estimate_study_time_ms(self, cards: list[Card]) -> int:
        """
        Rough time needed to answer the given cards once each.

        New cards take longer; review time scales with the interval.
        """
        total = 0
        for card in cards:
            if card.state is CardState.NEW:
                total += NEW_CARD_ANSWER_TIME_MS
            elif card.state is CardState.REVIEW:
                total += max(3000, min(10000, card.interval_days * 1000))
            else:
                total += DEFAULT_ANSWER_TIME_MS
        return total

    def average_time_ms(self, logs: list[ReviewLogEntry]) -> int:
        if not logs:
            return 0
        return sum(entry.elapsed_ms for entry in logs) // len(logs)
