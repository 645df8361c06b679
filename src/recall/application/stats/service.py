"""
Review Stats Service: Application layer orchestrator.

Coordinates fetching cards and logs from the store and summarizing them.
"""

import logging
from dataclasses import dataclass

from recall.domain.constants import DAY_MS, DEFAULT_FORECAST_DAYS
from recall.domain.models import CardState
from recall.domain.ports import CardStore, Clock

from .metrics_calculator import DeckCounts, MetricsCalculator

logger = logging.getLogger(__name__)


@dataclass
class DeckSummary:
    deck_id: str
    counts: DeckCounts
    retention: float | None  # Percent of Good/Easy answers in the window
    reviews_in_window: int
    average_time_ms: int
    forecast: list[int]
    estimated_time_ms: int  # For the cards due now


class ReviewStatsService:
    """
    Application service for deck statistics.

    Follows Dependency Inversion: depends on the CardStore abstraction,
    not concrete adapter implementations.
    """

    def __init__(
        self,
        store: CardStore,
        clock: Clock,
        calculator: MetricsCalculator | None = None,
    ):
        """
        Args:
            store: The repository (port) for cards and logs.
            clock: Supplies "now" and the day bucket.
            calculator: Optional custom calculator; uses default if not provided.
        """
        self._store = store
        self._clock = clock
        self._calc = calculator or MetricsCalculator()

    async def deck_summary(
        self,
        deck_id: str,
        window_days: int = 30,
        forecast_days: int = DEFAULT_FORECAST_DAYS,
    ) -> DeckSummary:
        """
        Summarize a deck: card counts, recent retention and upcoming load.

        Args:
            deck_id: Deck to summarize.
            window_days: How far back review logs count towards retention.
            forecast_days: Length of the due forecast.
        """
        now = self._clock.now()
        today = self._clock.day_bucket(now)

        cards = await self._store.get_cards_by_deck(deck_id)
        card_ids = {card.id for card in cards}
        logs = [
            entry
            for entry in await self._store.get_review_logs(since=now - window_days * DAY_MS)
            if entry.card_id in card_ids
        ]

        due_now = [
            card
            for card in cards
            if card.is_schedulable
            and (
                (card.state.is_stepped and card.due <= now)
                or (card.state is CardState.REVIEW and card.due <= today)
            )
        ]

        return DeckSummary(
            deck_id=deck_id,
            counts=self._calc.deck_counts(cards, now, today),
            retention=self._calc.retention(logs),
            reviews_in_window=len(logs),
            average_time_ms=self._calc.average_time_ms(logs),
            forecast=self._calc.due_forecast(cards, today, forecast_days),
            estimated_time_ms=self._calc.estimate_study_time_ms(due_now),
        )
