"""
Ports (interfaces) for the scheduling core.

These define the contract that infrastructure adapters must implement.
Application services depend on these abstractions, not concrete implementations.
"""

from abc import ABC, abstractmethod

from .deck_config import DeckConfig
from .models import Card, DailyCounters, ReviewLogEntry


class CardStore(ABC):
    """
    Port for durable card, review-log and counter storage.

    Every write commits atomically before its coroutine returns. Failures
    surface as CardStoreError.

    Implementations:
        - InMemoryCardStore: process-local dictionaries.
        - YamlCardStore: one YAML document on disk.
    """

    @abstractmethod
    async def get_cards_by_deck(self, deck_id: str) -> list[Card]:
        """
        Fetch every card of a deck, in insertion order.
        """

    @abstractmethod
    async def get_card(self, card_id: str) -> Card | None:
        pass

    @abstractmethod
    async def put_card(self, card: Card) -> None:
        """Insert or replace a card by id."""

    @abstractmethod
    async def append_review_log(self, entry: ReviewLogEntry) -> str:
        """
        Append a log entry.

        Returns:
            The id assigned to the stored entry.
        """

    @abstractmethod
    async def delete_review_log(self, log_id: str) -> None:
        pass

    @abstractmethod
    async def get_review_logs(
        self, card_id: str | None = None, since: int | None = None
    ) -> list[ReviewLogEntry]:
        """
        Fetch log entries, oldest first.

        Args:
            card_id: Only entries for this card.
            since: Only entries with timestamp >= since (epoch ms).
        """

    @abstractmethod
    async def get_daily_counters(self, deck_id: str) -> DailyCounters | None:
        pass

    @abstractmethod
    async def put_daily_counters(self, deck_id: str, counters: DailyCounters) -> None:
        pass

    async def get_deck_config(self, deck_id: str) -> DeckConfig | None:
        """Stored policy for a deck, if the backend keeps one."""
        return None

    async def put_deck_config(self, deck_id: str, config: DeckConfig) -> None:
        raise NotImplementedError(f"{type(self).__name__} does not store deck configs")


class Clock(ABC):
    """Port for the current time and the day-bucket function."""

    @abstractmethod
    def now(self) -> int:
        """Current instant in epoch milliseconds."""

    @abstractmethod
    def day_bucket(self, instant: int) -> int:
        """Fixed-width day index of an instant, from a shared epoch."""

    @abstractmethod
    def start_of_day(self, day: int) -> int:
        """First instant (epoch ms) belonging to a day bucket."""

    def today(self) -> int:
        return self.day_bucket(self.now())
