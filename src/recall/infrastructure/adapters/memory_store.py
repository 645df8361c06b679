"""
In-memory Card Store: Infrastructure adapter keeping everything in dicts.

Also the base for file-backed stores: every write runs inside `_writing()`,
which calls `_commit()` and rolls the in-memory state back if it fails.
"""

import logging
from collections.abc import Iterable, Iterator
from contextlib import contextmanager

from ulid import ULID

from recall.domain.deck_config import DeckConfig
from recall.domain.models import Card, DailyCounters, ReviewLogEntry
from recall.domain.ports import CardStore

logger = logging.getLogger(__name__)


class InMemoryCardStore(CardStore):
    """
    Process-local card store. Cards keep their insertion order per deck.
    """

    def __init__(self, cards: Iterable[Card] = ()):
        self._cards: dict[str, Card] = {}
        self._logs: dict[str, ReviewLogEntry] = {}
        self._counters: dict[str, DailyCounters] = {}
        self._configs: dict[str, DeckConfig] = {}
        for card in cards:
            self._cards[card.id] = card

    # -- reads ----------------------------------------------------------

    async def get_cards_by_deck(self, deck_id: str) -> list[Card]:
        return [card for card in self._cards.values() if card.deck_id == deck_id]

    async def get_card(self, card_id: str) -> Card | None:
        return self._cards.get(card_id)

    async def get_review_logs(
        self, card_id: str | None = None, since: int | None = None
    ) -> list[ReviewLogEntry]:
        return [
            entry
            for entry in self._logs.values()
            if (card_id is None or entry.card_id == card_id)
            and (since is None or entry.timestamp >= since)
        ]

    async def get_daily_counters(self, deck_id: str) -> DailyCounters | None:
        return self._counters.get(deck_id)

    async def get_deck_config(self, deck_id: str) -> DeckConfig | None:
        return self._configs.get(deck_id)

    # -- writes ---------------------------------------------------------

    async def put_card(self, card: Card) -> None:
        with self._writing():
            self._cards[card.id] = card
        logger.debug(f"put_card {card.id} state={card.state.value} due={card.due}")

    async def append_review_log(self, entry: ReviewLogEntry) -> str:
        log_id = str(ULID())
        with self._writing():
            self._logs[log_id] = entry.with_id(log_id)
        logger.debug(f"append_review_log {log_id} card={entry.card_id}")
        return log_id

    async def delete_review_log(self, log_id: str) -> None:
        with self._writing():
            self._logs.pop(log_id, None)
        logger.debug(f"delete_review_log {log_id}")

    async def put_daily_counters(self, deck_id: str, counters: DailyCounters) -> None:
        with self._writing():
            self._counters[deck_id] = counters

    async def put_deck_config(self, deck_id: str, config: DeckConfig) -> None:
        with self._writing():
            self._configs[deck_id] = config

    # -- commit hooks -----------------------------------------------------

    @contextmanager
    def _writing(self) -> Iterator[None]:
        # Values are immutable, so shallow copies are a full snapshot.
        snapshot = (
            dict(self._cards),
            dict(self._logs),
            dict(self._counters),
            dict(self._configs),
        )
        yield
        try:
            self._commit()
        except Exception:
            self._cards, self._logs, self._counters, self._configs = snapshot
            raise

    def _commit(self) -> None:
        """Persist the current state. Nothing to do in memory."""
