"""Card administration: adding cards and changing their queue status."""

import logging
from dataclasses import replace

from ulid import ULID

from recall.domain.errors import CardNotFoundError, ContractViolation
from recall.domain.models import Card, CardState, QueueStatus
from recall.domain.ports import CardStore

logger = logging.getLogger(__name__)


def generate_card_id() -> str:
    """Generate a stable card ID using ULID."""
    return f"card_{ULID()}"


class CardService:
    """
    Application service for card lifecycle operations outside a session.
    """

    def __init__(self, store: CardStore):
        self._store = store

    async def add_card(
        self,
        deck_id: str,
        note_id: str | None = None,
        card_id: str | None = None,
        ease_permille: int = 2500,
    ) -> Card:
        """
        Create a New card at the end of the deck's new-card order.
        """
        cards = await self._store.get_cards_by_deck(deck_id)
        card_id = card_id or generate_card_id()
        if any(c.id == card_id for c in cards):
            raise ContractViolation(f"Card {card_id} already exists in deck {deck_id}")

        positions = [c.due for c in cards if c.state is CardState.NEW]
        position = max(positions) + 1 if positions else 0

        card = Card(
            id=card_id,
            deck_id=deck_id,
            due=position,
            ease_permille=ease_permille,
            note_id=note_id,
        )
        await self._store.put_card(card)
        logger.info(f"Added card {card.id} to deck {deck_id} at position {position}")
        return card

    async def suspend(self, card_id: str) -> Card:
        return await self._set_status(card_id, QueueStatus.SUSPENDED)

    async def unsuspend(self, card_id: str) -> Card:
        card = await self._get(card_id)
        if card.queue_status is not QueueStatus.SUSPENDED:
            return card
        return await self._set_status(card_id, QueueStatus.ACTIVE)

    async def bury(self, card_id: str, manual: bool = True) -> Card:
        status = QueueStatus.USER_BURIED if manual else QueueStatus.SCHEDULER_BURIED
        return await self._set_status(card_id, status)

    async def unbury_deck(self, deck_id: str) -> int:
        """
        Return every buried card of a deck to the active queue.

        Returns:
            Number of cards unburied.
        """
        count = 0
        for card in await self._store.get_cards_by_deck(deck_id):
            if card.queue_status.is_buried:
                await self._store.put_card(replace(card, queue_status=QueueStatus.ACTIVE))
                count += 1
        if count:
            logger.info(f"Unburied {count} cards in deck {deck_id}")
        return count

    async def _get(self, card_id: str) -> Card:
        card = await self._store.get_card(card_id)
        if card is None:
            raise CardNotFoundError(card_id)
        return card

    async def _set_status(self, card_id: str, status: QueueStatus) -> Card:
        card = await self._get(card_id)
        if card.queue_status is status:
            return card
        updated = replace(card, queue_status=status)
        await self._store.put_card(updated)
        logger.info(f"Card {card_id}: {card.queue_status.value} -> {status.value}")
        return updated
