"""
YAML Card Store: Infrastructure adapter for a single-file collection.

The whole collection lives in one YAML document:

    decks:
      spanish:
        config: {...}
        counters: {day: 20000, new_served: 3, review_served: 41}
    cards:
      - {id: ..., deck_id: spanish, state: review, ...}
    revlog:
      - {id: ..., card_id: ..., grade: 3, ...}

Every write rewrites the file through a temp file and `os.replace`, so a
crash never leaves a half-written collection behind.
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from recall.domain.deck_config import DeckConfig
from recall.domain.errors import CardStoreError
from recall.domain.models import Card, DailyCounters, ReviewLogEntry

from .memory_store import InMemoryCardStore

logger = logging.getLogger(__name__)


class YamlCardStore(InMemoryCardStore):
    """
    File-backed card store. Loaded eagerly, flushed on every write.
    """

    def __init__(self, path: Path):
        super().__init__()
        self.path = Path(path)
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            logger.debug(f"No collection at {self.path}; starting empty")
            return

        try:
            doc = yaml.safe_load(self.path.read_text(encoding="utf-8")) or {}
        except (OSError, yaml.YAMLError) as e:
            raise CardStoreError(f"Cannot read collection {self.path}: {e}") from e

        if not isinstance(doc, dict):
            raise CardStoreError(f"Collection {self.path} is not a mapping")

        try:
            for raw in doc.get("cards") or []:
                card = Card.from_dict(raw)
                self._cards[card.id] = card
            for raw in doc.get("revlog") or []:
                entry = ReviewLogEntry.from_dict(raw)
                self._logs[entry.id] = entry
            for deck_id, deck in (doc.get("decks") or {}).items():
                deck = deck or {}
                if deck.get("config") is not None:
                    self._configs[str(deck_id)] = DeckConfig.model_validate(deck["config"])
                if deck.get("counters") is not None:
                    self._counters[str(deck_id)] = DailyCounters(**deck["counters"])
        except (TypeError, ValueError, KeyError, ValidationError) as e:
            raise CardStoreError(f"Malformed collection {self.path}: {e}") from e

        logger.debug(
            f"Loaded {len(self._cards)} cards and {len(self._logs)} log entries from {self.path}"
        )

    def _document(self) -> dict[str, Any]:
        decks: dict[str, dict[str, Any]] = {}
        for deck_id, config in self._configs.items():
            decks.setdefault(deck_id, {})["config"] = config.model_dump(mode="json")
        for deck_id, counters in self._counters.items():
            decks.setdefault(deck_id, {})["counters"] = {
                "day": counters.day,
                "new_served": counters.new_served,
                "review_served": counters.review_served,
            }
        return {
            "decks": decks,
            "cards": [card.to_dict() for card in self._cards.values()],
            "revlog": [entry.to_dict() for entry in self._logs.values()],
        }

    def _commit(self) -> None:
        text = yaml.safe_dump(self._document(), sort_keys=False, allow_unicode=True)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(text)
                os.replace(tmp_name, self.path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise CardStoreError(f"Cannot write collection {self.path}: {e}") from e
