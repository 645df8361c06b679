"""
Study session and undo controller.

Drives one card at a time through the scheduler, commits every answer
through the card store and keeps an undo stack of pre-images for the
answers given in this session.

Consistency rules:
- At most one store write is outstanding; answer/undo are serialized.
- An undo entry is pushed only once the log entry, the card and the daily
  counters have all been written. A failed write is rolled back and leaves
  the cursor where it was.
- Learning cards answered during the session, or already due later today
  when it starts, re-enter the live queue as soon as their due instant
  passes on the session clock.
"""

import asyncio
import logging
import random
from collections import Counter, deque
from dataclasses import dataclass, field

from recall.application.card_service import CardService
from recall.application.queue_builder import QueueBuildResult, build_study_queue
from recall.application.scheduler import Scheduler
from recall.domain.constants import MINUTE_MS
from recall.domain.deck_config import DeckConfig
from recall.domain.errors import CardStoreError, ContractViolation
from recall.domain.models import (
    Card,
    CardState,
    DailyCounters,
    Grade,
    ReviewLogEntry,
    UndoEntry,
)
from recall.domain.ports import CardStore, Clock

logger = logging.getLogger(__name__)


@dataclass
class SessionStats:
    """Live counters for a session."""

    new_remaining: int = 0
    learning_remaining: int = 0
    review_remaining: int = 0
    learning_pending: int = 0  # Learning cards not yet due again
    answered: int = 0
    time_spent_ms: int = 0
    undo_depth: int = 0
    answers_by_grade: dict[str, int] = field(default_factory=dict)

    @property
    def total_remaining(self) -> int:
        return self.new_remaining + self.learning_remaining + self.review_remaining


class StudySession:
    """
    One review session over one deck.

    Usage:
        session = StudySession(store, clock)
        await session.start("spanish", config)
        card = await session.current()
        while card is not None:
            card = await session.answer(Grade.GOOD, elapsed_ms=4200)
    """

    def __init__(
        self,
        store: CardStore,
        clock: Clock,
        scheduler: Scheduler | None = None,
        undo_limit: int | None = None,
        rng: random.Random | None = None,
    ):
        """
        Args:
            store: The card store (port) all reads and writes go through.
            clock: Session clock.
            scheduler: Optional custom scheduler; uses default if not provided.
            undo_limit: Maximum undo depth; unbounded when None.
            rng: Random source for new-card shuffling; fresh per session if None.
        """
        self._store = store
        self._clock = clock
        self._scheduler = scheduler or Scheduler(clock)
        self._undo_limit = undo_limit
        self._rng = rng
        self._lock = asyncio.Lock()
        self._reset()

    def _reset(self) -> None:
        self.deck_id: str | None = None
        self.config: DeckConfig | None = None
        self._queue: list[str] = []
        self._cursor = 0
        self._states: dict[str, CardState] = {}
        self._pending: dict[str, int] = {}
        self._undo: deque[UndoEntry] = deque(maxlen=self._undo_limit)
        self._history: list[ReviewLogEntry] = []
        self._counters: DailyCounters | None = None

    @property
    def started(self) -> bool:
        return self.deck_id is not None

    @property
    def can_undo(self) -> bool:
        return bool(self._undo)

    async def start(self, deck_id: str, config: DeckConfig) -> QueueBuildResult:
        """
        Build the session queue once and reset the undo stack.

        Rolls the deck's daily counters over to today first; a rollover
        also unburies the deck's buried cards.
        """
        async with self._lock:
            self._reset()
            now = self._clock.now()
            today = self._clock.day_bucket(now)

            counters = await self._store.get_daily_counters(deck_id)
            if counters is None or counters.day != today:
                await CardService(self._store).unbury_deck(deck_id)
                counters = DailyCounters(day=today)
                await self._store.put_daily_counters(deck_id, counters)

            rng = self._rng or random.Random()
            result = await build_study_queue(
                self._store, self._clock, deck_id, config, now, rng=rng, counters=counters
            )

            self.deck_id = deck_id
            self.config = config
            self._counters = counters
            self._queue = list(result.ordered)
            self._states = dict(result.states)
            # Learning cards due later today re-enter like cards answered here.
            self._pending = dict(result.learning_later)

        logger.info(
            f"Session started for deck {deck_id}: {len(result.ordered)} cards "
            f"({len(result.new_ids)} new, {len(result.learning_ids)} learning, "
            f"{len(result.review_ids)} review, {len(result.learning_later)} learning later)"
        )
        return result

    async def current(self) -> Card | None:
        """
        The card to answer next, or None when the session is complete.
        """
        self._require_started()
        return await self._current(self._clock.now())

    async def answer(self, grade: Grade | int | str, elapsed_ms: int = 0) -> Card | None:
        """
        Answer the current card and return the next one.

        Raises:
            ContractViolation: No current card, or an invalid grade/duration.
            CardStoreError: A write failed; nothing was pushed on the undo stack.
        """
        self._require_started()
        grade = Grade.parse(grade)

        async with self._lock:
            now = self._clock.now()
            card = await self._current(now)
            if card is None:
                raise ContractViolation("No card to answer: the session is complete")

            result = self._scheduler.answer(card, grade, self.config, now, elapsed_ms)
            counters = self._counters.rolled_to(self._clock.day_bucket(now)).record(card.state)

            # Log, card, counters. Any failure undoes the earlier writes.
            log_id = await self._store.append_review_log(result.log_entry)
            try:
                await self._store.put_card(result.card)
                try:
                    await self._store.put_daily_counters(self.deck_id, counters)
                except CardStoreError:
                    logger.error(f"Writing daily counters failed; restoring card {card.id}")
                    await self._store.put_card(card)
                    raise
            except CardStoreError:
                logger.error(f"Answer for {card.id} not committed; removing log entry {log_id}")
                await self._store.delete_review_log(log_id)
                raise

            self._counters = counters
            self._undo.append(UndoEntry(card_pre_image=card, log_entry_id=log_id))
            self._history.append(result.log_entry.with_id(log_id))
            self._states[card.id] = result.card.state
            self._cursor += 1
            if result.card.state.is_stepped and result.card.is_schedulable:
                self._pending[card.id] = result.card.due

            logger.debug(
                f"Answered {card.id} {grade.name}: {card.state.value} -> "
                f"{result.card.state.value}, interval {result.card.interval_days}d"
            )

            next_card = await self._current(self._clock.now())

        if next_card is None:
            logger.info(f"Session for deck {self.deck_id} complete")
        return next_card

    async def undo(self) -> bool:
        """
        Reverse the most recent answer of this session.

        Writes the pre-image back verbatim, deletes the log entry and moves
        the cursor back onto the card.

        Returns:
            False when there is nothing to undo.
        """
        self._require_started()
        async with self._lock:
            if not self._undo:
                return False

            # Popped only after every write succeeds; the writes are idempotent,
            # so a failed undo can be retried.
            entry = self._undo[-1]
            pre_image = entry.card_pre_image
            counters = self._counters.unrecord(pre_image.state)
            await self._store.put_card(pre_image)
            await self._store.delete_review_log(entry.log_entry_id)
            await self._store.put_daily_counters(self.deck_id, counters)
            self._undo.pop()
            self._counters = counters

            if self._history and self._history[-1].id == entry.log_entry_id:
                self._history.pop()

            self._pending.pop(pre_image.id, None)
            self._cursor = max(0, self._cursor - 1)
            self._queue[self._cursor:] = [
                cid for cid in self._queue[self._cursor:] if cid != pre_image.id
            ]
            self._queue.insert(self._cursor, pre_image.id)
            self._states[pre_image.id] = pre_image.state

        logger.info(f"Undid answer for card {pre_image.id}")
        return True

    def stats(self) -> SessionStats:
        """Counts of what is left in the live queue and what was answered."""
        remaining = Counter(self._states.get(cid) for cid in self._queue[self._cursor:])
        grades = Counter(entry.grade.name.lower() for entry in self._history)
        return SessionStats(
            new_remaining=remaining[CardState.NEW],
            learning_remaining=(
                remaining[CardState.LEARNING]
                + remaining[CardState.RELEARNING]
                + len(self._pending)
            ),
            review_remaining=remaining[CardState.REVIEW],
            learning_pending=len(self._pending),
            answered=len(self._history),
            time_spent_ms=sum(entry.elapsed_ms for entry in self._history),
            undo_depth=len(self._undo),
            answers_by_grade={g.name.lower(): grades[g.name.lower()] for g in Grade},
        )

    def abandon(self) -> None:
        """Drop the queue and undo stack. Committed answers stay committed."""
        if self.started:
            logger.info(f"Session for deck {self.deck_id} abandoned")
        self._reset()

    # ------------------------------------------------------------------

    def _require_started(self) -> None:
        if not self.started:
            raise ContractViolation("Session not started")

    def _requeue_due_learning(self, now: int) -> None:
        due = sorted(
            (due_at, card_id) for card_id, due_at in self._pending.items() if due_at <= now
        )
        for offset, (_, card_id) in enumerate(due):
            del self._pending[card_id]
            self._queue.insert(self._cursor + offset, card_id)

    async def _current(self, now: int) -> Card | None:
        self._requeue_due_learning(now)

        while True:
            while self._cursor < len(self._queue):
                card = await self._store.get_card(self._queue[self._cursor])
                if card is not None and card.is_schedulable:
                    return card
                # Suspended, buried or deleted since the queue was built.
                del self._queue[self._cursor]

            if not self._pending:
                return None

            # Nothing else left: learn ahead within the deck's window.
            due_at, card_id = min((d, cid) for cid, d in self._pending.items())
            if due_at > now + self.config.learn_ahead_minutes * MINUTE_MS:
                return None
            del self._pending[card_id]
            self._queue.append(card_id)
