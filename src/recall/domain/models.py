"""
Domain models for card scheduling.

These are pure data structures with no I/O or external dependencies.
Cards and log entries are immutable; every scheduling decision produces
a new Card, so the value held before an answer doubles as the undo
pre-image.
"""

from dataclasses import asdict, dataclass, replace
from enum import Enum, IntEnum
from typing import Any

from .constants import EASE_MAX_PERMILLE, EASE_MIN_PERMILLE
from .errors import ContractViolation


class CardState(str, Enum):
    """Learning lifecycle of a card. Governs which scheduler branch applies."""

    NEW = "new"
    LEARNING = "learning"
    REVIEW = "review"
    RELEARNING = "relearning"

    @property
    def is_stepped(self) -> bool:
        return self in (CardState.LEARNING, CardState.RELEARNING)


class QueueStatus(str, Enum):
    """Queue membership, orthogonal to CardState."""

    ACTIVE = "active"
    USER_BURIED = "user_buried"
    SCHEDULER_BURIED = "scheduler_buried"
    SUSPENDED = "suspended"

    @property
    def is_buried(self) -> bool:
        return self in (QueueStatus.USER_BURIED, QueueStatus.SCHEDULER_BURIED)


class Grade(IntEnum):
    """Button pressed (1=Again, 2=Hard, 3=Good, 4=Easy)."""

    AGAIN = 1
    HARD = 2
    GOOD = 3
    EASY = 4

    @classmethod
    def parse(cls, value: Any) -> "Grade":
        """Accept a Grade, its number or its (case-insensitive) name."""
        if isinstance(value, Grade):
            return value
        if isinstance(value, str):
            name = value.strip().upper()
            if name in cls.__members__:
                return cls[name]
            if name.isdigit():
                value = int(name)
        if isinstance(value, int) and not isinstance(value, bool):
            try:
                return cls(value)
            except ValueError:
                pass
        raise ContractViolation(f"Grade must be one of Again, Hard, Good, Easy; got {value!r}")


@dataclass(frozen=True)
class Card:
    """
    One schedulable unit, tied 1:1 to a template instance of a note.

    Attributes:
        id: Opaque, immutable, unique identifier.
        deck_id: Deck the card belongs to.
        state: Lifecycle state (see CardState).
        due: New cards: ordering position. Learning/Relearning: epoch ms.
            Review: day bucket.
        interval_days: Last granted interval; 0 only for never-graduated cards.
        ease_permille: Ease factor scaled by 1000 (2500 = 2.5).
        steps_remaining: Learning/relearning steps left before graduation.
        reps: Total scheduling calls.
        lapses: Again answers given while in Review.
        queue_status: Active, buried or suspended.
        note_id: Owning note, if any.
    """

    id: str
    deck_id: str
    state: CardState = CardState.NEW
    due: int = 0
    interval_days: int = 0
    ease_permille: int = 2500
    steps_remaining: int = 0
    reps: int = 0
    lapses: int = 0
    queue_status: QueueStatus = QueueStatus.ACTIVE
    note_id: str | None = None

    def __post_init__(self):
        if not isinstance(self.state, CardState):
            raise ContractViolation(f"Card {self.id}: unknown state {self.state!r}")
        if not isinstance(self.queue_status, QueueStatus):
            raise ContractViolation(f"Card {self.id}: unknown queue status {self.queue_status!r}")
        if not EASE_MIN_PERMILLE <= self.ease_permille <= EASE_MAX_PERMILLE:
            raise ContractViolation(
                f"Card {self.id}: ease {self.ease_permille} outside "
                f"[{EASE_MIN_PERMILLE}, {EASE_MAX_PERMILLE}]"
            )
        if min(self.interval_days, self.steps_remaining, self.reps, self.lapses) < 0:
            raise ContractViolation(f"Card {self.id}: counters must be non-negative")
        if self.state is CardState.NEW and (self.interval_days != 0 or self.reps != 0):
            raise ContractViolation(f"Card {self.id}: a new card has no interval and no reps")
        if not self.state.is_stepped and self.steps_remaining != 0:
            raise ContractViolation(
                f"Card {self.id}: steps_remaining is only meaningful while learning"
            )

    @property
    def is_schedulable(self) -> bool:
        return self.queue_status is QueueStatus.ACTIVE

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["state"] = self.state.value
        data["queue_status"] = self.queue_status.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Card":
        values = dict(data)
        try:
            values["state"] = CardState(values.get("state", CardState.NEW))
            values["queue_status"] = QueueStatus(values.get("queue_status", QueueStatus.ACTIVE))
        except ValueError as e:
            raise ContractViolation(str(e)) from e
        return cls(**values)


@dataclass(frozen=True)
class ReviewLogEntry:
    """
    Append-only audit record created once per scheduler invocation.

    `id` is None until the card store assigns one on append.
    """

    card_id: str
    grade: Grade
    interval_days: int
    prior_interval_days: int
    ease_permille: int
    prior_ease_permille: int
    elapsed_ms: int
    timestamp: int
    state: CardState
    prior_state: CardState
    leech: bool = False
    id: str | None = None

    def with_id(self, log_id: str) -> "ReviewLogEntry":
        return replace(self, id=log_id)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["grade"] = int(self.grade)
        data["state"] = self.state.value
        data["prior_state"] = self.prior_state.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ReviewLogEntry":
        values = dict(data)
        values["grade"] = Grade(values["grade"])
        values["state"] = CardState(values["state"])
        values["prior_state"] = CardState(values["prior_state"])
        return cls(**values)


@dataclass(frozen=True)
class UndoEntry:
    """Pre-image of a card plus the log entry its answer produced."""

    card_pre_image: Card
    log_entry_id: str


@dataclass(frozen=True)
class DailyCounters:
    """New/review cards already served in one day bucket."""

    day: int
    new_served: int = 0
    review_served: int = 0

    def rolled_to(self, day: int) -> "DailyCounters":
        if day == self.day:
            return self
        return DailyCounters(day=day)

    def record(self, prior_state: CardState) -> "DailyCounters":
        if prior_state is CardState.NEW:
            return replace(self, new_served=self.new_served + 1)
        if prior_state is CardState.REVIEW:
            return replace(self, review_served=self.review_served + 1)
        return self

    def unrecord(self, prior_state: CardState) -> "DailyCounters":
        if prior_state is CardState.NEW:
            return replace(self, new_served=max(0, self.new_served - 1))
        if prior_state is CardState.REVIEW:
            return replace(self, review_served=max(0, self.review_served - 1))
        return self


@dataclass(frozen=True)
class SchedulingResult:
    """Output of one scheduler call: the updated card and its log entry."""

    card: Card
    log_entry: ReviewLogEntry

    @property
    def leech(self) -> bool:
        return self.log_entry.leech
