"""
Per-deck scheduling policy.

DeckConfig is read-only to the scheduler and immutable for the duration
of a session. Rational multipliers are kept as Decimal so the scheduler
can do exact interval arithmetic (10 x 1.2 must be 12, not 12.000000000000002).
"""

from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from . import constants as c


class LeechAction(str, Enum):
    SUSPEND = "suspend"
    TAG = "tag"


class NewCardOrder(str, Enum):
    SEQUENTIAL = "sequential"
    RANDOM = "random"


class DeckConfig(BaseModel):
    """Tunable scheduling policy for one deck."""

    model_config = ConfigDict(frozen=True, extra="ignore", use_enum_values=False)

    # Learning
    learning_step_minutes: tuple[int, ...] = c.DEFAULT_LEARNING_STEPS
    relearning_step_minutes: tuple[int, ...] = c.DEFAULT_RELEARNING_STEPS
    graduating_interval_days: int = Field(default=c.DEFAULT_GRADUATING_INTERVAL, gt=0)
    easy_interval_days: int = Field(default=c.DEFAULT_EASY_INTERVAL, gt=0)
    starting_ease_permille: int = c.EASE_DEFAULT_PERMILLE
    new_hard_as_good: bool = True

    # Review
    hard_interval_multiplier: Decimal = Field(default=Decimal("1.2"), gt=1)
    easy_bonus_multiplier: Decimal = Field(default=Decimal("1.3"), gt=1)
    interval_modifier: Decimal = Field(default=Decimal("1.0"), gt=0)
    maximum_interval_days: int = Field(default=c.DEFAULT_MAXIMUM_INTERVAL, gt=0)

    # Lapses
    lapse_multiplier: Decimal = Field(default=Decimal("0"), ge=0, le=1)
    lapse_minimum_interval_days: int = Field(default=1, gt=0)
    leech_threshold: int = Field(default=c.DEFAULT_LEECH_THRESHOLD, gt=0)
    leech_action: LeechAction = LeechAction.SUSPEND

    # Daily limits
    new_per_day: int = Field(default=c.DEFAULT_NEW_PER_DAY, ge=0)
    reviews_per_day: int = Field(default=c.DEFAULT_REVIEWS_PER_DAY, ge=0)
    new_card_order: NewCardOrder = NewCardOrder.SEQUENTIAL
    learn_ahead_minutes: int = Field(default=c.DEFAULT_LEARN_AHEAD_MINUTES, ge=0)

    @field_validator(
        "hard_interval_multiplier",
        "easy_bonus_multiplier",
        "interval_modifier",
        "lapse_multiplier",
        mode="before",
    )
    @classmethod
    def exact_decimal(cls, v: Any) -> Any:
        # Decimal(1.2) would carry the binary float error along.
        if isinstance(v, float):
            return Decimal(str(v))
        return v

    @field_validator("learning_step_minutes")
    @classmethod
    def learning_steps_present(cls, v: tuple[int, ...]) -> tuple[int, ...]:
        if not v:
            raise ValueError("learning_step_minutes needs at least one step")
        return v

    @field_validator("learning_step_minutes", "relearning_step_minutes")
    @classmethod
    def steps_positive(cls, v: tuple[int, ...]) -> tuple[int, ...]:
        if any(step <= 0 for step in v):
            raise ValueError("step lengths must be positive minutes")
        return v

    @field_validator("starting_ease_permille")
    @classmethod
    def clamp_starting_ease(cls, v: int) -> int:
        return max(c.EASE_MIN_PERMILLE, min(c.EASE_MAX_PERMILLE, v))

    @model_validator(mode="after")
    def easy_not_below_graduating(self) -> "DeckConfig":
        if self.easy_interval_days < self.graduating_interval_days:
            raise ValueError("easy_interval_days must be >= graduating_interval_days")
        return self
