"""
Card scheduler: the new -> learning -> review -> relearning state machine.

`Scheduler.answer` is a pure function of (card, grade, config, now). It
never performs I/O and returns bit-identical results for identical
inputs, which the undo model relies on.

Interval rules applied to every transition that lands in Review:
1. Multiply by the deck's interval modifier (ceil on growth paths, floor
   on lapse paths). Growth never drops below the prior interval + 1.
2. Clamp to [1, maximum_interval_days].
3. Clamp the ease factor to [1300, 4900].
"""

import logging
import math
from dataclasses import replace
from fractions import Fraction

from recall.domain.constants import (
    EASE_EASY_BONUS,
    EASE_HARD_PENALTY,
    EASE_LAPSE_PENALTY,
    EASE_MAX_PERMILLE,
    EASE_MIN_PERMILLE,
    MINUTE_MS,
)
from recall.domain.deck_config import DeckConfig, LeechAction
from recall.domain.errors import ContractViolation
from recall.domain.models import (
    Card,
    CardState,
    Grade,
    QueueStatus,
    ReviewLogEntry,
    SchedulingResult,
)
from recall.domain.ports import Clock

logger = logging.getLogger(__name__)


def clamp_ease(ease_permille: int) -> int:
    return max(EASE_MIN_PERMILLE, min(EASE_MAX_PERMILLE, ease_permille))


def _step_delay_ms(steps: tuple[int, ...], index: int) -> int:
    """Delay of a learning step; an empty step list means "due immediately"."""
    if not steps:
        return 0
    index = max(0, min(index, len(steps) - 1))
    return steps[index] * MINUTE_MS


def _current_step_index(steps: tuple[int, ...], steps_remaining: int) -> int:
    return max(0, len(steps) - steps_remaining)


class Scheduler:
    """
    Decides a card's next due time and learning state after an answer.

    Stateless apart from the clock, which is only used for its pure
    `day_bucket` function; the current instant is always passed in.
    """

    def __init__(self, clock: Clock):
        self._clock = clock

    def answer(
        self,
        card: Card,
        grade: Grade | int | str,
        config: DeckConfig,
        now: int,
        elapsed_ms: int = 0,
    ) -> SchedulingResult:
        """
        Schedule a card after an answer.

        Args:
            card: The card as currently stored.
            grade: Again, Hard, Good or Easy.
            config: The deck's scheduling policy.
            now: Current instant in epoch milliseconds.
            elapsed_ms: Time the user spent on the card.

        Returns:
            SchedulingResult with the updated card and its log entry.

        Raises:
            ContractViolation: On an unknown grade or state, or a negative duration.
        """
        grade = Grade.parse(grade)
        if elapsed_ms < 0:
            raise ContractViolation(f"elapsed_ms must be non-negative, got {elapsed_ms}")

        if card.state is CardState.NEW:
            updated = self._answer_new(card, grade, config, now)
        elif card.state is CardState.LEARNING:
            updated = self._answer_learning(card, grade, config, now)
        elif card.state is CardState.REVIEW:
            updated = self._answer_review(card, grade, config, now)
        elif card.state is CardState.RELEARNING:
            updated = self._answer_relearning(card, grade, config, now)
        else:
            raise ContractViolation(f"Card {card.id}: unknown state {card.state!r}")

        updated = replace(updated, reps=card.reps + 1)

        leech = False
        if (
            grade is Grade.AGAIN
            and card.state in (CardState.REVIEW, CardState.RELEARNING)
            and self.is_leech(updated, config)
        ):
            leech = True
            logger.warning(
                f"Card {card.id} is a leech ({updated.lapses} lapses), "
                f"action={config.leech_action.value}"
            )
            if config.leech_action is LeechAction.SUSPEND:
                updated = replace(updated, queue_status=QueueStatus.SUSPENDED)

        log_entry = ReviewLogEntry(
            card_id=card.id,
            grade=grade,
            interval_days=updated.interval_days,
            prior_interval_days=card.interval_days,
            ease_permille=updated.ease_permille,
            prior_ease_permille=card.ease_permille,
            elapsed_ms=elapsed_ms,
            timestamp=now,
            state=updated.state,
            prior_state=card.state,
            leech=leech,
        )
        return SchedulingResult(card=updated, log_entry=log_entry)

    def preview(self, card: Card, config: DeckConfig, now: int) -> dict[Grade, Card]:
        """Card each grade would produce, without committing anything."""
        return {grade: self.answer(card, grade, config, now).card for grade in Grade}

    @staticmethod
    def is_leech(card: Card, config: DeckConfig) -> bool:
        return card.lapses >= config.leech_threshold

    # ------------------------------------------------------------------
    # Per-state branches
    # ------------------------------------------------------------------

    def _answer_new(self, card: Card, grade: Grade, config: DeckConfig, now: int) -> Card:
        if grade is Grade.HARD and config.new_hard_as_good:
            grade = Grade.GOOD

        starting_ease = clamp_ease(config.starting_ease_permille)

        if grade in (Grade.AGAIN, Grade.HARD):
            steps = config.learning_step_minutes
            return replace(
                card,
                state=CardState.LEARNING,
                steps_remaining=len(steps),
                due=now + _step_delay_ms(steps, 0),
                ease_permille=starting_ease,
            )

        raw = config.graduating_interval_days
        if grade is Grade.EASY:
            raw = config.easy_interval_days
        interval = self._grown_interval(Fraction(raw), card.interval_days, config)
        return self._graduate(card, interval, starting_ease, now)

    def _answer_learning(self, card: Card, grade: Grade, config: DeckConfig, now: int) -> Card:
        steps = config.learning_step_minutes

        if grade is Grade.AGAIN:
            return replace(
                card, steps_remaining=len(steps), due=now + _step_delay_ms(steps, 0)
            )

        if grade is Grade.HARD:
            index = _current_step_index(steps, card.steps_remaining)
            return replace(card, due=now + _step_delay_ms(steps, index))

        if grade is Grade.GOOD:
            remaining = min(card.steps_remaining, len(steps)) - 1
            if remaining > 0:
                index = len(steps) - remaining
                return replace(
                    card, steps_remaining=remaining, due=now + _step_delay_ms(steps, index)
                )
            raw = Fraction(config.graduating_interval_days)
        else:
            raw = Fraction(config.graduating_interval_days) * Fraction(
                config.easy_bonus_multiplier
            )

        interval = self._grown_interval(raw, card.interval_days, config)
        return self._graduate(card, interval, card.ease_permille, now)

    def _answer_review(self, card: Card, grade: Grade, config: DeckConfig, now: int) -> Card:
        prior = card.interval_days
        ease = Fraction(card.ease_permille, 1000)

        if grade is Grade.AGAIN:
            steps = config.relearning_step_minutes
            lapse_interval = max(
                1,
                config.lapse_minimum_interval_days,
                math.floor(prior * Fraction(config.lapse_multiplier)),
            )
            return replace(
                card,
                state=CardState.RELEARNING,
                lapses=card.lapses + 1,
                interval_days=min(lapse_interval, config.maximum_interval_days),
                steps_remaining=len(steps),
                due=now + _step_delay_ms(steps, 0),
                ease_permille=clamp_ease(card.ease_permille - EASE_LAPSE_PENALTY),
            )

        if grade is Grade.HARD:
            raw = prior * Fraction(config.hard_interval_multiplier)
            new_ease = card.ease_permille - EASE_HARD_PENALTY
        elif grade is Grade.GOOD:
            raw = prior * ease
            new_ease = card.ease_permille
        else:
            raw = prior * ease * Fraction(config.easy_bonus_multiplier)
            new_ease = card.ease_permille + EASE_EASY_BONUS

        interval = self._grown_interval(raw, prior, config)
        return self._graduate(card, interval, clamp_ease(new_ease), now)

    def _answer_relearning(
        self, card: Card, grade: Grade, config: DeckConfig, now: int
    ) -> Card:
        steps = config.relearning_step_minutes

        if grade is Grade.AGAIN:
            return replace(
                card, steps_remaining=len(steps), due=now + _step_delay_ms(steps, 0)
            )

        if grade is Grade.HARD:
            index = _current_step_index(steps, card.steps_remaining)
            return replace(card, due=now + _step_delay_ms(steps, index))

        # interval_days already holds the post-lapse interval set on the lapse
        lapse_interval = card.interval_days

        if grade is Grade.GOOD:
            remaining = min(card.steps_remaining, len(steps)) - 1
            if remaining > 0:
                index = len(steps) - remaining
                return replace(
                    card, steps_remaining=remaining, due=now + _step_delay_ms(steps, index)
                )
            interval = self._decayed_interval(Fraction(lapse_interval), config)
        else:
            raw = lapse_interval * Fraction(config.easy_bonus_multiplier)
            interval = self._grown_interval(raw, lapse_interval, config)

        return self._graduate(card, interval, card.ease_permille, now)

    # ------------------------------------------------------------------
    # Interval helpers
    # ------------------------------------------------------------------

    def _graduate(self, card: Card, interval: int, ease_permille: int, now: int) -> Card:
        return replace(
            card,
            state=CardState.REVIEW,
            interval_days=interval,
            ease_permille=clamp_ease(ease_permille),
            steps_remaining=0,
            due=self._clock.day_bucket(now) + interval,
        )

    @staticmethod
    def _grown_interval(raw: Fraction, prior: int, config: DeckConfig) -> int:
        scaled = raw * Fraction(config.interval_modifier)
        interval = max(math.ceil(scaled), prior + 1)
        return max(1, min(interval, config.maximum_interval_days))

    @staticmethod
    def _decayed_interval(raw: Fraction, config: DeckConfig) -> int:
        scaled = raw * Fraction(config.interval_modifier)
        interval = max(math.floor(scaled), config.lapse_minimum_interval_days)
        return max(1, min(interval, config.maximum_interval_days))
