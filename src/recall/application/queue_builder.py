"""
Queue builder for study sessions.

Builds ordered study queues by:
1. Partitioning active cards into New, Learning-due and Review-due pools
2. Capping New and Review-due at the deck's remaining daily limits
3. Ordering each pool (new-card order, due date, due instant)
4. Interleaving one new card after every few due cards
"""

import logging
import random
from dataclasses import dataclass, field

from recall.domain.constants import NEW_CARD_SPACING
from recall.domain.deck_config import DeckConfig, NewCardOrder
from recall.domain.models import Card, CardState, DailyCounters
from recall.domain.ports import CardStore, Clock

logger = logging.getLogger(__name__)


@dataclass
class QueueBuildResult:
    """Result of queue building operation."""

    ordered: list[str]  # Card ids in serving order
    new_ids: list[str]  # New cards admitted under the cap
    learning_ids: list[str]  # Learning/relearning cards due now (uncapped)
    review_ids: list[str]  # Review cards due today, admitted under the cap
    capped_new: int = 0  # Eligible new cards left out by the cap
    capped_review: int = 0  # Due review cards left out by the cap
    excluded: int = 0  # Suspended or buried cards
    learning_later: dict[str, int] = field(default_factory=dict)  # Due later today: id -> due
    states: dict[str, CardState] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.ordered


def remaining_limits(config: DeckConfig, counters: DailyCounters | None) -> tuple[int, int]:
    """
    New/review allowances left for today.

    Returns:
        (new_limit, review_limit), never negative.
    """
    new_served = counters.new_served if counters else 0
    review_served = counters.review_served if counters else 0
    return (
        max(0, config.new_per_day - new_served),
        max(0, config.reviews_per_day - review_served),
    )


def order_cards(
    cards: list[Card],
    config: DeckConfig,
    now: int,
    today: int,
    rng: random.Random,
    new_limit: int | None = None,
    review_limit: int | None = None,
    day_end: int | None = None,
) -> QueueBuildResult:
    """
    Select, cap and order the cards of one deck for a session.

    Pure: reads nothing but its arguments. `cards` must be in insertion
    order; Sequential new-card order falls back on it for equal positions.

    Args:
        cards: Every card of the deck.
        config: Deck policy.
        now: Current instant (epoch ms), for Learning due times.
        today: Current day bucket, for Review due days.
        rng: Random source for Random new-card order.
        new_limit: Cap on New cards; defaults to config.new_per_day.
        review_limit: Cap on Review cards; defaults to config.reviews_per_day.
        day_end: First instant of tomorrow. Learning cards due before it but
            after `now` are reported in `learning_later`.
    """
    if new_limit is None:
        new_limit = config.new_per_day
    if review_limit is None:
        review_limit = config.reviews_per_day

    new_pool: list[Card] = []
    learning_pool: list[Card] = []
    review_pool: list[Card] = []
    later_pool: list[Card] = []
    excluded = 0

    for card in cards:
        if not card.is_schedulable:
            excluded += 1
            continue
        if card.state is CardState.NEW:
            new_pool.append(card)
        elif card.state.is_stepped:
            if card.due <= now:
                learning_pool.append(card)
            elif day_end is not None and card.due < day_end:
                later_pool.append(card)
        elif card.state is CardState.REVIEW:
            if card.due <= today:
                review_pool.append(card)

    # sorted() is stable, so equal positions keep insertion order
    new_pool = sorted(new_pool, key=lambda c: c.due)
    if config.new_card_order is NewCardOrder.RANDOM:
        rng.shuffle(new_pool)
    learning_pool.sort(key=lambda c: (c.due, c.id))
    review_pool.sort(key=lambda c: (c.due, c.id))

    capped_new = max(0, len(new_pool) - new_limit)
    capped_review = max(0, len(review_pool) - review_limit)
    new_pool = new_pool[:new_limit]
    review_pool = review_pool[:review_limit]

    due_ids = [c.id for c in learning_pool] + [c.id for c in review_pool]
    new_ids = [c.id for c in new_pool]

    ordered = interleave(due_ids, new_ids, NEW_CARD_SPACING)

    states = {c.id: c.state for c in (*new_pool, *learning_pool, *review_pool, *later_pool)}
    return QueueBuildResult(
        ordered=ordered,
        new_ids=new_ids,
        learning_ids=[c.id for c in learning_pool],
        review_ids=[c.id for c in review_pool],
        capped_new=capped_new,
        capped_review=capped_review,
        excluded=excluded,
        learning_later={c.id: c.due for c in later_pool},
        states=states,
    )


def interleave(due_ids: list[str], new_ids: list[str], spacing: int) -> list[str]:
    """
    Emit due ids in order, inserting one new id after every `spacing` due ids.

    Whichever pool outlasts the other is appended as-is.
    """
    ordered: list[str] = []
    new_iter = iter(new_ids)
    for emitted, card_id in enumerate(due_ids, start=1):
        ordered.append(card_id)
        if emitted % spacing == 0:
            new_id = next(new_iter, None)
            if new_id is not None:
                ordered.append(new_id)
    ordered.extend(new_iter)
    return ordered


async def build_study_queue(
    store: CardStore,
    clock: Clock,
    deck_id: str,
    config: DeckConfig,
    now: int,
    rng: random.Random | None = None,
    counters: DailyCounters | None = None,
) -> QueueBuildResult:
    """
    Build the ordered session queue for a deck. Read-only against the store.

    Args:
        store: Card store to read the deck from.
        clock: Supplies the day bucket of `now`.
        deck_id: Deck to study.
        config: Deck policy.
        now: Current instant (epoch ms).
        rng: Random source; a fresh unseeded one when omitted.
        counters: Today's served counts, used to shrink the daily caps.

    Returns:
        QueueBuildResult with the ordered queue and pool diagnostics.
    """
    cards = await store.get_cards_by_deck(deck_id)
    today = clock.day_bucket(now)

    if counters is not None and counters.day != today:
        counters = counters.rolled_to(today)
    new_limit, review_limit = remaining_limits(config, counters)

    result = order_cards(
        cards,
        config,
        now=now,
        today=today,
        rng=rng or random.Random(),
        new_limit=new_limit,
        review_limit=review_limit,
        day_end=clock.start_of_day(today + 1),
    )
    logger.debug(
        f"Queue for deck {deck_id}: {len(result.new_ids)} new, "
        f"{len(result.learning_ids)} learning, {len(result.review_ids)} review, "
        f"{len(result.learning_later)} learning later today "
        f"({result.capped_new} new / {result.capped_review} review over limit, "
        f"{result.excluded} excluded)"
    )
    return result
