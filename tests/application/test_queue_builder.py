import random

import pytest

from recall.application.queue_builder import (
    build_study_queue,
    interleave,
    order_cards,
    remaining_limits,
)
from recall.domain.constants import DAY_MS, MINUTE_MS
from recall.domain.deck_config import DeckConfig, NewCardOrder
from recall.domain.models import Card, CardState, DailyCounters, QueueStatus
from recall.infrastructure.adapters.memory_store import InMemoryCardStore
from recall.infrastructure.clock import ManualClock
from tests.conftest import NOW, TODAY


def build(cards, config=None, seed=0, **limits):
    return order_cards(
        cards,
        config or DeckConfig(),
        now=NOW,
        today=TODAY,
        rng=random.Random(seed),
        **limits,
    )


def learning(card_id: str, due: int) -> Card:
    return Card(id=card_id, deck_id="deck", state=CardState.LEARNING, due=due, steps_remaining=1)


class TestInterleave:
    def test_one_new_card_after_every_five_due(self):
        due = [f"d{i}" for i in range(1, 13)]
        new = ["n1", "n2", "n3", "n4"]
        assert interleave(due, new, 5) == [
            "d1", "d2", "d3", "d4", "d5", "n1",
            "d6", "d7", "d8", "d9", "d10", "n2",
            "d11", "d12", "n3", "n4",
        ]  # fmt: skip

    def test_only_new_cards(self):
        assert interleave([], ["n1", "n2"], 5) == ["n1", "n2"]

    def test_only_due_cards(self):
        assert interleave(["d1", "d2"], [], 5) == ["d1", "d2"]


class TestOrderCards:
    def test_partitions_pools(self, make_card, review_card):
        cards = [
            make_card("n1", due=0),
            learning("l_due", NOW - MINUTE_MS),
            learning("l_later", NOW + MINUTE_MS),
            review_card("r_due", due=TODAY),
            review_card("r_later", due=TODAY + 1),
            make_card("n_susp", due=1, queue_status=QueueStatus.SUSPENDED),
            review_card("r_buried", queue_status=QueueStatus.USER_BURIED),
        ]
        result = build(cards)

        assert result.new_ids == ["n1"]
        assert result.learning_ids == ["l_due"]
        assert result.review_ids == ["r_due"]
        assert result.excluded == 2
        assert result.ordered == ["l_due", "r_due", "n1"]
        assert result.states == {
            "n1": CardState.NEW,
            "l_due": CardState.LEARNING,
            "r_due": CardState.REVIEW,
        }

    def test_learning_before_review_in_due_order(self, review_card):
        cards = [
            review_card("r_b", due=TODAY - 1),
            review_card("r_a", due=TODAY - 1),
            review_card("r_old", due=TODAY - 5),
            learning("l2", NOW - MINUTE_MS),
            learning("l1", NOW - 5 * MINUTE_MS),
        ]
        assert build(cards).ordered == ["l1", "l2", "r_old", "r_a", "r_b"]

    def test_sequential_new_order_by_position(self, make_card):
        cards = [make_card("late", due=5), make_card("early", due=1), make_card("tie", due=5)]
        assert build(cards).new_ids == ["early", "late", "tie"]

    def test_review_cap_keeps_most_overdue(self, review_card):
        cards = [review_card(f"r{i:02d}", due=TODAY - i) for i in range(30)]
        result = build(cards, DeckConfig(reviews_per_day=10))

        assert len(result.review_ids) == 10
        assert result.review_ids[0] == "r29"
        assert result.capped_review == 20

    def test_new_cap(self, new_cards):
        result = build(new_cards(8), DeckConfig(new_per_day=3))
        assert result.new_ids == ["n1", "n2", "n3"]
        assert result.capped_new == 5

    def test_learning_cards_are_never_capped(self):
        cards = [learning(f"l{i}", NOW - i) for i in range(5)]
        result = build(cards, DeckConfig(new_per_day=0, reviews_per_day=0))
        assert len(result.learning_ids) == 5

    def test_zero_new_cap_leaves_due_cards_untouched(self, new_cards, review_card):
        reviews = [review_card(f"r{i}") for i in range(7)]
        result = build(new_cards(3) + reviews, new_limit=0)
        assert result.new_ids == []
        assert result.ordered == [f"r{i}" for i in range(7)]

    def test_explicit_limits_override_config(self, new_cards):
        result = build(new_cards(5), DeckConfig(new_per_day=5), new_limit=2)
        assert result.new_ids == ["n1", "n2"]

    def test_random_order_is_seeded(self, new_cards):
        config = DeckConfig(new_card_order=NewCardOrder.RANDOM)
        cards = new_cards(20)

        first = build(cards, config, seed=7).new_ids
        second = build(cards, config, seed=7).new_ids

        assert first == second
        assert sorted(first) == sorted(c.id for c in cards)
        assert first != [c.id for c in cards]

    def test_random_order_samples_whole_pool_before_cap(self, new_cards):
        config = DeckConfig(new_card_order=NewCardOrder.RANDOM, new_per_day=5)
        cards = new_cards(50)
        picked = {cid for seed in range(10) for cid in build(cards, config, seed=seed).new_ids}
        assert len(picked) > 5

    def test_learning_due_later_today_is_reported(self):
        day_end = (TODAY + 1) * DAY_MS
        cards = [
            learning("l_now", NOW),
            learning("l_soon", NOW + 5 * MINUTE_MS),
            learning("l_tonight", day_end - 1),
            learning("l_tomorrow", day_end),
        ]
        result = build(cards, day_end=day_end)

        assert result.ordered == ["l_now"]
        assert result.learning_later == {
            "l_soon": NOW + 5 * MINUTE_MS,
            "l_tonight": day_end - 1,
        }
        assert "l_soon" in result.states
        assert "l_tomorrow" not in result.states

    def test_empty_deck(self):
        result = build([])
        assert result.is_empty
        assert result.ordered == []


def test_remaining_limits():
    config = DeckConfig(new_per_day=20, reviews_per_day=100)
    assert remaining_limits(config, None) == (20, 100)
    assert remaining_limits(config, DailyCounters(day=1, new_served=5, review_served=40)) == (
        15,
        60,
    )
    assert remaining_limits(config, DailyCounters(day=1, new_served=25)) == (0, 100)


@pytest.mark.asyncio
async def test_build_study_queue_subtracts_served_counts(clock, new_cards):
    store = InMemoryCardStore(new_cards(10))
    counters = DailyCounters(day=TODAY, new_served=18)

    result = await build_study_queue(store, clock, "deck", DeckConfig(), NOW, counters=counters)

    assert result.new_ids == ["n1", "n2"]
    assert result.capped_new == 8


@pytest.mark.asyncio
async def test_build_study_queue_ignores_yesterdays_counts(clock, new_cards):
    store = InMemoryCardStore(new_cards(10))
    counters = DailyCounters(day=TODAY - 1, new_served=20)

    result = await build_study_queue(store, clock, "deck", DeckConfig(), NOW, counters=counters)

    assert len(result.new_ids) == 10


@pytest.mark.asyncio
async def test_build_study_queue_only_reads_one_deck(clock, new_cards, review_card):
    store = InMemoryCardStore(new_cards(2) + new_cards(3, prefix="x", deck_id="other"))
    await store.put_card(review_card("r1", due=TODAY))

    result = await build_study_queue(store, clock, "deck", DeckConfig(), NOW)

    assert result.ordered == ["r1", "n1", "n2"]
    assert await store.get_review_logs() == []


@pytest.mark.asyncio
async def test_review_due_later_today_is_included(clock, review_card):
    # Review cards are due per day bucket, not per instant.
    store = InMemoryCardStore([review_card("r1", due=TODAY)])
    clock.set(TODAY * DAY_MS)

    result = await build_study_queue(store, clock, "deck", DeckConfig(), clock.now())

    assert result.review_ids == ["r1"]


@pytest.mark.asyncio
async def test_build_study_queue_reports_learning_due_before_rollover():
    clock = ManualClock(start=NOW, rollover_hour=4)
    rollover = clock.start_of_day(clock.day_bucket(NOW) + 1)
    store = InMemoryCardStore(
        [
            learning("l_tonight", rollover - MINUTE_MS),
            learning("l_after_rollover", rollover + MINUTE_MS),
        ]
    )

    result = await build_study_queue(store, clock, "deck", DeckConfig(), NOW)

    assert result.learning_later == {"l_tonight": rollover - MINUTE_MS}
