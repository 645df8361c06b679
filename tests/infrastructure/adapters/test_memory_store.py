from dataclasses import replace

import pytest

from recall.domain.deck_config import DeckConfig
from recall.domain.models import CardState, DailyCounters, Grade, ReviewLogEntry
from recall.infrastructure.adapters.memory_store import InMemoryCardStore


def entry(card_id: str, timestamp: int) -> ReviewLogEntry:
    return ReviewLogEntry(
        card_id=card_id,
        grade=Grade.GOOD,
        interval_days=1,
        prior_interval_days=0,
        ease_permille=2500,
        prior_ease_permille=2500,
        elapsed_ms=0,
        timestamp=timestamp,
        state=CardState.REVIEW,
        prior_state=CardState.NEW,
    )


@pytest.mark.asyncio
async def test_cards_keep_insertion_order(new_cards):
    store = InMemoryCardStore(new_cards(3))
    card = await store.get_card("n1")
    await store.put_card(replace(card, due=99))

    assert [c.id for c in await store.get_cards_by_deck("deck")] == ["n1", "n2", "n3"]
    assert (await store.get_card("n1")).due == 99
    assert await store.get_card("missing") is None
    assert await store.get_cards_by_deck("other") == []


@pytest.mark.asyncio
async def test_review_log_append_filter_delete(store):
    first = await store.append_review_log(entry("a", 100))
    second = await store.append_review_log(entry("b", 200))
    assert first != second

    assert [e.id for e in await store.get_review_logs()] == [first, second]
    assert [e.id for e in await store.get_review_logs(card_id="b")] == [second]
    assert [e.id for e in await store.get_review_logs(since=150)] == [second]

    await store.delete_review_log(first)
    await store.delete_review_log("unknown")
    assert [e.id for e in await store.get_review_logs()] == [second]


@pytest.mark.asyncio
async def test_counters_and_deck_config(store):
    assert await store.get_daily_counters("deck") is None
    assert await store.get_deck_config("deck") is None

    await store.put_daily_counters("deck", DailyCounters(day=5, new_served=2))
    await store.put_deck_config("deck", DeckConfig(new_per_day=3))

    assert (await store.get_daily_counters("deck")).new_served == 2
    assert (await store.get_deck_config("deck")).new_per_day == 3
