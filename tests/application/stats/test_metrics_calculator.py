import pytest

from recall.application.stats.metrics_calculator import Maturity, MetricsCalculator
from recall.application.stats.service import ReviewStatsService
from recall.domain.constants import DAY_MS, MINUTE_MS
from recall.domain.models import Card, CardState, Grade, QueueStatus, ReviewLogEntry
from recall.infrastructure.adapters.memory_store import InMemoryCardStore
from tests.conftest import NOW, TODAY


@pytest.fixture
def calculator():
    return MetricsCalculator()


def log(card_id: str, grade: Grade, timestamp: int = NOW, elapsed_ms: int = 1000) -> ReviewLogEntry:
    return ReviewLogEntry(
        card_id=card_id,
        grade=grade,
        interval_days=1,
        prior_interval_days=0,
        ease_permille=2500,
        prior_ease_permille=2500,
        elapsed_ms=elapsed_ms,
        timestamp=timestamp,
        state=CardState.REVIEW,
        prior_state=CardState.NEW,
    )


def test_retention(calculator):
    logs = [log("a", Grade.GOOD), log("a", Grade.EASY), log("b", Grade.HARD), log("c", Grade.GOOD)]
    assert calculator.retention(logs) == 75.0
    assert calculator.retention([]) is None


@pytest.mark.parametrize(
    "interval, expected",
    [(1, Maturity.YOUNG), (20, Maturity.YOUNG), (21, Maturity.MATURE), (90, Maturity.VERY_MATURE)],
)
def test_maturity(calculator, review_card, interval, expected):
    assert calculator.maturity(review_card(interval=interval)) is expected


def test_new_cards_are_unseen(calculator, make_card):
    assert calculator.maturity(make_card()) is Maturity.UNSEEN


def test_deck_counts(calculator, make_card, review_card):
    cards = [
        make_card("n1"),
        make_card("n2", queue_status=QueueStatus.SUSPENDED),
        Card(id="l1", deck_id="deck", state=CardState.LEARNING, due=NOW, steps_remaining=1),
        Card(
            id="l2",
            deck_id="deck",
            state=CardState.LEARNING,
            due=NOW + MINUTE_MS,
            steps_remaining=1,
        ),
        review_card("r1", due=TODAY),
        review_card("r2", due=TODAY + 3, interval=30),
        review_card("r3", due=TODAY, queue_status=QueueStatus.USER_BURIED),
    ]
    counts = calculator.deck_counts(cards, NOW, TODAY)

    assert counts.total == 7
    assert (counts.new, counts.learning, counts.review) == (2, 2, 3)
    assert (counts.suspended, counts.buried) == (1, 1)
    assert (counts.learning_due, counts.review_due) == (1, 1)
    assert counts.maturity == {"unseen": 4, "young": 2, "mature": 1}


def test_due_forecast(calculator, review_card):
    cards = [
        review_card("overdue", due=TODAY - 4),
        review_card("today", due=TODAY),
        review_card("in_two", due=TODAY + 2),
        review_card("far", due=TODAY + 60),
        review_card("susp", due=TODAY, queue_status=QueueStatus.SUSPENDED),
    ]
    assert calculator.due_forecast(cards, TODAY, days=4) == [2, 0, 1, 0]


def test_estimate_study_time(calculator, make_card, review_card):
    cards = [make_card("n1"), review_card("r1", interval=1), review_card("r2", interval=60)]
    assert calculator.estimate_study_time_ms(cards) == 8_000 + 3_000 + 10_000


def test_average_time(calculator):
    assert calculator.average_time_ms([]) == 0
    logs = [log("a", Grade.GOOD, elapsed_ms=1000), log("a", Grade.GOOD, elapsed_ms=4000)]
    assert calculator.average_time_ms(logs) == 2500


@pytest.mark.asyncio
async def test_deck_summary(clock, make_card, review_card):
    store = InMemoryCardStore(
        [make_card("n1"), review_card("r1", due=TODAY), review_card("x1", deck_id="other")]
    )
    await store.append_review_log(log("r1", Grade.GOOD, timestamp=NOW - DAY_MS))
    await store.append_review_log(log("r1", Grade.AGAIN, timestamp=NOW - 2 * DAY_MS))
    await store.append_review_log(log("r1", Grade.AGAIN, timestamp=NOW - 60 * DAY_MS))
    await store.append_review_log(log("x1", Grade.GOOD))

    summary = await ReviewStatsService(store, clock).deck_summary("deck", forecast_days=7)

    assert summary.counts.total == 2
    assert summary.reviews_in_window == 2
    assert summary.retention == 50.0
    assert summary.forecast == [1, 0, 0, 0, 0, 0, 0]
    assert summary.estimated_time_ms == 10_000
