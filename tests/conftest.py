import pytest

from recall.domain.constants import DAY_MS, HOUR_MS
from recall.domain.deck_config import DeckConfig
from recall.domain.models import Card, CardState
from recall.infrastructure.adapters.memory_store import InMemoryCardStore
from recall.infrastructure.clock import ManualClock

# Day bucket 20000, 10:00 (the test clock rolls over at midnight UTC).
TODAY = 20_000
NOW = TODAY * DAY_MS + 10 * HOUR_MS


@pytest.fixture
def clock():
    return ManualClock(start=NOW)


@pytest.fixture
def config():
    return DeckConfig()


@pytest.fixture
def make_card():
    """Factory for cards in the 'deck' deck."""

    def _make(card_id: str = "c1", deck_id: str = "deck", **kwargs) -> Card:
        return Card(id=card_id, deck_id=deck_id, **kwargs)

    return _make


@pytest.fixture
def review_card(make_card):
    def _make(card_id: str = "r1", interval: int = 10, ease: int = 2500, **kwargs) -> Card:
        kwargs.setdefault("due", TODAY)
        kwargs.setdefault("reps", 5)
        return make_card(
            card_id,
            state=CardState.REVIEW,
            interval_days=interval,
            ease_permille=ease,
            **kwargs,
        )

    return _make


@pytest.fixture
def new_cards(make_card):
    def _make(count: int, prefix: str = "n", deck_id: str = "deck") -> list[Card]:
        return [make_card(f"{prefix}{i}", deck_id=deck_id, due=i) for i in range(1, count + 1)]

    return _make


@pytest.fixture
def store():
    return InMemoryCardStore()


@pytest.fixture
def mock_home(tmp_path, monkeypatch):
    """Mocks Path.home() to point to a temp dir."""
    home = tmp_path / "home"
    home.mkdir()

    # Mocking HOME to a temp directory to isolate config/collections
    monkeypatch.setenv("HOME", str(home))
    for var in (
        "RECALL_BACKEND",
        "RECALL_COLLECTION_PATH",
        "RECALL_LOG_DIR",
        "RECALL_RANDOM_SEED",
        "RECALL_VERBOSE",
    ):
        monkeypatch.delenv(var, raising=False)
    return home
