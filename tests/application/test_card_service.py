import pytest

from recall.application.card_service import CardService, generate_card_id
from recall.domain.errors import CardNotFoundError, ContractViolation
from recall.domain.models import CardState, QueueStatus


@pytest.fixture
def service(store):
    return CardService(store)


def test_generate_card_id_is_unique():
    first, second = generate_card_id(), generate_card_id()
    assert first.startswith("card_")
    assert first != second


@pytest.mark.asyncio
async def test_add_card_appends_to_new_order(service, store):
    first = await service.add_card("deck", card_id="a")
    second = await service.add_card("deck", card_id="b", note_id="note1")
    other = await service.add_card("other", card_id="c")

    assert (first.due, second.due, other.due) == (0, 1, 0)
    assert second.note_id == "note1"
    assert first.state is CardState.NEW
    assert [c.id for c in await store.get_cards_by_deck("deck")] == ["a", "b"]


@pytest.mark.asyncio
async def test_add_card_rejects_duplicate_id(service):
    await service.add_card("deck", card_id="a")
    with pytest.raises(ContractViolation, match="already exists"):
        await service.add_card("deck", card_id="a")


@pytest.mark.asyncio
async def test_suspend_and_unsuspend(service, store, make_card):
    await store.put_card(make_card("c1"))

    suspended = await service.suspend("c1")
    assert suspended.queue_status is QueueStatus.SUSPENDED
    assert not (await store.get_card("c1")).is_schedulable

    restored = await service.unsuspend("c1")
    assert restored.queue_status is QueueStatus.ACTIVE


@pytest.mark.asyncio
async def test_unsuspend_leaves_buried_card_alone(service, store, make_card):
    await store.put_card(make_card("c1", queue_status=QueueStatus.USER_BURIED))
    card = await service.unsuspend("c1")
    assert card.queue_status is QueueStatus.USER_BURIED


@pytest.mark.asyncio
async def test_bury_kinds(service, store, make_card):
    await store.put_card(make_card("c1"))
    await store.put_card(make_card("c2"))

    assert (await service.bury("c1")).queue_status is QueueStatus.USER_BURIED
    assert (await service.bury("c2", manual=False)).queue_status is QueueStatus.SCHEDULER_BURIED


@pytest.mark.asyncio
async def test_unbury_deck(service, store, make_card):
    await store.put_card(make_card("c1", queue_status=QueueStatus.USER_BURIED))
    await store.put_card(make_card("c2", queue_status=QueueStatus.SCHEDULER_BURIED))
    await store.put_card(make_card("c3", queue_status=QueueStatus.SUSPENDED))
    await store.put_card(make_card("x1", deck_id="other", queue_status=QueueStatus.USER_BURIED))

    assert await service.unbury_deck("deck") == 2

    statuses = {c.id: c.queue_status for c in await store.get_cards_by_deck("deck")}
    assert statuses == {
        "c1": QueueStatus.ACTIVE,
        "c2": QueueStatus.ACTIVE,
        "c3": QueueStatus.SUSPENDED,
    }
    assert (await store.get_card("x1")).queue_status is QueueStatus.USER_BURIED


@pytest.mark.asyncio
async def test_unknown_card(service):
    with pytest.raises(CardNotFoundError) as exc:
        await service.suspend("missing")
    assert exc.value.card_id == "missing"
