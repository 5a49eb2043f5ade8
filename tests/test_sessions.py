"""Tests for the in-memory conversation session store."""
import gc

from app.services.sessions import ConversationState, InMemorySessionStore, Step


def test_set_replaces_state_wholesale():
    store = InMemorySessionStore()
    store.set(42, ConversationState(Step.SEARCH_ORIGIN, {"origin": "DEL"}))
    store.set("42", ConversationState(Step.ALERT_ORIGIN))

    state = store.get("42")
    assert state.step == Step.ALERT_ORIGIN
    assert state.data == {}
    assert len(store) == 1


def test_delete_missing_user_is_harmless():
    store = InMemorySessionStore()
    store.delete("nobody")
    assert store.get("nobody") is None


def test_one_lock_per_user():
    store = InMemorySessionStore()

    assert store.lock("1") is store.lock(1)
    assert store.lock("1") is not store.lock("2")


async def test_held_lock_is_shared():
    store = InMemorySessionStore()

    async with store.lock("1"):
        assert store.lock(1).locked()


def test_unused_locks_are_released():
    store = InMemorySessionStore()
    for user_id in range(100):
        store.lock(user_id)

    gc.collect()

    assert len(store._locks) == 0
