import asyncio

import pytest

from src.helpdesk.domain.errors import (
    ConversationClosed,
    ConversationNotFound,
    MessageLimitExceeded,
    StoreError,
)
from src.helpdesk.infrastructure.record_store import InMemoryRecordStore
from src.helpdesk.services.conversation_manager import ConversationManager, default_title


def _run(coro):
    return asyncio.run(coro)


@pytest.fixture
def manager(store):
    return ConversationManager(store, message_cap=10)


def test_get_or_create_active_reuses_newest_active(manager):
    first = _run(manager.get_or_create_active("u1"))
    assert first.status == "active"
    assert first.message_count == 0
    assert first.title.startswith("IT Support Chat ")
    again = _run(manager.get_or_create_active("u1"))
    assert again.id == first.id


def test_get_or_create_active_skips_closed(manager):
    first = _run(manager.get_or_create_active("u1"))
    _run(manager.close(first.id, "u1"))
    second = _run(manager.get_or_create_active("u1"))
    assert second.id != first.id


def test_append_increments_count_and_orders_messages(manager):
    conv = _run(manager.create("u1", "Wi-Fi"))
    _run(manager.append_message(conv.id, "u1", "hello", True))
    _run(manager.append_message(conv.id, "u1", "hi there", False))
    assert _run(manager.get(conv.id)).message_count == 2
    msgs = _run(manager.messages(conv.id))
    assert [(m.content, m.is_user) for m in msgs] == [("hello", True), ("hi there", False)]


def test_append_rejected_at_cap_leaves_count_unchanged(manager):
    conv = _run(manager.create("u1", "Cap"))
    for n in range(10):
        _run(manager.append_message(conv.id, "u1", f"m{n}", n % 2 == 0))
    with pytest.raises(MessageLimitExceeded):
        _run(manager.append_message(conv.id, "u1", "one too many", True))
    assert _run(manager.get(conv.id)).message_count == 10
    assert len(_run(manager.messages(conv.id))) == 10


def test_append_to_closed_conversation_rejected(manager):
    conv = _run(manager.create("u1", "Done"))
    _run(manager.close(conv.id, "u1"))
    with pytest.raises(ConversationClosed):
        _run(manager.append_message(conv.id, "u1", "still there?", True))
    assert _run(manager.get(conv.id)).message_count == 0


def test_append_to_foreign_or_missing_conversation_is_not_found(manager):
    conv = _run(manager.create("u1", "Mine"))
    with pytest.raises(ConversationNotFound):
        _run(manager.append_message(conv.id, "intruder", "hi", True))
    with pytest.raises(ConversationNotFound):
        _run(manager.append_message("missing", "u1", "hi", True))


def test_close_requires_owner(manager):
    conv = _run(manager.create("u1", "Mine"))
    with pytest.raises(ConversationNotFound):
        _run(manager.close(conv.id, "intruder"))
    closed = _run(manager.close(conv.id, "u1"))
    assert closed.status == "closed"


def test_concurrent_appends_never_exceed_cap(manager):
    conv = _run(manager.create("u1", "Race"))

    async def flood():
        return await asyncio.gather(
            *(manager.append_message(conv.id, "u1", f"m{n}", True) for n in range(25)),
            return_exceptions=True,
        )

    results = _run(flood())
    accepted = [r for r in results if not isinstance(r, Exception)]
    rejected = [r for r in results if isinstance(r, MessageLimitExceeded)]
    assert len(accepted) == 10
    assert len(rejected) == 15
    assert _run(manager.get(conv.id)).message_count == 10


def test_failed_message_insert_releases_reserved_slot():
    class FlakyStore(InMemoryRecordStore):
        async def insert(self, collection, doc):
            if collection == "messages":
                raise StoreError("insert", collection)
            return await super().insert(collection, doc)

    manager = ConversationManager(FlakyStore(), message_cap=10)
    conv = _run(manager.create("u1", "Flaky"))
    with pytest.raises(StoreError):
        _run(manager.append_message(conv.id, "u1", "hello", True))
    assert _run(manager.get(conv.id)).message_count == 0


def test_append_returns_conversation_as_reserved(manager):
    conv = _run(manager.create("u1", "Counted"))
    message, reserved = _run(manager.append_message(conv.id, "u1", "hello", True))
    assert message.conversation_id == reserved.id == conv.id
    assert reserved.message_count == 1


def test_unexpected_insert_error_also_releases_slot():
    class BadDocumentStore(InMemoryRecordStore):
        async def insert(self, collection, doc):
            if collection == "messages":
                raise ValueError("cannot encode object")
            return await super().insert(collection, doc)

    manager = ConversationManager(BadDocumentStore(), message_cap=10)
    conv = _run(manager.create("u1", "Encoding"))
    with pytest.raises(ValueError):
        _run(manager.append_message(conv.id, "u1", "hello", True))
    assert _run(manager.get(conv.id)).message_count == 0


def test_failed_release_keeps_original_insert_error():
    class OutageStore(InMemoryRecordStore):
        async def insert(self, collection, doc):
            if collection == "messages":
                raise StoreError("insert", collection)
            return await super().insert(collection, doc)

        async def increment(self, collection, filters, field, amount=1, ceiling=None, values=None):
            if amount < 0:
                raise StoreError("increment", collection)
            return await super().increment(collection, filters, field, amount, ceiling, values)

    manager = ConversationManager(OutageStore(), message_cap=10)
    conv = _run(manager.create("u1", "Outage"))
    with pytest.raises(StoreError) as excinfo:
        _run(manager.append_message(conv.id, "u1", "hello", True))
    assert excinfo.value.operation == "insert"
    assert excinfo.value.collection == "messages"


def test_history_newest_first_and_limit(manager):
    a = _run(manager.create("u1", "A"))
    b = _run(manager.create("u1", "B"))
    _run(manager.create("u2", "Other"))
    _run(manager.append_message(a.id, "u1", "bump", True))
    history = _run(manager.history("u1"))
    assert [c.id for c in history] == [a.id, b.id]
    assert [c.id for c in _run(manager.history("u1", limit=1))] == [a.id]
    assert _run(manager.history("u1", limit=0)) == []


def test_default_title_format():
    from datetime import datetime

    assert default_title(datetime(2024, 3, 5, 9, 7, 1)) == "IT Support Chat 2024-03-05 09:07:01"
