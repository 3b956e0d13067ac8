import asyncio

import pytest

from src.helpdesk.domain.errors import ConversationClosed, GenerationError, MessageLimitExceeded, StoreError
from src.helpdesk.infrastructure.record_store import InMemoryRecordStore
from src.helpdesk.services.conversation_manager import ConversationManager
from src.helpdesk.services.device_context import DeviceDirectory, DeviceInfo, UNKNOWN_DEVICE
from src.helpdesk.services.message_intake import (
    REFUSAL_MESSAGE,
    MessageIntake,
    build_reply_prompt,
)


def _run(coro):
    return asyncio.run(coro)


@pytest.fixture
def intake(store, generator):
    return MessageIntake(ConversationManager(store, message_cap=10), generator, DeviceDirectory(store))


def test_non_it_message_is_refused_without_writes(intake, store, generator):
    generator.label = "Not IT Support"
    result = _run(intake.process("u1", "What's a good pasta recipe?"))
    assert result.filtered is True
    assert result.refusal == REFUSAL_MESSAGE
    assert _run(store.count("conversations")) == 0
    assert _run(store.count("messages")) == 0
    assert generator.prompts == []


def test_classifier_failure_fails_open(intake, store, generator):
    generator.classify_error = GenerationError("provider down")
    result = _run(intake.process("u1", "My VPN keeps disconnecting"))
    assert result.filtered is False
    assert result.ai_message.content == generator.reply
    assert _run(store.count("messages")) == 2


def test_accepted_message_persists_both_turns(intake):
    result = _run(intake.process("u1", "Outlook won't open"))
    assert result.conversation.message_count == 2
    assert result.user_message.is_user is True
    assert result.ai_message.is_user is False
    assert result.user_message.conversation_id == result.conversation.id == result.ai_message.conversation_id


def test_prompt_carries_device_and_conversation_context(intake, store, generator):
    _run(DeviceDirectory(store).register("u1", "Apple", "MacBook Air"))
    result = _run(intake.process("u1", "Bluetooth mouse lag"))
    prompt = generator.prompts[-1]["prompt"]
    assert "Apple MacBook Air" in prompt
    assert result.conversation.id in prompt
    assert prompt.endswith("Bluetooth mouse lag")


def test_prompt_falls_back_to_unknown_device(intake, generator):
    _run(intake.process("u1", "Keyboard not working"))
    assert "Unknown Unknown" in generator.prompts[-1]["prompt"]


def test_generation_failure_keeps_user_message_only(intake, store, generator):
    generator.generate_error = GenerationError("timeout")
    with pytest.raises(GenerationError):
        _run(intake.process("u1", "Screen flickers"))
    rows = _run(store.find("messages"))
    assert len(rows) == 1
    assert rows[0]["is_user"] is True
    conv = _run(store.find_one("conversations", {"user_id": "u1"}))
    assert conv["message_count"] == 1


def test_conflicts_propagate_without_generation(intake, store, generator):
    manager = ConversationManager(store, message_cap=10)
    conv = _run(manager.create("u1", "Closed one"))
    _run(manager.close(conv.id, "u1"))
    with pytest.raises(ConversationClosed):
        _run(intake.process("u1", "Printer jam", conversation_id=conv.id))
    assert generator.prompts == []


def test_fifth_exchange_fills_then_sixth_is_rejected(intake):
    first = _run(intake.process("u1", "Disk full"))
    for _ in range(4):
        _run(intake.process("u1", "Still full"))
    with pytest.raises(MessageLimitExceeded):
        _run(intake.process("u1", "And now?", conversation_id=first.conversation.id))


def test_last_slot_taken_by_user_turn_skips_generation(intake, store, generator):
    manager = ConversationManager(store, message_cap=10)
    conv = _run(manager.create("u1", "Odd count"))
    # An earlier failed generation left an unanswered user turn behind.
    _run(store.update("conversations", {"id": conv.id}, {"message_count": 9}))
    with pytest.raises(MessageLimitExceeded):
        _run(intake.process("u1", "Is it fixed?", conversation_id=conv.id))
    assert generator.prompts == []
    rows = _run(store.find("messages", {"conversation_id": conv.id}))
    assert [row["is_user"] for row in rows] == [True]
    assert _run(manager.get(conv.id)).message_count == 10


def test_answered_exchange_survives_unreadable_conversation(generator):
    class NoLookupStore(InMemoryRecordStore):
        async def find_one(self, collection, filters):
            if collection == "conversations":
                raise StoreError("find_one", collection)
            return await super().find_one(collection, filters)

    store = NoLookupStore()
    intake = MessageIntake(ConversationManager(store, message_cap=10), generator, DeviceDirectory(store))
    result = _run(intake.process("u1", "Teams crashes on launch"))
    assert result.conversation.message_count == 2
    assert result.ai_message.content == generator.reply


def test_build_reply_prompt_layout():
    prompt = build_reply_prompt("help", DeviceInfo("Dell", "XPS"), "c42")
    assert prompt.startswith("The user is using a Dell XPS. ")
    assert "(ID: c42)" in prompt
    assert "You are an IT Support assistant" in prompt
    assert "ongoing" not in build_reply_prompt("help", UNKNOWN_DEVICE, None)
