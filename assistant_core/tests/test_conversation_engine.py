import asyncio

import pytest

from assistant_core.config.settings import DEFAULT_GREETING
from assistant_core.domain.exceptions import ApiError, ConfigurationError
from assistant_core.engine import ConversationEngine
from assistant_core.infrastructure.storage.chat_store import ChatStore
from assistant_core.infrastructure.storage.local_storage import MemoryLocalStorage
from assistant_core.providers.registry import ProviderRegistry

CONFIG = {
    "ASSISTANT_MODELS": "gemini,lmstudio",
    "ASSISTANT_MODEL_GEMINI_TYPE": "cloud-generative",
    "ASSISTANT_MODEL_GEMINI_NAME": "Gemini",
    "ASSISTANT_MODEL_GEMINI_API_KEY": "k",
    "ASSISTANT_MODEL_LMSTUDIO_TYPE": "local-inference",
    "ASSISTANT_MODEL_LMSTUDIO_NAME": "LM Studio",
    "ASSISTANT_MODEL_LMSTUDIO_MODEL": "m",
}


class FakeAdapter:
    def __init__(self, descriptor, error=None, gate=None):
        self.descriptor = descriptor
        self.history = []
        self.prompts = []
        self.error = error
        self.gate = gate

    async def send_prompt(self, text):
        self.prompts.append(text)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return f"{self.descriptor.id} says: {text}"


class FakeFactory:
    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.adapters = {}

    def __call__(self, descriptor):
        adapter = FakeAdapter(descriptor, **self.kwargs)
        self.adapters[descriptor.id] = adapter
        return adapter


def make_engine(factory=None, store=None, config=CONFIG, **kwargs):
    return ConversationEngine(
        registry=ProviderRegistry.load(config),
        store=store,
        adapter_factory=factory or FakeFactory(),
        **kwargs,
    )


def test_new_engine_starts_with_greeting():
    engine = make_engine()
    assert [m.text for m in engine.messages] == [DEFAULT_GREETING]
    assert engine.active_provider_id == "gemini"
    assert not engine.is_pending
    assert make_engine(greeting="").messages == ()


def test_send_appends_one_user_and_one_assistant_message():
    engine = make_engine()
    reply = asyncio.run(engine.send("  hello  "))

    assert len(engine.messages) == 3
    user, assistant = engine.messages[1], engine.messages[2]
    assert user.role == "user" and user.text == "hello"
    assert assistant is reply
    assert assistant.role == "assistant"
    assert assistant.status == "final"
    assert assistant.text == "gemini says: hello"
    assert assistant.provider_id == "gemini"
    assert assistant.provider_label == "Gemini"
    assert not engine.is_pending


def test_whitespace_send_is_a_noop():
    factory = FakeFactory()
    engine = make_engine(factory)
    assert asyncio.run(engine.send("   \n")) is None
    assert len(engine.messages) == 1
    assert factory.adapters == {}


def test_send_uses_and_clears_input_buffer():
    engine = make_engine()
    engine.set_input("from buffer")
    assert engine.can_send
    reply = asyncio.run(engine.send())
    assert reply.text == "gemini says: from buffer"
    assert engine.input_text == ""
    assert not engine.can_send


def test_empty_registry_raises_without_network():
    factory = FakeFactory()
    config = {
        "ASSISTANT_MODELS": "lmstudio",
        "ASSISTANT_MODEL_LMSTUDIO_TYPE": "local-inference",
        "ASSISTANT_MODEL_LMSTUDIO_NAME": "LM Studio",
    }
    engine = make_engine(factory, config=config)

    with pytest.raises(ConfigurationError):
        asyncio.run(engine.send("hello"))
    assert len(engine.messages) == 1
    assert factory.adapters == {}
    assert not engine.is_pending


def test_at_most_one_pending_and_provider_bound_at_submission():
    async def scenario():
        gate = asyncio.Event()
        factory = FakeFactory(gate=gate)
        engine = make_engine(factory)
        snapshots = []
        engine.subscribe(snapshots.append)

        task = asyncio.create_task(engine.send("first"))
        await asyncio.sleep(0)

        assert engine.is_pending
        assert [m.status for m in engine.messages] == ["final", "final", "pending"]
        assert await engine.send("second") is None
        assert not engine.clear_messages()

        engine.set_active_provider("lmstudio")
        gate.set()
        reply = await task
        return engine, factory, reply, snapshots

    engine, factory, reply, snapshots = asyncio.run(scenario())

    assert reply.provider_id == "gemini"
    assert reply.text == "gemini says: first"
    assert factory.adapters["gemini"].prompts == ["first"]
    assert "lmstudio" not in factory.adapters
    assert len(engine.messages) == 3
    assert engine.active_provider_id == "lmstudio"
    assert all(sum(m.is_pending for m in s.messages) <= 1 for s in snapshots)
    assert snapshots[-1].is_pending is False


def test_switching_provider_affects_later_sends():
    factory = FakeFactory()
    engine = make_engine(factory)
    engine.set_active_provider("LMSTUDIO")
    reply = asyncio.run(engine.send("hi"))
    assert reply.provider_id == "lmstudio"
    assert reply.provider_label == "LM Studio"
    with pytest.raises(ConfigurationError):
        engine.set_active_provider("unknown")
    assert engine.active_provider_id == "lmstudio"


def test_provider_failure_becomes_error_message():
    error = ApiError(code="API_ERROR", message="quota exhausted", http_status=429)
    engine = make_engine(FakeFactory(error=error))
    reply = asyncio.run(engine.send("hi"))

    assert reply.is_error
    assert reply.text == "Error: quota exhausted"
    assert engine.last_error is error
    assert len(engine.messages) == 3
    assert not engine.is_pending

    engine._adapters["gemini"].error = None
    asyncio.run(engine.send("again"))
    assert engine.last_error is None


def test_unexpected_failure_resolves_placeholder_and_propagates():
    engine = make_engine(FakeFactory(error=RuntimeError("boom")))
    with pytest.raises(RuntimeError):
        asyncio.run(engine.send("hi"))
    assert not engine.is_pending
    assert engine.messages[-1].is_error
    assert engine.messages[-1].text == "Error: Request was interrupted"


def test_conversation_is_saved_and_restored():
    store = ChatStore(MemoryLocalStorage())
    engine = make_engine(store=store)
    asyncio.run(engine.send("remember me"))

    assert store.load("current") == list(engine.messages)

    restored = make_engine(store=store)
    assert restored.messages == engine.messages


def test_greeting_only_conversation_is_not_saved():
    store = ChatStore(MemoryLocalStorage())
    engine = make_engine(store=store)
    engine.clear_messages()
    assert store.list() == []


def test_new_and_load_conversation():
    store = ChatStore(MemoryLocalStorage())
    engine = make_engine(store=store)
    asyncio.run(engine.send("first conversation"))

    assert engine.new_conversation("second")
    assert engine.conversation_id == "second"
    assert len(engine.messages) == 1
    asyncio.run(engine.send("second conversation"))

    assert engine.load_conversation("current")
    assert engine.messages[1].text == "first conversation"
    assert not engine.load_conversation("missing")
    assert engine.conversation_id == "current"


def test_append_transcript_joins_with_space():
    engine = make_engine()
    engine.append_transcript("hello ")
    engine.append_transcript("  ")
    engine.append_transcript("world")
    assert engine.input_text == "hello world"


def test_unsubscribe_stops_notifications():
    engine = make_engine()
    seen = []
    unsubscribe = engine.subscribe(seen.append)
    engine.set_input("a")
    unsubscribe()
    engine.set_input("b")
    assert [s.input_text for s in seen] == ["a"]


def test_engine_starts_fresh_when_stored_messages_are_malformed():
    storage = MemoryLocalStorage()
    storage.set_item("ai_assistant_chat_history", '{"current": {"messages": [42]}}')
    engine = make_engine(store=ChatStore(storage))
    assert [m.text for m in engine.messages] == [DEFAULT_GREETING]


def test_cleared_conversation_stays_cleared_after_restart():
    store = ChatStore(MemoryLocalStorage())
    engine = make_engine(store=store)
    asyncio.run(engine.send("secret"))
    assert engine.clear_messages()

    restored = make_engine(store=store)
    assert [m.text for m in restored.messages if m.role == "user"] == []
    assert store.load("current") is None


def test_reply_id_follows_user_message_id():
    engine = make_engine()
    asyncio.run(engine.send("order"))
    user, reply = engine.messages[-2], engine.messages[-1]
    assert int(reply.id[2:]) > int(user.id[2:])
