import asyncio

import pytest
from langchain_core.messages import AIMessage, AIMessageChunk, HumanMessage, SystemMessage

from app.models import ChatMessage
from app.services.chat_service import ChatStreamService, is_rate_limit_error, mask_key, trim_history


class FakeLLM:
    def __init__(self, chunks=(), error=None, fail_after=None):
        self.chunks = list(chunks)
        self.error = error
        self.fail_after = fail_after
        self.calls = []

    def astream(self, messages):
        self.calls.append(messages)
        return self._gen()

    async def _gen(self):
        if self.error and self.fail_after is None:
            raise self.error
        for i, chunk in enumerate(self.chunks):
            if self.fail_after is not None and i == self.fail_after:
                raise self.error
            yield AIMessageChunk(content=chunk)


@pytest.fixture
def make_service(monkeypatch):
    monkeypatch.setattr(ChatStreamService, "_shared_key_index", 0)

    def factory(llms):
        monkeypatch.setattr(ChatStreamService, "_create_llm", lambda self, key: llms[key])
        return ChatStreamService(api_keys=list(llms), model="test-model")

    return factory


async def collect(stream):
    return [token async for token in stream]


def conversation(pairs):
    messages = []
    for i in range(pairs):
        messages.append(ChatMessage(role="user", content=f"q{i}"))
        messages.append(ChatMessage(role="assistant", content=f"a{i}"))
    return messages


def test_requires_a_key():
    with pytest.raises(ValueError):
        ChatStreamService(api_keys=[])


def test_build_messages_adds_system_prompt_and_trims(make_service):
    service = make_service({"key-1": FakeLLM()})
    history = conversation(25) + [ChatMessage(role="user", content="latest")]

    messages = service.build_messages(history)

    assert isinstance(messages[0], SystemMessage)
    assert "J.A.R.V.I.S." in messages[0].content
    assert "Current time and date" in messages[0].content
    assert len(messages) == 1 + 40
    assert isinstance(messages[-1], HumanMessage) and messages[-1].content == "latest"
    assert isinstance(messages[-2], AIMessage) and messages[-2].content == "a24"


def test_open_stream_yields_non_empty_tokens(make_service):
    llm = FakeLLM(["", "Good", "", " evening", ", sir."])
    service = make_service({"key-1": llm})

    async def run():
        stream = await service.open_stream([ChatMessage(role="user", content="Hello")])
        return await collect(stream)

    assert asyncio.run(run()) == ["Good", " evening", ", sir."]
    assert len(llm.calls) == 1


def test_open_stream_with_no_text_is_empty(make_service):
    service = make_service({"key-1": FakeLLM(["", ""])})

    async def run():
        return await collect(await service.open_stream([ChatMessage(role="user", content="Hi")]))

    assert asyncio.run(run()) == []


def test_falls_over_to_next_key_before_first_token(make_service):
    broken = FakeLLM(error=RuntimeError("429 rate limit"))
    healthy = FakeLLM(["ok"])
    service = make_service({"key-broken": broken, "key-healthy": healthy})

    async def run():
        return await collect(await service.open_stream([ChatMessage(role="user", content="Hi")]))

    assert asyncio.run(run()) == ["ok"]
    assert len(broken.calls) == 1 and len(healthy.calls) == 1


def test_raises_last_error_when_every_key_fails(make_service):
    service = make_service({
        "key-a": FakeLLM(error=RuntimeError("first")),
        "key-b": FakeLLM(error=RuntimeError("second")),
    })

    with pytest.raises(RuntimeError, match="second"):
        asyncio.run(service.open_stream([ChatMessage(role="user", content="Hi")]))


def test_error_after_first_token_surfaces_from_iterator(make_service):
    service = make_service({"key-1": FakeLLM(["one", "two"], error=RuntimeError("boom"), fail_after=1)})

    async def run():
        stream = await service.open_stream([ChatMessage(role="user", content="Hi")])
        received = []
        with pytest.raises(RuntimeError, match="boom"):
            async for token in stream:
                received.append(token)
        return received

    assert asyncio.run(run()) == ["one"]


def test_keys_rotate_between_requests(make_service):
    first, second = FakeLLM(["1"]), FakeLLM(["2"])
    service = make_service({"key-first": first, "key-second": second})

    async def run():
        out = []
        for _ in range(3):
            out.extend(await collect(await service.open_stream([ChatMessage(role="user", content="Hi")])))
        return out

    assert asyncio.run(run()) == ["1", "2", "1"]


def test_helpers():
    assert trim_history(conversation(3), max_turns=1) == conversation(3)[-2:]
    assert trim_history(conversation(3), max_turns=0) == conversation(3)
    assert is_rate_limit_error(RuntimeError("Error code: 429"))
    assert is_rate_limit_error(RuntimeError("Rate limit reached for tokens per day"))
    assert not is_rate_limit_error(RuntimeError("connection reset"))
    assert mask_key("gsk_abcdefghijkl") == "gsk_...ijkl"
    assert mask_key("short") == "****"


class ClosableStream:
    """Async iterator that records whether it was closed."""

    def __init__(self, chunks):
        self.chunks = list(chunks)
        self.closed = False

    def __aiter__(self):
        return self

    async def __anext__(self):
        if not self.chunks:
            raise StopAsyncIteration
        return AIMessageChunk(content=self.chunks.pop(0))

    async def aclose(self):
        self.closed = True


class ClosableLLM:
    def __init__(self, chunks):
        self.stream = ClosableStream(chunks)

    def astream(self, messages):
        return self.stream


def test_stream_without_text_is_closed(make_service):
    llm = ClosableLLM(["", ""])
    service = make_service({"key-1": llm})

    async def run():
        return await collect(await service.open_stream([ChatMessage(role="user", content="Hi")]))

    assert asyncio.run(run()) == []
    assert llm.stream.closed is True


def test_stream_is_closed_after_last_token(make_service):
    llm = ClosableLLM(["Good", " evening"])
    service = make_service({"key-1": llm})

    async def run():
        return await collect(await service.open_stream([ChatMessage(role="user", content="Hi")]))

    assert asyncio.run(run()) == ["Good", " evening"]
    assert llm.stream.closed is True
