import asyncio
import base64
from types import SimpleNamespace

import pytest

from app.models import ChatMessage
from app.services.voice_service import VoiceService
from app.utils.audio import InvalidAudioError

WAV = b"RIFF\x24\x00\x00\x00WAVEfmt " + b"\x00" * 16
M4A = b"\x00\x00\x00\x18ftypM4A " + b"\x00" * 16


def completion(transcript="At your service, sir.", data="UkVQTFk=", content=None):
    audio = SimpleNamespace(transcript=transcript, data=data) if data is not None else None
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content, audio=audio))])


class FakeOpenAI:
    """Mimics the parts of AsyncOpenAI the voice service uses."""

    def __init__(self, transcript="What's the time?", reply=None, gate=False):
        self.transcript = transcript
        self.reply = reply or completion()
        self.transcribe_calls = []
        self.chat_calls = []
        self.gate = gate
        self.transcribe_started = asyncio.Event() if gate else None
        self.reply_started = asyncio.Event() if gate else None
        self.audio = SimpleNamespace(transcriptions=SimpleNamespace(create=self._transcribe))
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._chat))

    async def _transcribe(self, **kwargs):
        self.transcribe_calls.append(kwargs)
        if self.gate:
            self.transcribe_started.set()
            await self.reply_started.wait()
        return SimpleNamespace(text=self.transcript)

    async def _chat(self, **kwargs):
        self.chat_calls.append(kwargs)
        if self.gate:
            self.reply_started.set()
            await self.transcribe_started.wait()
        return self.reply


HISTORY = [
    ChatMessage(role="user", content="Hello"),
    ChatMessage(role="assistant", content="Good evening, sir."),
]


def test_recording_transcribes_and_replies_concurrently():
    async def run():
        # Each fake call waits for the other to start, so this only finishes
        # if both were in flight at the same time.
        client = FakeOpenAI(gate=True)
        service = VoiceService(client=client)
        audio = base64.b64encode(WAV).decode()
        result = await asyncio.wait_for(service.respond(HISTORY, audio=audio), timeout=2)
        return client, result

    client, result = asyncio.run(run())

    assert result.user_transcript == "What's the time?"
    assert result.jarvis_text == "At your service, sir."
    assert result.audio == "UkVQTFk="

    request = client.chat_calls[0]
    assert request["modalities"] == ["text", "audio"]
    assert request["messages"][0]["role"] == "system"
    assert request["messages"][1:3] == [
        {"role": "user", "content": "Hello"},
        {"role": "assistant", "content": "Good evening, sir."},
    ]
    part = request["messages"][-1]["content"][0]
    assert part["type"] == "input_audio"
    assert part["input_audio"]["format"] == "wav"
    assert part["input_audio"]["data"] == base64.b64encode(WAV).decode()
    assert client.transcribe_calls[0]["file"][0] == "speech.wav"


def test_unsupported_recording_format_replies_to_transcript():
    client = FakeOpenAI(transcript="Run diagnostics")
    service = VoiceService(client=client)

    result = asyncio.run(service.respond([], audio=base64.b64encode(M4A).decode()))

    assert result.user_transcript == "Run diagnostics"
    assert client.transcribe_calls[0]["file"][0] == "speech.m4a"
    assert client.chat_calls[0]["messages"][-1] == {"role": "user", "content": "Run diagnostics"}


def test_explicit_format_overrides_sniffing():
    client = FakeOpenAI()
    service = VoiceService(client=client)

    asyncio.run(service.respond([], audio=base64.b64encode(b"\x00" * 32).decode(), audio_format="mp3"))

    assert client.chat_calls[0]["messages"][-1]["content"][0]["input_audio"]["format"] == "mp3"


def test_text_turn_skips_transcription():
    client = FakeOpenAI()
    service = VoiceService(client=client)

    result = asyncio.run(service.respond(HISTORY, text="  Tell me something fascinating "))

    assert client.transcribe_calls == []
    assert result.user_transcript == "Tell me something fascinating"
    assert client.chat_calls[0]["messages"][-1] == {"role": "user", "content": "Tell me something fascinating"}


def test_reply_without_audio_falls_back_to_content():
    client = FakeOpenAI(reply=completion(data=None, content="Text only, sir."))
    service = VoiceService(client=client)

    result = asyncio.run(service.respond([], text="Hi"))

    assert result.jarvis_text == "Text only, sir."
    assert result.audio == ""


def test_requires_audio_or_text():
    service = VoiceService(client=FakeOpenAI())
    with pytest.raises(ValueError):
        asyncio.run(service.respond([], text="   "))


def test_invalid_audio_is_rejected():
    service = VoiceService(client=FakeOpenAI())
    with pytest.raises(InvalidAudioError):
        asyncio.run(service.respond([], audio="%%%"))


def test_failed_transcription_cancels_the_reply():
    client = FakeOpenAI()
    state = {"finished": False, "cancelled": False}

    async def failing_transcribe(**kwargs):
        raise RuntimeError("stt down")

    async def slow_chat(**kwargs):
        try:
            await asyncio.sleep(0.2)
        except asyncio.CancelledError:
            state["cancelled"] = True
            raise
        state["finished"] = True
        return completion()

    client.audio.transcriptions.create = failing_transcribe
    client.chat.completions.create = slow_chat
    service = VoiceService(client=client)

    async def run():
        with pytest.raises(RuntimeError, match="stt down"):
            await service.respond([], audio=base64.b64encode(WAV).decode())
        # The reply task is already done by the time respond() raises.
        assert state["cancelled"] is True
        await asyncio.sleep(0.3)

    asyncio.run(run())

    assert state["finished"] is False


def test_wrapped_base64_is_forwarded_without_line_breaks():
    client = FakeOpenAI()
    service = VoiceService(client=client)
    recording = WAV * 8
    wrapped = base64.encodebytes(recording).decode()
    assert "\n" in wrapped

    asyncio.run(service.respond([], audio=wrapped))

    data = client.chat_calls[0]["messages"][-1]["content"][0]["input_audio"]["data"]
    assert "\n" not in data
    assert data == base64.b64encode(recording).decode()
