"""
VOICE SERVICE MODULE
====================

Runs one speech-to-speech turn for POST /api/voice-chat. The provider does all
the audio work; this service decides which calls to make and in what order.

TWO UPSTREAM CALLS:
  - transcribe(): speech-to-text of the user's recording, so the client can
    show what was heard.
  - reply(): a multimodal chat completion that listens to the recording (or
    reads the typed text) and answers with speech plus its transcript.

  They don't depend on each other, so for a recording in a format the chat
  model accepts (wav, mp3) both run concurrently as tasks and the turn takes
  as long as the slower one. If one of them fails the other is cancelled.
  Other recordings (m4a from phone recorders, ogg, webm) can only be
  transcribed, so the transcript is produced first and the reply is
  generated from it as text.

Typed turns (suggestion chips, text mode) skip transcription entirely.
"""

import asyncio
import logging
from typing import List, Optional, Sequence, Tuple

from openai import AsyncOpenAI

from app.models import ChatMessage, VoiceChatResponse
from app.services.chat_service import trim_history
from app.utils.audio import (
    CHAT_INPUT_FORMATS,
    MIME_TYPES,
    decode_audio,
    detect_audio_format,
    encode_audio,
    normalize_format,
)
from app.utils.time_info import build_system_prompt
from config import (
    JARVIS_AUDIO_FORMAT,
    JARVIS_SYSTEM_PROMPT,
    JARVIS_VOICE,
    OPENAI_API_KEY,
    OPENAI_AUDIO_MODEL,
    OPENAI_BASE_URL,
    OPENAI_TRANSCRIBE_MODEL,
)

logger = logging.getLogger("J.A.R.V.I.S")


class VoiceService:
    """Speech-to-text plus spoken chat replies through an OpenAI-compatible API."""

    def __init__(self, client: Optional[AsyncOpenAI] = None):
        if client is None:
            if not OPENAI_API_KEY:
                raise ValueError("OPENAI_API_KEY is not set. Add it to .env to enable voice chat.")
            client = AsyncOpenAI(api_key=OPENAI_API_KEY, base_url=OPENAI_BASE_URL)
        self.client = client
        self.transcribe_model = OPENAI_TRANSCRIBE_MODEL
        self.audio_model = OPENAI_AUDIO_MODEL
        self.voice = JARVIS_VOICE
        self.reply_format = JARVIS_AUDIO_FORMAT

    # ------------------------------------------------------------------------------
    # UPSTREAM CALLS
    # ------------------------------------------------------------------------------

    async def transcribe(self, audio: bytes, fmt: str = "wav") -> str:
        """Speech-to-text for one recording."""
        result = await self.client.audio.transcriptions.create(
            model=self.transcribe_model,
            file=(f"speech.{fmt}", audio, MIME_TYPES.get(fmt, "application/octet-stream")),
        )
        return (getattr(result, "text", "") or "").strip()

    def _chat_messages(
        self,
        history: Sequence[ChatMessage],
        audio_b64: Optional[str],
        text: Optional[str],
        fmt: str,
    ) -> List[dict]:
        messages = [{"role": "system", "content": build_system_prompt(JARVIS_SYSTEM_PROMPT)}]
        messages.extend({"role": m.role, "content": m.content} for m in trim_history(history))
        if audio_b64:
            messages.append({
                "role": "user",
                "content": [{"type": "input_audio", "input_audio": {"data": audio_b64, "format": fmt}}],
            })
        else:
            messages.append({"role": "user", "content": text or ""})
        return messages

    async def reply(
        self,
        history: Sequence[ChatMessage],
        audio_b64: Optional[str] = None,
        text: Optional[str] = None,
        fmt: str = "wav",
    ) -> Tuple[str, str]:
        """Spoken reply to a recording or to text. Returns (transcript, base64 audio)."""
        completion = await self.client.chat.completions.create(
            model=self.audio_model,
            modalities=["text", "audio"],
            audio={"voice": self.voice, "format": self.reply_format},
            messages=self._chat_messages(history, audio_b64, text, fmt),
        )
        message = completion.choices[0].message
        spoken = getattr(message, "audio", None)
        if spoken is not None:
            transcript = getattr(spoken, "transcript", "") or message.content or ""
            return transcript.strip(), getattr(spoken, "data", "") or ""
        logger.warning("Audio model returned no audio; replying with text only")
        return (message.content or "").strip(), ""

    async def _transcribe_and_reply(
        self,
        history: Sequence[ChatMessage],
        data: bytes,
        fmt: str,
    ) -> Tuple[str, Tuple[str, str]]:
        """
        Run transcribe() and reply() on the same recording at the same time.
        If either fails, the other is cancelled and awaited before the error
        propagates, so no provider call outlives the turn.
        """
        transcribe_task = asyncio.create_task(self.transcribe(data, fmt))
        reply_task = asyncio.create_task(self.reply(history, audio_b64=encode_audio(data), fmt=fmt))
        tasks = (transcribe_task, reply_task)
        try:
            transcript, spoken = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        return transcript, spoken

    # ------------------------------------------------------------------------------
    # ONE VOICE TURN
    # ------------------------------------------------------------------------------

    async def respond(
        self,
        history: Sequence[ChatMessage],
        audio: Optional[str] = None,
        text: Optional[str] = None,
        audio_format: Optional[str] = None,
    ) -> VoiceChatResponse:
        """
        Run one turn. With a recording, transcription and the spoken reply run
        together when the chat model can hear that format; otherwise the reply
        is generated from the transcript. Text-only turns go straight to reply().
        Raises ValueError if there is neither audio nor text.
        """
        text = (text or "").strip() or None

        if audio:
            data = decode_audio(audio)
            fmt = normalize_format(audio_format) if audio_format else detect_audio_format(data)

            if fmt in CHAT_INPUT_FORMATS:
                logger.info("Voice turn: %s bytes of %s, transcribing and replying concurrently", len(data), fmt)
                transcript, (jarvis_text, reply_audio) = await self._transcribe_and_reply(history, data, fmt)
            else:
                logger.info("Voice turn: %s bytes of %s, transcribing before reply", len(data), fmt)
                transcript = await self.transcribe(data, fmt)
                if not transcript and not text:
                    raise ValueError("Could not understand the recording")
                jarvis_text, reply_audio = await self.reply(history, text=transcript or text)

            return VoiceChatResponse(
                user_transcript=transcript or text or "",
                jarvis_text=jarvis_text,
                audio=reply_audio,
            )

        if text:
            logger.info("Voice turn: text input (%s chars)", len(text))
            jarvis_text, reply_audio = await self.reply(history, text=text)
            return VoiceChatResponse(user_transcript=text, jarvis_text=jarvis_text, audio=reply_audio)

        raise ValueError("Audio or text is required")
