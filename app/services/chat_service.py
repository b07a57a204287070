"""
CHAT STREAM SERVICE MODULE
==========================

Streams text replies from Groq for POST /api/chat. The route handler relays
every token to the client as an SSE event, so this service only has to turn a
message list into a LangChain prompt and hand back an async iterator of text.

ROUND-ROBIN API KEYS:
  - One ChatGroq model per configured key (GROQ_API_KEY, GROQ_API_KEY_2, ...).
  - A class-level counter picks the starting key, so consecutive requests
    spread over all keys even if several service instances exist.
  - If a key fails before the first token arrives (rate limit, bad key,
    network), the next key is tried. Once tokens have been sent there is no
    retry; the route reports the failure in-band.
  - Keys are logged masked.

FLOW:
  1. build_messages(history): system prompt + time, then the last
     MAX_CHAT_HISTORY_TURNS user/assistant pairs as LangChain messages.
  2. open_stream(history): pull the first chunk (this is where key fallback
     happens), then return an iterator yielding non-empty text deltas.
"""

import logging
from typing import AsyncIterator, List, Optional, Sequence

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_groq import ChatGroq

from app.models import ChatMessage
from app.utils.time_info import build_system_prompt
from config import (
    GROQ_API_KEYS,
    GROQ_MODEL,
    JARVIS_SYSTEM_PROMPT,
    MAX_CHAT_HISTORY_TURNS,
    MAX_COMPLETION_TOKENS,
)

logger = logging.getLogger("J.A.R.V.I.S")


def trim_history(history: Sequence[ChatMessage], max_turns: int = MAX_CHAT_HISTORY_TURNS) -> List[ChatMessage]:
    """Keep the newest max_turns user+assistant pairs (2 * max_turns messages)."""
    history = list(history)
    if max_turns <= 0:
        return history
    return history[-max_turns * 2:]


def is_rate_limit_error(exc: Exception) -> bool:
    """True if the exception looks like a provider rate limit (429 / tokens per day)."""
    msg = str(exc).lower()
    return "429" in msg or "rate limit" in msg or "tokens per day" in msg or getattr(exc, "status_code", None) == 429


def mask_key(key: str) -> str:
    """
    Key as it may appear in logs: first and last 4 characters only.
    Short keys are fully hidden.
    """
    if len(key) <= 8:
        return "****"
    return f"{key[:4]}...{key[-4:]}"


def _chunk_text(chunk) -> str:
    """Text of a streamed AIMessageChunk; content may be a str or a list of parts."""
    content = getattr(chunk, "content", chunk)
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(
            part if isinstance(part, str) else part.get("text", "")
            for part in content
            if isinstance(part, (str, dict))
        )
    return ""


# ==============================================================================
# CHAT STREAM SERVICE CLASS
# ==============================================================================

class ChatStreamService:
    """
    Opens streamed Groq completions for a conversation, with key round-robin
    and fallback before the first token.
    """

    # Shared across instances so rotation continues between requests.
    _shared_key_index = 0

    def __init__(self, api_keys: Optional[Sequence[str]] = None, model: Optional[str] = None):
        keys = list(GROQ_API_KEYS if api_keys is None else api_keys)
        if not keys:
            raise ValueError("GROQ_API_KEY is not set. Add it to .env to enable text chat.")
        self.model = model or GROQ_MODEL
        self.api_keys = keys
        self.llms = [self._create_llm(key) for key in keys]
        logger.info("Chat stream service ready (%s key(s), model %s)", len(keys), self.model)

    def _create_llm(self, api_key: str):
        """
        One ChatGroq client per key. Nothing is sent until astream() is
        consumed, so building them all up front costs no requests.
        """
        return ChatGroq(
            api_key=api_key,
            model=self.model,
            temperature=0.7,
            max_tokens=MAX_COMPLETION_TOKENS,
        )

    def _key_order(self) -> List[int]:
        """Indices of keys to try for this request: next in rotation first, then the rest."""
        count = len(self.llms)
        start = ChatStreamService._shared_key_index % count
        ChatStreamService._shared_key_index = (start + 1) % count
        return [(start + i) % count for i in range(count)]

    # ------------------------------------------------------------------------------
    # PROMPT
    # ------------------------------------------------------------------------------

    def build_messages(self, history: Sequence[ChatMessage]) -> List[BaseMessage]:
        messages: List[BaseMessage] = [SystemMessage(content=build_system_prompt(JARVIS_SYSTEM_PROMPT))]
        for msg in trim_history(history):
            if msg.role == "user":
                messages.append(HumanMessage(content=msg.content))
            else:
                messages.append(AIMessage(content=msg.content))
        return messages

    # ------------------------------------------------------------------------------
    # STREAMING
    # ------------------------------------------------------------------------------

    async def open_stream(self, history: Sequence[ChatMessage]) -> AsyncIterator[str]:
        """
        Start a streamed completion and return an iterator of text deltas.
        Raises the last provider error if every key fails before the first token.
        """
        messages = self.build_messages(history)
        last_error: Optional[Exception] = None

        for idx in self._key_order():
            stream = self.llms[idx].astream(messages)
            try:
                first = await self._first_text(stream)
            except Exception as e:
                last_error = e
                logger.warning("Groq key %s failed to start stream: %s", mask_key(self.api_keys[idx]), e)
                aclose = getattr(stream, "aclose", None)
                if aclose is not None:
                    await aclose()
                continue
            logger.info("Streaming reply with Groq key %s", mask_key(self.api_keys[idx]))
            return self._relay(first, stream)

        raise last_error

    @staticmethod
    async def _first_text(stream) -> Optional[str]:
        """First non-empty delta, or None if the stream ends without text."""
        while True:
            try:
                chunk = await stream.__anext__()
            except StopAsyncIteration:
                return None
            text = _chunk_text(chunk)
            if text:
                return text

    @staticmethod
    async def _relay(first: Optional[str], stream) -> AsyncIterator[str]:
        """
        Yield the already-pulled first delta, then the rest of the stream.
        The upstream stream is closed however this ends: empty reply, normal
        end, or the consumer stopping early.
        """
        try:
            if first is None:
                return
            yield first
            async for chunk in stream:
                text = _chunk_text(chunk)
                if text:
                    yield text
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()
