"""
JARVIS HTTP CLIENT
==================

Talks to the backend the way the mobile app does:

  stream_chat(messages)  - POST /api/chat, yields reply tokens as the SSE
                           events arrive.
  voice_chat(history, audio=..., text=...)
                         - POST /api/voice-chat, returns the transcript, the
                           reply text and the base64 spoken reply.
  health()               - GET /health.

Errors are raised as JarvisClientError subclasses so callers (the voice
state machine, the console) can show one failure message for all of them.
"""

from typing import Iterator, List, Optional, Sequence, Union

import requests

from app.models import ChatMessage, VoiceChatResponse
from app.utils.sse import iter_events
from config import JARVIS_API_URL

MessageLike = Union[ChatMessage, dict]


class JarvisClientError(Exception):
    """Base class for everything the client raises."""


class JarvisConnectionError(JarvisClientError):
    """Backend unreachable or too slow."""


class JarvisAPIError(JarvisClientError):
    """Backend answered with a non-200 status."""

    def __init__(self, status_code: int, message: str):
        super().__init__(f"{status_code}: {message}")
        self.status_code = status_code
        self.message = message


class JarvisStreamError(JarvisClientError):
    """The backend reported a failure inside an already-started stream."""


def _as_dicts(messages: Sequence[MessageLike]) -> List[dict]:
    return [m.model_dump() if isinstance(m, ChatMessage) else {"role": m["role"], "content": m["content"]} for m in messages]


def _error_message(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason or "Request failed"
    if isinstance(body, dict):
        detail = body.get("error") or body.get("detail")
        if isinstance(detail, str):
            return detail
    return "Request failed"


class JarvisClient:
    """requests-based client for the J.A.R.V.I.S backend."""

    def __init__(
        self,
        base_url: str = JARVIS_API_URL,
        timeout: float = 60.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def _post(self, path: str, payload: dict, stream: bool = False) -> requests.Response:
        try:
            response = self.session.post(
                f"{self.base_url}{path}",
                json=payload,
                timeout=self.timeout,
                stream=stream,
            )
        except requests.exceptions.ConnectionError as e:
            raise JarvisConnectionError(f"Cannot connect to backend at {self.base_url}") from e
        except requests.exceptions.Timeout as e:
            raise JarvisConnectionError("Request timed out") from e

        if response.status_code != 200:
            message = _error_message(response)
            response.close()
            raise JarvisAPIError(response.status_code, message)
        return response

    def stream_chat(self, messages: Sequence[MessageLike]) -> Iterator[str]:
        """Send the conversation and yield reply tokens until [DONE]."""
        response = self._post("/api/chat", {"messages": _as_dicts(messages)}, stream=True)
        try:
            for event in iter_events(response.iter_lines(decode_unicode=True)):
                if event is None:
                    return
                if not isinstance(event, dict):
                    raise JarvisStreamError(f"Unexpected stream payload: {event!r}")
                if "error" in event:
                    raise JarvisStreamError(event["error"])
                content = event.get("content")
                if content:
                    yield content
        except requests.exceptions.RequestException as e:
            raise JarvisConnectionError(f"Stream interrupted: {e}") from e
        finally:
            response.close()
        raise JarvisStreamError("Stream ended without [DONE]")

    def voice_chat(
        self,
        history: Sequence[MessageLike],
        audio: Optional[str] = None,
        text: Optional[str] = None,
        audio_format: Optional[str] = None,
    ) -> VoiceChatResponse:
        """One voice turn: base64 recording and/or text in, transcript and spoken reply out."""
        body = {"history": _as_dicts(history)}
        if audio:
            body["audio"] = audio
        if text:
            body["text"] = text
        if audio_format:
            body["audioFormat"] = audio_format
        response = self._post("/api/voice-chat", body)
        return VoiceChatResponse.model_validate(response.json())

    def health(self) -> dict:
        try:
            response = self.session.get(f"{self.base_url}/health", timeout=10)
        except requests.exceptions.RequestException as e:
            raise JarvisConnectionError(f"Cannot connect to backend at {self.base_url}") from e
        if response.status_code != 200:
            raise JarvisAPIError(response.status_code, _error_message(response))
        return response.json()
