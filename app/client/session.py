"""
VOICE ASSISTANT SESSION
=======================

Client-side state for one conversation: the voice-turn state machine, the
turns so far, the history sent upstream, and persistence of the conversation
into local history.

STATES:
  idle        -> press_mic()            -> listening
  listening   -> press_mic(recording)   -> processing -> (reply) -> speaking | idle
  listening   -> press_mic(no audio)    -> idle
  idle        -> send_chip(text)        -> processing -> ...
  speaking    -> finish_playback() / stop_audio() -> idle
  any failure                           -> idle

Only one turn is in flight at a time: input arriving while a turn is being
processed is ignored rather than queued.

TEXT MODE:
  send_text() makes a voice-chat request with typed text (spoken reply);
  stream_text() uses the streamed /api/chat endpoint and yields tokens as they
  arrive. Both record the exchange as a turn, exactly like a voice turn.
"""

import logging
import time
from enum import Enum
from pathlib import Path
from typing import Iterator, List, Optional

from app.client.api import JarvisClient, JarvisClientError
from app.client.history import ConversationHistory, new_message_id
from app.models import ChatMessage, ConvTurn, StoredMessage
from app.utils.audio import decode_audio, encode_audio
from config import AUDIO_CACHE_DIR, FALLBACK_REPLY, JARVIS_AUDIO_FORMAT

logger = logging.getLogger("J.A.R.V.I.S")


class VoiceState(str, Enum):
    IDLE = "idle"
    LISTENING = "listening"
    PROCESSING = "processing"
    SPEAKING = "speaking"


STATE_LABELS = {
    VoiceState.IDLE: "TAP TO SPEAK",
    VoiceState.LISTENING: "LISTENING...",
    VoiceState.PROCESSING: "PROCESSING...",
    VoiceState.SPEAKING: "SPEAKING",
}

SUGGESTION_CHIPS = ("What's the time?", "Tell me something fascinating", "Run diagnostics")


class FileAudioPlayer:
    """
    Writes each spoken reply to the audio cache as jarvis_resp_<ms>.<fmt>.
    There is no audio device here, so "playing" ends as soon as the file exists;
    callers hand the path to whatever plays audio on their machine.
    """

    def __init__(self, directory: Path = AUDIO_CACHE_DIR, fmt: str = JARVIS_AUDIO_FORMAT):
        self.directory = Path(directory)
        self.fmt = fmt
        self.last_path: Optional[Path] = None

    def play(self, audio_b64: str) -> Path:
        """
        Write the spoken reply to jarvis_resp_<ms>.<fmt> in the cache directory
        and return its path. Raises InvalidAudioError for bad base64.
        """
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.directory / f"jarvis_resp_{int(time.time() * 1000)}.{self.fmt}"
        path.write_bytes(decode_audio(audio_b64))
        self.last_path = path
        return path

    def stop(self) -> None:
        """Nothing is playing in the background, so there is nothing to stop."""


class VoiceAssistant:
    """Voice-turn state machine plus the conversation it produces."""

    def __init__(
        self,
        client: Optional[JarvisClient] = None,
        history: Optional[ConversationHistory] = None,
        player=None,
        mode: str = "voice",
    ):
        self.client = client or JarvisClient()
        self.history_store = history or ConversationHistory()
        self.player = player
        self.mode = mode
        self.state = VoiceState.IDLE
        self.is_processing = False
        self.turns: List[ConvTurn] = []
        self.text_messages: List[StoredMessage] = []
        # What goes upstream with the next request.
        self.history: List[ChatMessage] = []
        self.conversation_id: Optional[str] = None

    @property
    def label(self) -> str:
        return STATE_LABELS[self.state]

    def toggle_mode(self) -> str:
        """Switch between voice and text input and return the new mode."""
        self.mode = "text" if self.mode == "voice" else "voice"
        return self.mode

    # ------------------------------------------------------------------------------
    # INPUT
    # ------------------------------------------------------------------------------

    def press_mic(self, audio: Optional[bytes] = None, audio_format: Optional[str] = None) -> Optional[ConvTurn]:
        """
        Mic button. From idle it starts listening; from listening it sends the
        recording. Ignored while processing or speaking.
        """
        if self.state == VoiceState.IDLE:
            self.state = VoiceState.LISTENING
            return None

        if self.state == VoiceState.LISTENING:
            if not audio:
                self.state = VoiceState.IDLE
                return None
            self.state = VoiceState.PROCESSING
            return self._send_voice_request(audio=encode_audio(audio), audio_format=audio_format)

        return None

    def send_chip(self, text: str) -> Optional[ConvTurn]:
        """Suggestion chip: a text voice turn, only accepted when idle."""
        if self.state != VoiceState.IDLE:
            return None
        self.state = VoiceState.PROCESSING
        return self._send_voice_request(text=text)

    def send_text(self, text: str) -> Optional[ConvTurn]:
        """Typed message answered through the voice endpoint (spoken reply)."""
        text = text.strip()
        if not text or self._busy():
            return None
        self.stop_audio()
        self.is_processing = True
        self.text_messages.append(StoredMessage(id=new_message_id(), role="user", content=text))
        try:
            return self._send_voice_request(text=text, user_shown=True)
        finally:
            self.is_processing = False

    def stream_text(self, text: str) -> Iterator[str]:
        """Typed message answered through the streamed chat endpoint; yields tokens."""
        text = text.strip()
        if not text or self._busy():
            return
        self.stop_audio()
        self.is_processing = True
        self.text_messages.append(StoredMessage(id=new_message_id(), role="user", content=text))

        parts: List[str] = []
        try:
            for token in self.client.stream_chat([*self.history, ChatMessage(role="user", content=text)]):
                parts.append(token)
                yield token
        except (JarvisClientError, ValueError) as e:
            logger.warning("Chat stream failed: %s", e)
            self._fail()
            return
        finally:
            self.is_processing = False

        self._handle_reply(text, "".join(parts), "", user_shown=True)

    def _busy(self) -> bool:
        return self.is_processing or self.state == VoiceState.PROCESSING

    # ------------------------------------------------------------------------------
    # REPLIES
    # ------------------------------------------------------------------------------

    def _send_voice_request(
        self,
        audio: Optional[str] = None,
        text: Optional[str] = None,
        audio_format: Optional[str] = None,
        user_shown: bool = False,
    ) -> Optional[ConvTurn]:
        try:
            reply = self.client.voice_chat(self.history, audio=audio, text=text, audio_format=audio_format)
        except (JarvisClientError, ValueError) as e:
            logger.warning("Voice request failed: %s", e)
            self._fail()
            return None
        return self._handle_reply(reply.user_transcript or text or "", reply.jarvis_text, reply.audio, user_shown)

    def _handle_reply(self, user_text: str, jarvis_text: str, audio_b64: str, user_shown: bool = False) -> ConvTurn:
        turn = ConvTurn(id=new_message_id(), user=user_text, jarvis=jarvis_text)
        self.turns.append(turn)
        self.history.extend([
            ChatMessage(role="user", content=user_text),
            ChatMessage(role="assistant", content=jarvis_text),
        ])

        if self.mode == "text":
            if not user_shown:
                self.text_messages.append(StoredMessage(id=new_message_id(), role="user", content=user_text))
            self.text_messages.append(StoredMessage(id=new_message_id(), role="assistant", content=jarvis_text))

        self._save()

        if audio_b64 and self.player is not None:
            try:
                self.player.play(audio_b64)
                self.state = VoiceState.SPEAKING
            except (OSError, ValueError) as e:
                logger.error("Audio playback error: %s", e)
                self.state = VoiceState.IDLE
        else:
            self.state = VoiceState.IDLE
        return turn

    def _save(self) -> None:
        """Persist this session as one conversation, replacing its previous snapshot."""
        try:
            saved = self.history_store.save_turns(self.turns, self.conversation_id)
        except OSError as e:
            logger.warning("Could not save conversation: %s", e)
            return
        self.conversation_id = saved.id

    def _fail(self) -> None:
        self.state = VoiceState.IDLE
        self.is_processing = False
        if self.mode == "text":
            self.text_messages.append(StoredMessage(id=new_message_id(), role="assistant", content=FALLBACK_REPLY))

    # ------------------------------------------------------------------------------
    # PLAYBACK / RESET
    # ------------------------------------------------------------------------------

    def finish_playback(self) -> None:
        """
        Playback ended on its own. Speaking goes back to idle; any other state
        is left alone, so a late callback can't cut off a new turn.
        """
        if self.state == VoiceState.SPEAKING:
            self.state = VoiceState.IDLE

    def stop_audio(self) -> None:
        """
        User stopped the reply. The player is told to stop and a speaking
        assistant returns to idle.
        """
        if self.player is not None:
            self.player.stop()
        self.finish_playback()

    def clear(self) -> None:
        """Start over; the next turn is saved as a new conversation."""
        self.stop_audio()
        self.turns = []
        self.text_messages = []
        self.history = []
        self.conversation_id = None
