"""
DATA MODELS MODULE
==================

Pydantic models used for API requests and responses, and for the records the
client keeps in local storage. FastAPI uses them to validate incoming JSON and
to serialize responses; the client uses the same models to parse replies.

Wire names are camelCase (userTranscript, jarvisText, audioFormat) because the
mobile client speaks JSON that way; Python code uses snake_case attributes.

MODELS:
  ChatMessage         - One message in a conversation (role + content).
  ChatRequest         - Body of POST /api/chat (full message list).
  VoiceChatRequest    - Body of POST /api/voice-chat (history + audio or text).
  VoiceChatResponse   - Body returned by /api/voice-chat.
  StoredMessage       - A message inside a saved conversation (has an id).
  StoredConversation  - One saved conversation in client history.
  ConvTurn            - One completed user/assistant exchange.
"""

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from config import MAX_MESSAGE_LENGTH

# ==============================================================================
# MESSAGE AND REQUEST/RESPONSE MODELS
# ==============================================================================

Role = Literal["user", "assistant"]


class ChatMessage(BaseModel):
    """
    A single message in a conversation (user or assistant).
    Order in the list defines chronology; there is no timestamp.
    """
    role: Role
    content: str = Field(..., max_length=MAX_MESSAGE_LENGTH)


class ChatRequest(BaseModel):
    """
    Request body for POST /api/chat.

    - messages: The whole conversation so far, ending with the user's newest message.
      The server adds the system prompt; clients never send it.
    """
    messages: List[ChatMessage]


class VoiceChatRequest(BaseModel):
    """
    Request body for POST /api/voice-chat.

    - history: Previous turns, oldest first.
    - audio: Base64 recording of what the user said (optional).
    - text: Typed text, used when there is no recording (chips, text mode).
    - audioFormat: Container of the recording ("wav", "mp3", "m4a", ...). Sniffed when omitted.
    """
    model_config = ConfigDict(populate_by_name=True)

    history: List[ChatMessage] = Field(default_factory=list)
    audio: Optional[str] = None
    text: Optional[str] = Field(None, max_length=MAX_MESSAGE_LENGTH)
    audio_format: Optional[str] = Field(None, alias="audioFormat")


class VoiceChatResponse(BaseModel):
    """
    Response body for POST /api/voice-chat.

    - userTranscript: What the user said (speech-to-text), or the typed text.
    - jarvisText: Transcript of the spoken reply.
    - audio: Base64 spoken reply; empty when the provider returned no audio.
    """
    model_config = ConfigDict(populate_by_name=True)

    user_transcript: str = Field("", alias="userTranscript")
    jarvis_text: str = Field("", alias="jarvisText")
    audio: str = ""


# ==============================================================================
# CLIENT HISTORY MODELS
# ==============================================================================

class StoredMessage(BaseModel):
    id: str
    role: Role
    content: str


class StoredConversation(BaseModel):
    """One entry of the saved conversation list. date is ISO-8601 (UTC)."""
    id: str
    preview: str
    date: str
    messages: List[StoredMessage] = Field(default_factory=list)


class ConvTurn(BaseModel):
    """One exchange: what the user said and what Jarvis answered."""
    id: str
    user: str
    jarvis: str
