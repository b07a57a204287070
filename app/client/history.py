"""
CONVERSATION HISTORY MODULE
===========================

On-device conversation history. Everything is stored under one key of a small
key-value store (a JSON file standing in for the phone's async storage), as a
JSON list of conversations, newest first:

  [
    {"id": "1718000000000", "preview": "What's the time?", "date": "2026-...Z",
     "messages": [{"id": "msg-...", "role": "user", "content": "..."}, ...]},
    ...
  ]

RULES:
  - Saving puts the conversation at the front and trims the list to the limit (50).
  - Saving again with the same id replaces that entry instead of adding another.
  - The preview is the first user utterance cut to 60 characters, or
    "Voice conversation" when there is none.
  - A corrupt or unreadable store reads as empty; it is never fatal for the UI.
"""

import itertools
import json
import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from pydantic import ValidationError

from app.models import ConvTurn, StoredConversation, StoredMessage
from config import HISTORY_STORAGE_FILE, HISTORY_STORAGE_KEY, MAX_STORED_CONVERSATIONS, PREVIEW_LENGTH

logger = logging.getLogger("J.A.R.V.I.S")

DEFAULT_PREVIEW = "Voice conversation"

_message_counter = itertools.count(1)


def new_message_id() -> str:
    """Unique within the process: msg-<epoch ms>-<counter>."""
    return f"msg-{int(time.time() * 1000)}-{next(_message_counter)}"


def preview_for(turns: Sequence[ConvTurn], length: int = PREVIEW_LENGTH) -> str:
    first = turns[0].user if turns else ""
    return first[:length] or DEFAULT_PREVIEW


def format_date(iso: str, now: Optional[datetime] = None) -> str:
    """Relative label for the history list: Just now, 5h ago, Yesterday, Jun 3."""
    when = datetime.fromisoformat(iso.replace("Z", "+00:00"))
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    hours = (now - when).total_seconds() / 3600

    if hours < 1:
        return "Just now"
    if hours < 24:
        return f"{int(hours)}h ago"
    if hours < 48:
        return "Yesterday"
    # Month and day are shown on the device's local calendar.
    local = when.astimezone()
    return f"{local.strftime('%b')} {local.day}"


# ==============================================================================
# KEY-VALUE STORAGE
# ==============================================================================

class KeyValueStorage:
    """String key -> string value store persisted as one JSON object on disk."""

    def __init__(self, path: Path = HISTORY_STORAGE_FILE):
        self.path = Path(path)

    def _read(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("Could not read storage file %s: %s", self.path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(data, ensure_ascii=False), encoding="utf-8")
        tmp.replace(self.path)

    def get_item(self, key: str) -> Optional[str]:
        """Value stored under key, or None when it is missing or the file is unreadable."""
        return self._read().get(key)

    def set_item(self, key: str, value: str) -> None:
        """
        Store value under key. The whole file is rewritten through a temp file
        and renamed into place, so a crash never leaves half a JSON object.
        """
        data = self._read()
        data[key] = value
        self._write(data)

    def remove_item(self, key: str) -> None:
        """Drop key. The file is left untouched when the key isn't there."""
        data = self._read()
        if key in data:
            del data[key]
            self._write(data)


# ==============================================================================
# CONVERSATION HISTORY
# ==============================================================================

class ConversationHistory:
    """Saved conversations, newest first, capped at `limit` entries."""

    def __init__(
        self,
        storage: Optional[KeyValueStorage] = None,
        key: str = HISTORY_STORAGE_KEY,
        limit: int = MAX_STORED_CONVERSATIONS,
    ):
        self.storage = storage or KeyValueStorage()
        self.key = key
        self.limit = limit

    def load(self) -> List[StoredConversation]:
        """
        All saved conversations, newest first.
        A missing key reads as []; so does a corrupt value (logged, not raised).
        """
        raw = self.storage.get_item(self.key)
        if not raw:
            return []
        try:
            items = json.loads(raw)
            return [StoredConversation.model_validate(item) for item in items]
        except (ValueError, TypeError, ValidationError) as e:
            logger.warning("Conversation history is corrupt, ignoring it: %s", e)
            return []

    def _store(self, conversations: List[StoredConversation]) -> None:
        self.storage.set_item(self.key, json.dumps([c.model_dump() for c in conversations], ensure_ascii=False))

    def save_turns(self, turns: Sequence[ConvTurn], conversation_id: Optional[str] = None) -> StoredConversation:
        """
        Store the turns as one conversation at the front of the list.
        An existing entry with the same id is replaced; the list is trimmed to the limit.
        """
        messages = []
        for turn in turns:
            messages.append(StoredMessage(id=new_message_id(), role="user", content=turn.user))
            messages.append(StoredMessage(id=new_message_id(), role="assistant", content=turn.jarvis))

        stored = self.load()
        if conversation_id is None:
            # Epoch milliseconds, bumped past any id already taken.
            taken = {c.id for c in stored}
            stamp = int(time.time() * 1000)
            while str(stamp) in taken:
                stamp += 1
            conversation_id = str(stamp)

        conversation = StoredConversation(
            id=conversation_id,
            preview=preview_for(turns),
            date=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            messages=messages,
        )
        existing = [c for c in stored if c.id != conversation.id]
        self._store([conversation, *existing][: self.limit])
        return conversation

    def delete(self, conversation_id: str) -> List[StoredConversation]:
        """
        Remove one conversation by id and return what is left.
        An unknown id is not an error; the list is stored back unchanged.
        """
        remaining = [c for c in self.load() if c.id != conversation_id]
        self._store(remaining)
        return remaining

    def clear(self) -> None:
        """Delete every saved conversation."""
        self.storage.remove_item(self.key)
