"""
SERVER-SENT EVENTS UTILITY
==========================

Framing helpers for the /api/chat token stream. Both sides live here so the
server and the client agree on the format:

  data: {"content": "Good"}\n\n
  data: {"content": " evening"}\n\n
  data: [DONE]\n\n

A failure after the stream has started is reported in-band as
`data: {"error": "Stream error"}` and the stream ends without [DONE].
"""

import json
from typing import Iterable, Iterator, Optional

DONE_MARKER = "[DONE]"
DONE_EVENT = f"data: {DONE_MARKER}\n\n"


def format_event(payload: dict) -> str:
    """Frame one JSON payload as an SSE data event."""
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


def iter_events(lines: Iterable) -> Iterator[Optional[dict]]:
    """
    Decode SSE lines into payloads.

    Yields the parsed JSON of every `data:` line and None for the [DONE] marker,
    after which iteration stops. Blank lines, comments (":...") and other fields
    (event:, id:, retry:) are skipped. Accepts str or bytes lines.
    """
    for raw in lines:
        if raw is None:
            continue
        line = raw.decode("utf-8") if isinstance(raw, bytes) else raw
        line = line.rstrip("\r\n")
        if not line.startswith("data:"):
            continue
        data = line[5:].lstrip(" ")
        if data == DONE_MARKER:
            yield None
            return
        if not data:
            continue
        yield json.loads(data)
