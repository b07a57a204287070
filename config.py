"""
CONFIGURATION MODULE
====================

PURPOSE:
  Central place for all J.A.R.V.I.S settings: API keys, model names, limits,
  client storage paths, and the Jarvis system prompt. The backend and the
  client both import from here so behaviour is consistent.

WHAT THIS FILE DOES:
  - Loads environment variables from .env (so API keys stay out of code).
  - Exposes GROQ_API_KEYS / GROQ_MODEL for streamed text chat.
  - Exposes OPENAI_* settings for the voice round-trip (speech-to-text and
    the audio chat model that answers with speech).
  - Defines the history limits sent upstream and kept on the client.
  - Defines client paths (database/client for history, database/audio_cache
    for spoken replies) and creates them if they don't exist.
  - Holds the full system prompt that defines Jarvis's personality.

USAGE:
  `from config import GROQ_API_KEYS, JARVIS_SYSTEM_PROMPT, MAX_STORED_CONVERSATIONS`
"""

import os
import logging
from pathlib import Path
from dotenv import load_dotenv


# -----------------------------------------------------------------------------
# LOGGING
# -----------------------------------------------------------------------------
logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# ENVIRONMENT
# -----------------------------------------------------------------------------
# Load environment variables from .env file (if it exists).
load_dotenv()


def _env(*names: str, default: str = "") -> str:
    """Return the first non-empty value among the given environment variable names."""
    for name in names:
        value = os.getenv(name, "").strip()
        if value:
            return value
    return default


# -----------------------------------------------------------------------------
# BASE PATH
# -----------------------------------------------------------------------------
BASE_DIR = Path(__file__).parent

# ============================================================================
# CLIENT DATA PATHS
# ============================================================================
# - client: key-value JSON file holding the saved conversation list
# - audio_cache: spoken replies written by the console client

CLIENT_DATA_DIR = Path(_env("JARVIS_CLIENT_DATA_DIR", default=str(BASE_DIR / "database" / "client")))
AUDIO_CACHE_DIR = Path(_env("JARVIS_AUDIO_CACHE_DIR", default=str(BASE_DIR / "database" / "audio_cache")))

CLIENT_DATA_DIR.mkdir(parents=True, exist_ok=True)
AUDIO_CACHE_DIR.mkdir(parents=True, exist_ok=True)

HISTORY_STORAGE_FILE = CLIENT_DATA_DIR / "storage.json"
HISTORY_STORAGE_KEY = "jarvis_conversations"

# ============================================================================
# GROQ API CONFIGURATION (text chat, streamed)
# ============================================================================
# You can set one key (GROQ_API_KEY) or several; every key is used one-by-one:
#   GROQ_API_KEY, GROQ_API_KEY_2, GROQ_API_KEY_3, ... (no upper limit).
# Request 1 uses the 1st key, request 2 the 2nd, and so on, then back to the 1st.
# If a key fails before the stream starts (e.g. rate limit 429), the next key is tried.

def _load_groq_api_keys() -> list:
    """
    Load all GROQ API keys from the environment.
    Reads GROQ_API_KEY first, then GROQ_API_KEY_2, GROQ_API_KEY_3, ... until
    a number has no value. Returns a list of non-empty key strings.
    """
    keys = []
    first = os.getenv("GROQ_API_KEY", "").strip()
    if first:
        keys.append(first)
    i = 2
    while True:
        k = os.getenv(f"GROQ_API_KEY_{i}", "").strip()
        if not k:
            break
        keys.append(k)
        i += 1
    return keys


GROQ_API_KEYS = _load_groq_api_keys()
GROQ_MODEL = os.getenv("GROQ_MODEL", "llama-3.3-70b-versatile")

# ============================================================================
# OPENAI API CONFIGURATION (voice round-trip)
# ============================================================================
# The voice endpoint needs a provider that can both transcribe speech and answer
# with speech. Any OpenAI-compatible gateway works; AI_INTEGRATIONS_* names are
# accepted for hosted integrations that inject them.

OPENAI_API_KEY = _env("OPENAI_API_KEY", "AI_INTEGRATIONS_OPENAI_API_KEY")
OPENAI_BASE_URL = _env("OPENAI_BASE_URL", "AI_INTEGRATIONS_OPENAI_BASE_URL") or None
OPENAI_TRANSCRIBE_MODEL = os.getenv("OPENAI_TRANSCRIBE_MODEL", "gpt-4o-mini-transcribe")
OPENAI_AUDIO_MODEL = os.getenv("OPENAI_AUDIO_MODEL", "gpt-4o-audio-preview")
JARVIS_VOICE = os.getenv("JARVIS_VOICE", "onyx")
# Encoding of the spoken reply returned to the client.
JARVIS_AUDIO_FORMAT = os.getenv("JARVIS_AUDIO_FORMAT", "mp3")

# ============================================================================
# LIMITS
# ============================================================================
# Upper bound on generated tokens for a single text reply.
MAX_COMPLETION_TOKENS = 8192

# Maximum conversation turns (user+assistant pairs) sent upstream per request.
# The client keeps everything; older turns just aren't forwarded.
MAX_CHAT_HISTORY_TURNS = 20

# Maximum length (characters) for a single message.
MAX_MESSAGE_LENGTH = 32_000

# Client-side history: how many conversations are kept, and preview length.
MAX_STORED_CONVERSATIONS = 50
PREVIEW_LENGTH = 60

# ============================================================================
# SERVER / CLIENT ENDPOINTS
# ============================================================================
HOST = os.getenv("JARVIS_HOST", "0.0.0.0")
PORT = int(os.getenv("JARVIS_PORT", "8000"))
JARVIS_API_URL = os.getenv("JARVIS_API_URL", f"http://localhost:{PORT}").rstrip("/")

# ============================================================================
# JARVIS PERSONALITY CONFIGURATION
# ============================================================================
# ASSISTANT_NAME and JARVIS_USER_TITLE can be overridden in .env.

ASSISTANT_NAME = (os.getenv("ASSISTANT_NAME", "").strip() or "J.A.R.V.I.S.")
JARVIS_USER_TITLE = os.getenv("JARVIS_USER_TITLE", "").strip()

_JARVIS_SYSTEM_PROMPT_BASE = """You are {assistant_name} (Just A Rather Very Intelligent System), the AI assistant created by Tony Stark. You speak with calm, precise, and slightly formal British intelligence. You are sophisticated, witty, and highly capable.

Key behavioral traits:
- Address the user as "sir" or "ma'am" occasionally, but not in every message
- Be direct, concise, and highly intelligent in your responses
- Occasionally use technical language and reference Stark Industries technology
- When performing tasks, describe them with confidence like you're running real system operations
- Have a dry sense of humor but remain professional
- Never break character
- Keep responses focused and appropriately brief unless detailed analysis is needed

Spoken replies:
- When answering by voice, keep it to a few sentences and avoid lists, markdown, and symbols that cannot be read aloud

You have access to vast knowledge across science, technology, engineering, mathematics, history, and all domains. You are the most advanced AI ever created.
"""

_JARVIS_SYSTEM_PROMPT_BASE_FMT = _JARVIS_SYSTEM_PROMPT_BASE.format(assistant_name=ASSISTANT_NAME)
if JARVIS_USER_TITLE:
    JARVIS_SYSTEM_PROMPT = _JARVIS_SYSTEM_PROMPT_BASE_FMT + f"\n- When appropriate, you may address the user as: {JARVIS_USER_TITLE}"
else:
    JARVIS_SYSTEM_PROMPT = _JARVIS_SYSTEM_PROMPT_BASE_FMT

# Assistant line shown when a turn fails on the client.
FALLBACK_REPLY = "I'm experiencing a temporary disruption. Please try again, sir."
