"""
J.A.R.V.I.S MAIN API
====================

This module defines the FastAPI application and its HTTP endpoints. The
backend is a thin relay: it adds the Jarvis system prompt, forwards the
conversation to the model provider, and passes the result straight back.
Conversation history lives on the client; every request carries it.

ENDPOINTS:
  GET  /                - Returns API name and list of endpoints.
  GET  /health          - Returns status of each service (for monitoring).
  POST /api/chat        - Text chat. Body {"messages": [...]}. Replies with a
                          text/event-stream of {"content": "..."} events and a
                          final [DONE].
  POST /api/voice-chat  - Voice turn. Body {"history": [...], "audio"?: base64,
                          "text"?: str}. Replies {"userTranscript", "jarvisText",
                          "audio"} where audio is the base64 spoken reply.

ERRORS:
  Error bodies are {"error": "..."}. Failures before a stream starts are plain
  JSON (429 for provider rate limits, 500 otherwise). Once SSE events have been
  sent the status can't change, so a failure is sent as an {"error": ...}
  event and the stream ends without [DONE].

STARTUP:
  The lifespan function builds the chat (Groq) and voice (OpenAI) services.
  A service whose API key is missing is left unset and its endpoint returns 503.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
import uvicorn

from app.models import ChatRequest, VoiceChatRequest, VoiceChatResponse
from app.services.chat_service import ChatStreamService, is_rate_limit_error
from app.services.voice_service import VoiceService
from app.utils.sse import DONE_EVENT, format_event
from config import ASSISTANT_NAME, HOST, PORT

# User-friendly message when the provider rate limit (daily token quota) is exceeded.
RATE_LIMIT_MESSAGE = (
    "You've reached your daily API limit for this assistant. "
    "Your credits will reset in a few hours, or you can upgrade your plan for more. "
    "Please try again later."
)

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "X-Accel-Buffering": "no",
}


# -----------------------------------------------------------------------------
# LOGGING
# -----------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s | %(levelname)-8s | %(name)-20s | %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger("J.A.R.V.I.S")


# -----------------------------------------------------------------------------
# GLOBAL SERVICE REFERENCES
# -----------------------------------------------------------------------------
# Set during startup (lifespan) and used by the route handlers.
chat_stream_service: Optional[ChatStreamService] = None
voice_service: Optional[VoiceService] = None


def print_title():
    """Print the J.A.R.V.I.S banner to the console when the server starts."""
    CYAN = "\033[96m"
    WHITE = "\033[97m"
    BOLD = "\033[1m"
    RESET = "\033[0m"
    print(f"\n{BOLD}{CYAN}  {ASSISTANT_NAME}{RESET}\n  {WHITE}Just A Rather Very Intelligent System{RESET}\n")


def error_response(status_code: int, message: str) -> JSONResponse:
    """
    JSON error body used by every route: {"error": message}.
    Clients read only the "error" field, whatever the status.
    """
    return JSONResponse(status_code=status_code, content={"error": message})


# -------------------------------------------------------------------------
# LIFESPAN (STARTUP / SHUTDOWN)
# -------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Build the chat and voice services. Missing credentials only disable the
    matching endpoint, so text chat keeps working without an audio provider
    and vice versa.
    """
    global chat_stream_service, voice_service

    print_title()
    logger.info("=" * 60)
    logger.info("J.A.R.V.I.S - Starting Up...")
    logger.info("=" * 60)

    try:
        chat_stream_service = ChatStreamService()
    except ValueError as e:
        chat_stream_service = None
        logger.warning("Text chat unavailable: %s", e)

    try:
        voice_service = VoiceService()
    except ValueError as e:
        voice_service = None
        logger.warning("Voice chat unavailable: %s", e)

    logger.info("Service Status:")
    logger.info("    - Chat stream (Groq): %s", "Ready" if chat_stream_service else "Disabled")
    logger.info("    - Voice (OpenAI audio): %s", "Ready" if voice_service else "Disabled")
    logger.info("J.A.R.V.I.S is online. API: http://localhost:%s  Docs: http://localhost:%s/docs", PORT, PORT)

    yield

    logger.info("Shutting down J.A.R.V.I.S...")
    if voice_service is not None:
        await voice_service.client.close()
    logger.info("Goodbye!")


# -------------------------------------------------------------------------
# FASTAPI APP AND CORS
# -------------------------------------------------------------------------
app = FastAPI(
    title="J.A.R.V.I.S API",
    description="Just A Rather Very Intelligent System",
    lifespan=lifespan
)

# Allow any origin so the mobile/web client on another host can call this API.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Malformed bodies are 400 with an {"error": ...} body, like every other failure."""
    logger.warning("Rejected %s body: %s", request.url.path, exc.errors())
    if request.url.path == "/api/chat":
        return error_response(400, "Messages array is required")
    return error_response(400, "Invalid request body")


# =========================================================================
# API ENDPOINTS
# =========================================================================

@app.get("/")
async def root():
    """Return the API name and a short description of each endpoint (for discovery)."""
    return {
        "message": "J.A.R.V.I.S API",
        "endpoints": {
            "/api/chat": "Text chat, streamed as server-sent events",
            "/api/voice-chat": "Voice turn: recording or text in, transcript and spoken reply out",
            "/health": "System health check"
        }
    }


@app.get("/health")
async def health():
    """Return 'healthy' and whether each service is configured."""
    return {
        "status": "healthy",
        "chat_service": chat_stream_service is not None,
        "voice_service": voice_service is not None,
    }


async def _relay_tokens(tokens: AsyncIterator[str]) -> AsyncIterator[str]:
    """Re-emit provider tokens as SSE events, then [DONE]; in-band error on failure."""
    count = 0
    try:
        async for token in tokens:
            count += 1
            yield format_event({"content": token})
        yield DONE_EVENT
        logger.info("Chat stream finished (%s events)", count)
    except Exception as e:
        logger.error("Chat stream failed after %s events: %s", count, e, exc_info=True)
        yield format_event({"error": "Stream error"})


@app.post("/api/chat")
async def chat(request: ChatRequest):
    """
    Text chat endpoint.

    REQUEST BODY:
    {
        "messages": [
            {"role": "user", "content": "Run diagnostics"}
        ]
    }

    RESPONSE (text/event-stream):
        data: {"content": "All systems"}
        data: {"content": " nominal, sir."}
        data: [DONE]

    The provider call is opened before the response starts, so a failure to
    reach the model (bad key, rate limit, network) is still a JSON error.
    """
    if not chat_stream_service:
        return error_response(503, "Chat service not initialized")

    try:
        tokens = await chat_stream_service.open_stream(request.messages)
    except Exception as e:
        if is_rate_limit_error(e):
            logger.warning(f"Rate limit hit: {e}")
            return error_response(429, RATE_LIMIT_MESSAGE)
        logger.error(f"Chat error: {e}", exc_info=True)
        return error_response(500, "Failed to process request")

    return StreamingResponse(_relay_tokens(tokens), media_type="text/event-stream", headers=SSE_HEADERS)


@app.post("/api/voice-chat", response_model=VoiceChatResponse)
async def voice_chat(request: VoiceChatRequest):
    """
    Voice turn endpoint.

    REQUEST BODY:
    {
        "history": [{"role": "user", "content": "..."}, {"role": "assistant", "content": "..."}],
        "audio": "<base64 recording>",      (or)
        "text": "What's the time?"
    }

    RESPONSE:
    {
        "userTranscript": "What's the time?",
        "jarvisText": "It is a quarter past nine, sir.",
        "audio": "<base64 mp3>"
    }

    With a recording, transcription and the spoken reply are requested at the
    same time and the response waits for both.
    """
    if not request.audio and not (request.text or "").strip():
        return error_response(400, "Audio or text is required")

    if not voice_service:
        return error_response(503, "Voice service not initialized")

    try:
        return await voice_service.respond(
            request.history,
            audio=request.audio,
            text=request.text,
            audio_format=request.audio_format,
        )
    except ValueError as e:
        logger.warning(f"Invalid voice request: {e}")
        return error_response(400, str(e))
    except Exception as e:
        if is_rate_limit_error(e):
            logger.warning(f"Rate limit hit: {e}")
            return error_response(429, RATE_LIMIT_MESSAGE)
        logger.error(f"Voice chat error: {e}", exc_info=True)
        return error_response(500, "Failed to process voice request")


# -------------------------------------------------------------------------
# STANDALONE RUN (python -m app.main)
# -------------------------------------------------------------------------
def run():
    """Start the uvicorn server (same as run.py); used if someone does python -m app.main"""
    uvicorn.run(
        "app.main:app",
        host=HOST,
        port=PORT,
        reload=True,
        log_level="info"
    )

if __name__ == "__main__":
    run()
