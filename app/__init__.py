"""
J.A.R.V.I.S APPLICATION PACKAGE
===============================

  from app.main import app
  from app.models import ChatRequest, VoiceChatResponse
  from app.client.session import VoiceAssistant

FILE STRUCTURE:
  app/
    main.py       - FastAPI app and HTTP endpoints (/api/chat, /api/voice-chat, /health).
    models.py     - Pydantic models for API bodies and stored client history.
    services/     - Provider calls: streamed text chat (Groq), voice round-trip (OpenAI audio).
    client/       - Client logic: HTTP/SSE client, local history, voice-turn state machine.
    utils/        - Helpers: SSE framing, base64 audio, current date/time for the prompt.
"""
