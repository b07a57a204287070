"""
SERVICES PACKAGE
=================

Business logic lives here. The API layer (app.main) calls these services;
they don't handle HTTP, only prompt building and provider calls.

MODULES:
    chat_service  - ChatStreamService: streamed Groq replies with key round-robin.
    voice_service - VoiceService: speech-to-text and spoken replies (OpenAI audio).
"""
