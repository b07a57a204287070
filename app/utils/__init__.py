"""
UTILITIES PACKAGE
=================

Helpers used by the services and the client (no HTTP routing, no business logic):

  time_info - get_time_information(): current date/time for the system prompt.
  sse       - format_event() / iter_events(): SSE framing for the /api/chat stream.
  audio     - decode_audio() / detect_audio_format(): base64 recordings for /api/voice-chat.
"""
