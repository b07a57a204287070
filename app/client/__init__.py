"""
CLIENT PACKAGE
==============

Python counterpart of the mobile app's logic (no UI):

  api      - JarvisClient: /api/chat SSE consumer and /api/voice-chat caller.
  history  - ConversationHistory: saved conversations in key-value storage.
  session  - VoiceAssistant: voice-turn state machine (idle, listening,
             processing, speaking) and the conversation it builds.
"""
