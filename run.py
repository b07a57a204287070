"""
RUN SCRIPT - Start the J.A.R.V.I.S server
=======================================

PURPOSE:
  Single entry point to start the backend relay.

WHAT IT DOES:
  - Imports the FastAPI app from app.main.
  - Runs it with uvicorn on JARVIS_HOST:JARVIS_PORT (default 0.0.0.0:8000).
  - reload=True restarts the server when Python files change.

USAGE:
  python run.py

  API docs: http://localhost:8000/docs
  Console client: python chat_console.py

NOTE:
  Set GROQ_API_KEY (text chat) and OPENAI_API_KEY (voice chat) in .env first.
  Either one alone is enough to start; the other endpoint answers 503.
"""

import uvicorn

from config import HOST, PORT

if __name__ == "__main__":
    uvicorn.run(
        "app.main:app",
        host=HOST,
        port=PORT,
        reload=True
    )
