"""
JARVIS CONSOLE CLIENT
=====================

PURPOSE:
A command-line client for J.A.R.V.I.S that runs the same turn logic as the
mobile app (app.client.session.VoiceAssistant): text turns stream token by
token over /api/chat, voice turns go through /api/voice-chat and the spoken
reply is written to the audio cache. Every turn is saved to local history.

USAGE:
    python chat_console.py [--url http://localhost:8000]

    Make sure the server is running first: python run.py

COMMANDS:
    1               - Text mode (streamed replies)
    2               - Voice mode (typed text or a recording, spoken replies)
    /audio <file>   - Send a recording (wav, mp3, m4a, ...) as a voice turn
    /chips          - Show the suggestion chips; /chip <n> sends one
    /history        - List saved conversations
    /show <n>       - Print saved conversation n
    /delete <n>     - Delete saved conversation n
    /clearhistory   - Delete all saved conversations
    /clear          - Start a new conversation
    /quit or /exit  - Exit
"""

import argparse
import sys
from pathlib import Path

from app.client.api import JarvisClient, JarvisClientError
from app.client.history import ConversationHistory, format_date
from app.client.session import SUGGESTION_CHIPS, FileAudioPlayer, VoiceAssistant
from app.utils.audio import normalize_format
from config import ASSISTANT_NAME, FALLBACK_REPLY, JARVIS_API_URL


# -----------------------------------------------------------------------------
# UI HELPERS
# -----------------------------------------------------------------------------

def print_header():
    print("\n" + "=" * 60)
    print(f"🤖 {ASSISTANT_NAME} - Console")
    print("=" * 60)
    print("\nModes:")
    print("  1 = Text (streamed replies)")
    print("  2 = Voice (spoken replies saved to the audio cache)")
    print("\nCommands:")
    print("  /audio <file> - Send a recording")
    print("  /chips, /chip <n> - Suggestion chips")
    print("  /history, /show <n>, /delete <n>, /clearhistory")
    print("  /clear - Start new conversation")
    print("  /quit - Exit")
    print("=" * 60 + "\n")


def get_user_input():
    try:
        return input("\nYou: ").strip()
    except (KeyboardInterrupt, EOFError):
        return None


def _pick(items, arg):
    """Return items[n-1] for a 1-based index string, or None."""
    try:
        index = int(arg) - 1
    except (TypeError, ValueError):
        return None
    if 0 <= index < len(items):
        return items[index]
    return None


def print_history(history: ConversationHistory):
    conversations = history.load()
    if not conversations:
        print("No conversations yet")
        return
    print(f"\n📜 Saved conversations ({len(conversations)}):")
    print("-" * 60)
    for i, conv in enumerate(conversations, 1):
        print(f"{i}. {conv.preview}  [{format_date(conv.date)}, {len(conv.messages)} messages]")
    print("-" * 60)


def print_conversation(history: ConversationHistory, arg: str):
    conv = _pick(history.load(), arg)
    if conv is None:
        print(f"❌ No conversation {arg}")
        return
    for msg in conv.messages:
        role = "You" if msg.role == "user" else ASSISTANT_NAME
        print(f"{role}: {msg.content}")


def print_voice_turn(assistant: VoiceAssistant, player: FileAudioPlayer, turn):
    if turn is None:
        print(f"🤖 {ASSISTANT_NAME}: {FALLBACK_REPLY}")
        return
    print(f"🎙️  Heard: {turn.user}")
    print(f"🤖 {ASSISTANT_NAME}: {turn.jarvis}")
    if player.last_path is not None and assistant.state == "speaking":
        print(f"🔊 Reply audio: {player.last_path}")
    assistant.finish_playback()


# -----------------------------------------------------------------------------
# MAIN LOOP
# -----------------------------------------------------------------------------

def main(argv=None):
    parser = argparse.ArgumentParser(description=f"{ASSISTANT_NAME} console client")
    parser.add_argument("--url", default=JARVIS_API_URL, help="Backend base URL")
    args = parser.parse_args(argv)

    history = ConversationHistory()
    player = FileAudioPlayer()
    assistant = VoiceAssistant(JarvisClient(args.url), history, player=player, mode="text")

    print_header()
    try:
        assistant.client.health()
    except JarvisClientError as e:
        print(f"❌ {e}. Start the backend with: python run.py")

    print("💡 Text mode is active. Type 2 for voice mode.\n")

    while True:
        user_input = get_user_input()
        if user_input is None or user_input in ("/quit", "/exit"):
            print("\n👋 Goodbye!")
            break
        if not user_input:
            continue

        command, _, arg = user_input.partition(" ")
        arg = arg.strip()

        if user_input == "1":
            assistant.mode = "text"
            print("✅ Text mode (streamed replies)")
        elif user_input == "2":
            assistant.mode = "voice"
            print("✅ Voice mode (spoken replies)")
        elif command == "/history":
            print_history(history)
        elif command == "/show":
            print_conversation(history, arg)
        elif command == "/delete":
            conv = _pick(history.load(), arg)
            if conv is None:
                print(f"❌ No conversation {arg}")
            else:
                history.delete(conv.id)
                print(f"🗑️  Deleted: {conv.preview}")
        elif command == "/clearhistory":
            history.clear()
            print("🗑️  All conversations deleted")
        elif command == "/clear":
            assistant.clear()
            print("\n🔄 Conversation cleared. Starting fresh!")
        elif command == "/chips":
            for i, chip in enumerate(SUGGESTION_CHIPS, 1):
                print(f"  {i}. {chip}")
        elif command == "/chip":
            chip = _pick(SUGGESTION_CHIPS, arg)
            if chip is None:
                print(f"❌ No chip {arg}")
                continue
            print_voice_turn(assistant, player, assistant.send_chip(chip))
        elif command == "/audio":
            path = Path(arg).expanduser()
            if not path.is_file():
                print(f"❌ File not found: {arg}")
                continue
            assistant.press_mic()
            turn = assistant.press_mic(path.read_bytes(), audio_format=normalize_format(path.suffix))
            print_voice_turn(assistant, player, turn)
        elif command.startswith("/"):
            print(f"❌ Unknown command: {command}")
        elif assistant.mode == "text":
            print(f"🤖 {ASSISTANT_NAME}: ", end="", flush=True)
            for token in assistant.stream_text(user_input):
                print(token, end="", flush=True)
            if assistant.text_messages and assistant.text_messages[-1].content == FALLBACK_REPLY:
                print(FALLBACK_REPLY, end="")
            print()
        else:
            print_voice_turn(assistant, player, assistant.send_text(user_input))

    return 0


if __name__ == "__main__":
    sys.exit(main())
