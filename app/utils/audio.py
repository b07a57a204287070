"""
AUDIO PAYLOAD UTILITY
=====================

The voice endpoint receives recordings as base64 strings and hands them to the
provider unchanged. These helpers only validate the base64 and work out which
container the bytes are in, because the audio chat model accepts a narrower set
of input formats than speech-to-text does.
"""

import base64
import binascii


class InvalidAudioError(ValueError):
    """The audio field is not valid, non-empty base64."""


# Formats the audio chat model accepts as input_audio.
CHAT_INPUT_FORMATS = ("wav", "mp3")

MIME_TYPES = {
    "wav": "audio/wav",
    "mp3": "audio/mpeg",
    "m4a": "audio/mp4",
    "ogg": "audio/ogg",
    "webm": "audio/webm",
    "flac": "audio/flac",
}


def strip_data_url(audio_b64: str) -> str:
    """Drop a "data:audio/...;base64," prefix if the client sent one."""
    if audio_b64.startswith("data:") and "," in audio_b64:
        return audio_b64.split(",", 1)[1]
    return audio_b64


def decode_audio(audio_b64: str) -> bytes:
    """Decode a base64 recording. A data: URL prefix is tolerated."""
    if not audio_b64:
        raise InvalidAudioError("Audio payload is empty")
    audio_b64 = strip_data_url(audio_b64)
    try:
        data = base64.b64decode("".join(audio_b64.split()), validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidAudioError(f"Audio payload is not valid base64: {e}") from e
    if not data:
        raise InvalidAudioError("Audio payload is empty")
    return data


def encode_audio(data: bytes) -> str:
    """
    Standard base64 of raw audio, one line with no whitespace.
    This is the form the chat model expects for input_audio data.
    """
    return base64.b64encode(data).decode("ascii")


def detect_audio_format(data: bytes) -> str:
    """Guess the container from magic bytes. Unknown data is treated as wav."""
    if data[:4] == b"RIFF" and data[8:12] == b"WAVE":
        return "wav"
    if data[:3] == b"ID3" or (len(data) > 1 and data[0] == 0xFF and (data[1] & 0xE0) == 0xE0):
        return "mp3"
    if data[4:8] == b"ftyp":
        return "m4a"
    if data[:4] == b"OggS":
        return "ogg"
    if data[:4] == b"\x1a\x45\xdf\xa3":
        return "webm"
    if data[:4] == b"fLaC":
        return "flac"
    return "wav"


def normalize_format(fmt: str) -> str:
    """Map loose names ("mpeg", "x-wav", "mp4", ...) to the short names above."""
    fmt = (fmt or "").lower().strip().lstrip(".")
    if "/" in fmt:
        fmt = fmt.split("/", 1)[1]
    aliases = {"mpeg": "mp3", "x-wav": "wav", "wave": "wav", "mp4": "m4a", "aac": "m4a", "x-m4a": "m4a"}
    return aliases.get(fmt, fmt)
