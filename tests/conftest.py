import os
import tempfile

# Keep client data written by imports and tests out of the working tree.
_DATA_DIR = tempfile.mkdtemp(prefix="jarvis-tests-")
os.environ.setdefault("JARVIS_CLIENT_DATA_DIR", os.path.join(_DATA_DIR, "client"))
os.environ.setdefault("JARVIS_AUDIO_CACHE_DIR", os.path.join(_DATA_DIR, "audio_cache"))
