"""Application configuration with sensible defaults."""
import os
from pathlib import Path

# Paths
BASE_DIR = Path(__file__).parent.parent
DATA_DIR = Path(os.getenv("NOTESRAG_DATA_DIR", str(BASE_DIR / "data")))

# Ensure data directory exists
DATA_DIR.mkdir(parents=True, exist_ok=True)

# Ollama configuration
OLLAMA_BASE_URL = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "nomic-embed-text")
EMBEDDING_DIMENSION = int(os.getenv("EMBEDDING_DIMENSION", "768"))
EMBEDDING_TIMEOUT = float(os.getenv("EMBEDDING_TIMEOUT", "60.0"))
EMBED_CONCURRENCY = int(os.getenv("EMBED_CONCURRENCY", "4"))
# Parsed notes waiting to be finalized; the source reader blocks when full
INGEST_QUEUE_SIZE = int(os.getenv("INGEST_QUEUE_SIZE", "8"))

# Windowing (characters, header included)
WINDOW_MAX_CHARS = int(os.getenv("WINDOW_MAX_CHARS", "500"))
WINDOW_OVERLAP = int(os.getenv("WINDOW_OVERLAP", "50"))

# Retrieval
RETRIEVAL_TOP_K = int(os.getenv("RETRIEVAL_TOP_K", "5"))
RETRIEVAL_MAX_DISTANCE = float(os.getenv("RETRIEVAL_MAX_DISTANCE", "19.0"))

# Record source
OSASCRIPT_PATH = os.getenv("OSASCRIPT_PATH", "osascript")
SOURCE_READ_SIZE = int(os.getenv("SOURCE_READ_SIZE", "65536"))

# Database
DB_PATH = DATA_DIR / "notes.sqlite"
WINDOW_ID_START = 2  # first window id handed out after a clear

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_JSON = os.getenv("LOG_JSON", "false").lower() in ("1", "true", "yes")
