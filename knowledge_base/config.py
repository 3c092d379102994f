"""
Application configuration.
Values come from the environment (or a local .env file in development).
"""
import os
from dotenv import load_dotenv

load_dotenv()  # loads .env in local dev; no effect in Docker if env vars provided


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# -------------------------------------------------
# Persistence
# -------------------------------------------------

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./knowledge_base.db")
STORAGE_DIR = os.getenv("STORAGE_DIR", "./storage")

# -------------------------------------------------
# Embedding provider
# -------------------------------------------------

# "openai", "local" (sentence-transformers) or "none"
EMBED_PROVIDER = os.getenv("EMBED_PROVIDER", "openai").strip().lower()
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
OPENAI_EMBED_MODEL = os.getenv("OPENAI_EMBED_MODEL", "text-embedding-3-small")
OPENAI_EMBED_DIMENSIONS = int(os.getenv("OPENAI_EMBED_DIMENSIONS", "1536"))
EMBED_MODEL = os.getenv("EMBED_MODEL", "sentence-transformers/all-MiniLM-L6-v2")
EMBED_BATCH_SIZE = int(os.getenv("EMBED_BATCH_SIZE", "100"))

# -------------------------------------------------
# Upload limits
# -------------------------------------------------

MAX_FILE_SIZE_BYTES = int(os.getenv("MAX_FILE_SIZE_BYTES", str(10 * 1024 * 1024)))  # 10 MB

SUPPORTED_MIME_TYPES = ("text/plain", "text/markdown", "text/x-markdown")
FORMAT_NAMES = {
    "text/plain": "TXT",
    "text/markdown": "MD",
    "text/x-markdown": "MD",
}

# -------------------------------------------------
# Chunking
# -------------------------------------------------

CHUNK_TARGET_TOKENS = 500
CHUNK_OVERLAP_TOKENS = 50
CHUNK_MIN_TOKENS = 100

# -------------------------------------------------
# Retrieval bounds (not user-overridable beyond the clamp)
# -------------------------------------------------

MAX_QUERY_LENGTH = 1000
DEFAULT_SEARCH_LIMIT = 5
MIN_SEARCH_LIMIT = 1
MAX_SEARCH_LIMIT = 20
DEFAULT_SIMILARITY_THRESHOLD = 0.4
MIN_SIMILARITY_THRESHOLD = 0.3
MAX_SIMILARITY_THRESHOLD = 0.95
MAX_CONTEXT_TOKENS = 3000

# Stored error messages are bounded before display
ERROR_MESSAGE_MAX_LENGTH = 500

# -------------------------------------------------
# Logging
# -------------------------------------------------

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_JSON = _env_bool("LOG_JSON", False)
