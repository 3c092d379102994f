"""
Raw file storage.

Uploaded bytes are kept so a document can be reprocessed without asking the
owner to upload it again. Keys are opaque relative paths; this local
directory backend stands in for an object store bucket.
"""
import os
import re
import uuid
from pathlib import Path

from .config import STORAGE_DIR
from .logging_config import logger


class LocalFileStorage:
    def __init__(self, root: str = STORAGE_DIR):
        self.root = Path(root)

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root.resolve() not in path.parents:
            raise ValueError(f"Invalid storage key: {key}")
        return path

    def new_key(self, owner_id: str, filename: str) -> str:
        # Filenames are user input; only the extension is kept
        ext = os.path.splitext(filename or "")[1].lower()
        ext = ext if ext.isascii() and ext[1:].isalnum() else ""
        owner = re.sub(r"[^A-Za-z0-9_-]", "_", owner_id) or "anonymous"
        return f"{owner}/{uuid.uuid4().hex}{ext}"

    def save(self, key: str, data: bytes) -> None:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

    def load(self, key: str) -> bytes:
        path = self._path(key)
        if not path.exists():
            raise FileNotFoundError(f"Stored file not found: {key}")
        return path.read_bytes()

    def delete(self, key: str) -> None:
        try:
            self._path(key).unlink()
        except FileNotFoundError:
            logger.warning("Stored file already gone", storage_key=key)
