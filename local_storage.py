import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, Optional, Union
from urllib.parse import quote

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """A persistence collaborator could not read or write a value."""


class MemoryStorage:
    """In-memory key/value storage, used in tests and for throwaway sessions.

    ``quota`` caps the size (in bytes) of any single stored value, the way a
    browser's local storage rejects writes once it is full.
    """

    def __init__(self, initial: Optional[Dict[str, str]] = None, quota: Optional[int] = None):
        self.values: Dict[str, str] = dict(initial or {})
        self.quota = quota
        self.writes = 0

    def read(self, key: str) -> Optional[str]:
        return self.values.get(key)

    def write(self, key: str, value: str):
        size = len(value.encode("utf-8"))
        if self.quota is not None and size > self.quota:
            raise StorageError(f"Quota exceeded writing '{key}' ({size} > {self.quota} bytes)")
        self.values[key] = value
        self.writes += 1


class LocalFileStorage:
    """Simple local file storage: one JSON document per key inside ``data_dir``"""

    def __init__(self, data_dir: Union[str, Path] = "data"):
        self.data_dir = Path(data_dir)

    def path_for(self, key: str) -> Path:
        # percent-encoding keeps distinct keys in distinct files
        return self.data_dir / f"{quote(key, safe='')}.json"

    def read(self, key: str) -> Optional[str]:
        """Return the stored document for ``key``, or None if nothing was saved yet"""
        path = self.path_for(key)
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                return f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise StorageError(f"Error reading {path}: {e}") from e

    def write(self, key: str, value: str):
        """Replace the document for ``key`` atomically"""
        path = self.path_for(key)
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=str(self.data_dir), prefix=".tmp-", suffix=".json")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(value)
                os.replace(tmp_name, path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.remove(tmp_name)
                raise
        except OSError as e:
            raise StorageError(f"Error saving {path}: {e}") from e
        logger.debug("Saved %s (%d bytes)", path, len(value))
