"""Crash-safe JSON document on disk.

Writes go to a tempfile in the same directory and are moved into place with
os.replace, so a killed process never leaves a half-written file behind.
Used by the credential vault, the phonetics book and CLI settings.
"""

import json
import logging
import os
import tempfile
from typing import Any, Optional

logger = logging.getLogger("repcoach.store")


class JsonDocument:
    """A single JSON object persisted at a fixed path."""

    def __init__(self, file_path: str, default: Optional[dict] = None):
        self._path = os.path.abspath(file_path)
        self._default = default or {}

    @property
    def path(self) -> str:
        return self._path

    def read(self) -> dict:
        """Load the document, or a copy of the default if missing/corrupt."""
        if not os.path.exists(self._path):
            return json.loads(json.dumps(self._default))
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                data = json.load(f)
            if isinstance(data, dict):
                return data
            logger.warning("%s does not hold a JSON object, using defaults", self._path)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Failed to load %s: %s, using defaults", self._path, e)
        return json.loads(json.dumps(self._default))

    def write(self, data: dict) -> None:
        """Atomically replace the document on disk."""
        dir_path = os.path.dirname(self._path)
        os.makedirs(dir_path, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=dir_path, suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, default=str)
            os.replace(tmp_path, self._path)
        except Exception:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

    def get(self, key: str, default: Any = None) -> Any:
        return self.read().get(key, default)

    def set(self, key: str, value: Any) -> None:
        data = self.read()
        data[key] = value
        self.write(data)
