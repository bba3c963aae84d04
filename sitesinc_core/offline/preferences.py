# =============================================================================
# sitesinc_core/offline/preferences.py
# Simple persisted key-value preferences
# =============================================================================
"""
PreferenceStore - a small JSON-backed key-value store for per-project flags.

Keys:
    offlineMode_<project_id>        bool
    lastViewedDrawing_<project_id>  int
"""

from __future__ import annotations
import json
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, Optional
import logging

logger = logging.getLogger(__name__)


def offline_mode_key(project_id: int) -> str:
    return f"offlineMode_{project_id}"


def last_viewed_drawing_key(project_id: int) -> str:
    return f"lastViewedDrawing_{project_id}"


class PreferenceStore:
    """Thread-safe preferences persisted to a single JSON file."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()
        self._values: Dict[str, Any] = self._read()

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Error loading preferences: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=str(self.path.parent), suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self._values, f, indent=2)
            os.replace(tmp_name, self.path)
        except OSError as e:
            logger.error(f"Error saving preferences: {e}")

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._values.get(key, default)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._values[key] = value
            self._write()

    def remove(self, key: str) -> None:
        with self._lock:
            if self._values.pop(key, None) is not None:
                self._write()

    def get_bool(self, key: str) -> bool:
        return bool(self.get(key, False))

    def get_int(self, key: str) -> Optional[int]:
        value = self.get(key)
        return int(value) if value is not None else None

    # Offline mode flag

    def is_offline_mode(self, project_id: int) -> bool:
        return self.get_bool(offline_mode_key(project_id))

    def set_offline_mode(self, project_id: int, enabled: bool) -> None:
        self.set(offline_mode_key(project_id), bool(enabled))
