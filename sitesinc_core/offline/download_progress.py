# =============================================================================
# sitesinc_core/offline/download_progress.py
# Observable per-project download progress
# =============================================================================
"""
DownloadProgressTracker - process-wide, observable download state keyed by
project id. Only the SyncEngine mutates it; any number of observers read it.
State lives in memory only; an interrupted download is not resumable.
"""

from __future__ import annotations
import threading
from dataclasses import dataclass, replace
from typing import Callable, Dict, List, Optional
import logging

logger = logging.getLogger(__name__)


@dataclass
class DownloadProgressState:
    """Download status for one project."""
    is_loading: bool = False
    progress: float = 0.0
    has_error: bool = False
    is_offline_enabled: bool = False
    last_error: Optional[Exception] = None


ProgressCallback = Callable[[int, DownloadProgressState], None]


class DownloadProgressTracker:
    """Thread-safe map of project id to DownloadProgressState."""

    def __init__(self):
        self._states: Dict[int, DownloadProgressState] = {}
        self._lock = threading.Lock()
        self._callbacks: List[ProgressCallback] = []

    def status(self, project_id: int) -> DownloadProgressState:
        """Return a copy of the project's state (default state if unseen)."""
        with self._lock:
            return replace(self._states.get(project_id, DownloadProgressState()))

    def _update(self, project_id: int, **changes) -> DownloadProgressState:
        with self._lock:
            current = self._states.get(project_id, DownloadProgressState())
            updated = replace(current, **changes)
            self._states[project_id] = updated
            snapshot = replace(updated)
        self._notify(project_id, snapshot)
        return snapshot

    def begin_run(self, project_id: int) -> DownloadProgressState:
        """Reset progress for a new download run."""
        return self._update(
            project_id, is_loading=True, progress=0.0, has_error=False, last_error=None
        )

    def set_progress(self, project_id: int, progress: float) -> DownloadProgressState:
        """Advance progress; values never decrease within a run."""
        clamped = min(max(progress, 0.0), 1.0)
        with self._lock:
            current = self._states.get(project_id, DownloadProgressState()).progress
        return self._update(project_id, progress=max(current, clamped), is_loading=True)

    def finish_run(
        self,
        project_id: int,
        error: Optional[Exception] = None,
    ) -> DownloadProgressState:
        """Mark the run finished, successfully or with an error."""
        if error is None:
            return self._update(
                project_id, is_loading=False, progress=1.0, has_error=False, last_error=None
            )
        return self._update(project_id, is_loading=False, has_error=True, last_error=error)

    def set_offline_enabled(self, project_id: int, enabled: bool) -> DownloadProgressState:
        return self._update(project_id, is_offline_enabled=enabled)

    def reset(self, project_id: int) -> None:
        with self._lock:
            self._states.pop(project_id, None)
        self._notify(project_id, DownloadProgressState())

    def register_callback(self, callback: ProgressCallback) -> None:
        if callback not in self._callbacks:
            self._callbacks.append(callback)

    def unregister_callback(self, callback: ProgressCallback) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def _notify(self, project_id: int, state: DownloadProgressState) -> None:
        for callback in list(self._callbacks):
            try:
                callback(project_id, state)
            except Exception as e:
                logger.error(f"Error in progress callback: {e}")


# Singleton accessor
_progress_tracker: Optional[DownloadProgressTracker] = None


def get_progress_tracker() -> DownloadProgressTracker:
    """Get the global DownloadProgressTracker instance."""
    global _progress_tracker
    if _progress_tracker is None:
        _progress_tracker = DownloadProgressTracker()
    return _progress_tracker
