# =============================================================================
# sitesinc_core/offline/project_state.py
# Per-project offline-mode toggle
# =============================================================================
"""
ProjectOfflineState - turns offline mode on (download everything) and off
(purge everything) for a project, and remembers the last viewed drawing.
"""

from __future__ import annotations
from typing import Iterable, Optional
import logging

from sitesinc_core.errors import DownloadCancelledError, DownloadInProgressError
from sitesinc_core.offline.preferences import last_viewed_drawing_key

logger = logging.getLogger(__name__)


class ProjectOfflineState:
    """
    Offline-mode flag transitions with their side effects.

    Usage:
        state = ProjectOfflineState(engine, store, preferences, connection_manager)
        state.enable_offline_mode(42, token)   # downloads; reverts on failure
        state.disable_offline_mode(42)         # purges local data
    """

    def __init__(self, engine, store, preferences, connection_manager):
        self._engine = engine
        self._store = store
        self._preferences = preferences
        self._connection_manager = connection_manager

    @property
    def _progress(self):
        return self._engine.progress_tracker

    def is_offline_enabled(self, project_id: int) -> bool:
        return self._preferences.is_offline_mode(project_id)

    def is_project_offline(self, project_id: int) -> bool:
        """Offline mode is on and the network is down."""
        return (
            self.is_offline_enabled(project_id)
            and not self._connection_manager.is_network_available
        )

    def _set_flag(self, project_id: int, enabled: bool) -> None:
        self._preferences.set_offline_mode(project_id, enabled)
        self._progress.set_offline_enabled(project_id, enabled)

    def enable_offline_mode(
        self,
        project_id: int,
        token: str,
        permissions: Optional[Iterable[str]] = None,
        cancel_token=None,
    ):
        """
        Turn offline mode on and download the whole project.

        A request while a download for the project is running is rejected and
        leaves that run alone. Any other failure turns the flag back off and
        purges what was written; a cancelled run keeps its downloaded files.

        Returns:
            DownloadReport of the completed download

        Raises:
            DownloadInProgressError: a download for the project is already running
        """
        if self._engine.is_downloading(project_id):
            raise DownloadInProgressError(project_id)

        self._set_flag(project_id, True)
        try:
            return self._engine.download_all_resources(
                project_id, token, permissions=permissions, cancel_token=cancel_token
            )
        except DownloadInProgressError:
            raise
        except DownloadCancelledError:
            logger.info(f"Offline mode for project {project_id} reverted: download cancelled")
            self._set_flag(project_id, False)
            raise
        except Exception as e:
            logger.error(f"Offline mode for project {project_id} reverted: {e}")
            self._set_flag(project_id, False)
            self._store.purge(project_id)
            raise

    def disable_offline_mode(self, project_id: int) -> bool:
        """
        Turn offline mode off and purge the project's local data.

        Returns:
            True if every local file was removed
        """
        self._set_flag(project_id, False)
        return self._store.purge(project_id)

    def set_offline_mode(
        self,
        project_id: int,
        enabled: bool,
        token: Optional[str] = None,
        permissions: Optional[Iterable[str]] = None,
        cancel_token=None,
    ):
        """Apply a toggle, acting only on an actual transition."""
        current = self.is_offline_enabled(project_id)
        if enabled == current:
            return None
        if enabled:
            return self.enable_offline_mode(project_id, token, permissions, cancel_token)
        return self.disable_offline_mode(project_id)

    # Last viewed drawing

    def last_viewed_drawing(self, project_id: int) -> Optional[int]:
        return self._preferences.get_int(last_viewed_drawing_key(project_id))

    def set_last_viewed_drawing(self, project_id: int, drawing_id: Optional[int]) -> None:
        key = last_viewed_drawing_key(project_id)
        if drawing_id is None:
            self._preferences.remove(key)
        else:
            self._preferences.set(key, int(drawing_id))
