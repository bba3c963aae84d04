# =============================================================================
# sitesinc_core/offline/offline_service.py
# Single entry point for offline-aware project data
# =============================================================================
"""
OfflineDataService - one object wiring the whole offline core together.

Callers (view models, CLI tools, background jobs) use this service only:

    from sitesinc_core.offline import get_offline_service

    service = get_offline_service()
    result = service.fetch_collection(42, "drawings", token=token)
    service.enable_offline_mode(42, token)
    service.record_access_async(1234, "view", token)

Components are built lazily from Settings unless they are passed in, so tests
can inject fresh instances of every collaborator.
"""

from __future__ import annotations
import threading
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Union
import logging

from sitesinc_core.config import Settings, get_settings
from sitesinc_core.errors import ErrorContext
from sitesinc_core.logging import setup_logging
from sitesinc_core.offline.access_log_queue import AccessLogQueue
from sitesinc_core.offline.connection_manager import ConnectionManager, ConnectionStatus
from sitesinc_core.offline.download_progress import DownloadProgressState, DownloadProgressTracker
from sitesinc_core.offline.local_store import LocalStore
from sitesinc_core.offline.preferences import PreferenceStore
from sitesinc_core.offline.project_state import ProjectOfflineState
from sitesinc_core.offline.resources import ResourceKind
from sitesinc_core.offline.sync_engine import CancellationToken, DownloadReport, FetchResult, SyncEngine

logger = logging.getLogger(__name__)


class OfflineDataService:
    """
    Facade over the connector, reachability monitor, local store,
    preferences, progress tracker, access-log queue, engine and project state.
    """

    _instance: Optional[OfflineDataService] = None
    _lock = threading.Lock()

    def __init__(
        self,
        settings: Optional[Settings] = None,
        connector=None,
        connection_manager: Optional[ConnectionManager] = None,
        store: Optional[LocalStore] = None,
        preferences: Optional[PreferenceStore] = None,
        progress_tracker: Optional[DownloadProgressTracker] = None,
    ):
        self._settings = settings
        self._connector = connector
        self._connection_manager = connection_manager
        self._store = store
        self._preferences = preferences
        self._progress_tracker = progress_tracker
        self._access_log: Optional[AccessLogQueue] = None
        self._engine: Optional[SyncEngine] = None
        self._project_state: Optional[ProjectOfflineState] = None
        self._initialized = False
        self._callbacks: List[Callable[[bool], None]] = []

    @classmethod
    def get_instance(cls) -> OfflineDataService:
        """Get or create singleton instance."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = OfflineDataService()
        return cls._instance

    # =========================================================================
    # LAZY LOADING OF DEPENDENCIES
    # =========================================================================

    @property
    def settings(self) -> Settings:
        if self._settings is None:
            self._settings = get_settings()
        return self._settings

    @property
    def connector(self):
        """Remote API connector (lazy)."""
        if self._connector is None:
            from sitesinc_core.api import APIConfig, SiteSincConnector
            self._connector = SiteSincConnector(APIConfig(
                api_name="SiteSinc",
                base_url=self.settings.api_url,
                timeout=self.settings.request_timeout,
                download_timeout=self.settings.download_timeout,
            ))
        return self._connector

    @property
    def connection_manager(self) -> ConnectionManager:
        if self._connection_manager is None:
            self._connection_manager = ConnectionManager(
                api_url=self.settings.api_url,
                check_interval=self.settings.monitor_interval,
            )
        return self._connection_manager

    @property
    def store(self) -> LocalStore:
        if self._store is None:
            self._store = LocalStore(self.settings.cache_dir, self.settings.attachments_root)
        return self._store

    @property
    def preferences(self) -> PreferenceStore:
        if self._preferences is None:
            self._preferences = PreferenceStore(self.settings.preferences_file)
        return self._preferences

    @property
    def progress_tracker(self) -> DownloadProgressTracker:
        if self._progress_tracker is None:
            from sitesinc_core.offline.download_progress import get_progress_tracker
            self._progress_tracker = get_progress_tracker()
        return self._progress_tracker

    @property
    def access_log(self) -> AccessLogQueue:
        if self._access_log is None:
            self._access_log = AccessLogQueue(self.connector, self.store, self.connection_manager)
        return self._access_log

    @property
    def engine(self) -> SyncEngine:
        if self._engine is None:
            self._engine = SyncEngine(
                self.connector,
                self.connection_manager,
                self.store,
                self.preferences,
                self.progress_tracker,
            )
        return self._engine

    @property
    def project_state(self) -> ProjectOfflineState:
        if self._project_state is None:
            self._project_state = ProjectOfflineState(
                self.engine, self.store, self.preferences, self.connection_manager
            )
        return self._project_state

    # =========================================================================
    # INITIALIZATION
    # =========================================================================

    @property
    def is_online(self) -> bool:
        return self.connection_manager.is_network_available

    def initialize(self, start_monitoring: bool = True) -> None:
        """
        Start reachability monitoring and hook queue flushing to reconnects.

        Args:
            start_monitoring: Whether to start background connection checks
        """
        if self._initialized:
            return

        self.connection_manager.register_callback(self._on_connection_change)
        self.connection_manager.initialize(start_monitoring=start_monitoring)

        self._initialized = True
        logger.info(f"OfflineDataService initialized. Online: {self.is_online}")

    def _on_connection_change(self, state) -> None:
        """Flush queued access events when the network comes back."""
        is_online = state.status == ConnectionStatus.ONLINE
        logger.info(f"Connection changed: online={is_online}")

        if is_online:
            with ErrorContext("Flushing queued access events"):
                self.flush_access_log()

        for callback in list(self._callbacks):
            try:
                callback(is_online)
            except Exception as e:
                logger.error(f"Error in connection callback: {e}")

    def register_status_callback(self, callback: Callable[[bool], None]) -> None:
        """Register a callback for online/offline status changes."""
        if callback not in self._callbacks:
            self._callbacks.append(callback)

    def unregister_status_callback(self, callback: Callable[[bool], None]) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def on_foreground(self) -> int:
        """App returned to the foreground: recheck the network and flush if online."""
        self.connection_manager.force_check()
        if self.is_online:
            return self.flush_access_log()
        return 0

    # =========================================================================
    # FETCHING
    # =========================================================================

    def fetch_collection(
        self,
        project_id: int,
        kind: Union[ResourceKind, str],
        token: Optional[str] = None,
        has_permission: bool = True,
        on_cached: Optional[Callable[[List[Dict[str, Any]]], None]] = None,
    ) -> FetchResult:
        return self.engine.fetch_collection(
            project_id, kind, has_permission=has_permission, token=token, on_cached=on_cached
        )

    # =========================================================================
    # OFFLINE MODE
    # =========================================================================

    def download_all_resources(
        self,
        project_id: int,
        token: str,
        permissions: Optional[Iterable[str]] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> DownloadReport:
        return self.engine.download_all_resources(
            project_id, token, permissions=permissions, cancel_token=cancel_token
        )

    def enable_offline_mode(
        self,
        project_id: int,
        token: str,
        permissions: Optional[Iterable[str]] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> DownloadReport:
        return self.project_state.enable_offline_mode(project_id, token, permissions, cancel_token)

    def disable_offline_mode(self, project_id: int) -> bool:
        return self.project_state.disable_offline_mode(project_id)

    def set_offline_mode(self, project_id: int, enabled: bool, token: Optional[str] = None, **kwargs):
        return self.project_state.set_offline_mode(project_id, enabled, token=token, **kwargs)

    def is_offline_enabled(self, project_id: int) -> bool:
        return self.project_state.is_offline_enabled(project_id)

    def is_project_offline(self, project_id: int) -> bool:
        return self.project_state.is_project_offline(project_id)

    def download_status(self, project_id: int) -> DownloadProgressState:
        return self.progress_tracker.status(project_id)

    # =========================================================================
    # ACCESS LOG
    # =========================================================================

    def record_access(self, resource_id: int, event_type: str, token: str) -> bool:
        return self.access_log.record_access(resource_id, event_type, token)

    def record_access_async(self, resource_id: int, event_type: str, token: str):
        return self.access_log.record_access_async(resource_id, event_type, token)

    def flush_access_log(self) -> int:
        return self.access_log.flush_queue()

    # =========================================================================
    # STATUS AND CLEANUP
    # =========================================================================

    def get_status_display(self) -> Dict[str, Any]:
        """Status summary for display."""
        size_bytes, size_label = self.store.cache_size()
        return {
            "connection": self.connection_manager.get_status_display(),
            "is_online": self.is_online,
            "pending_access_logs": self.access_log.pending_count,
            "cache_bytes": size_bytes,
            "cache_size": size_label,
        }

    def cleanup(self) -> None:
        """Stop background work and release the HTTP session."""
        if self._connection_manager is not None:
            self._connection_manager.unregister_callback(self._on_connection_change)
            self._connection_manager.stop_monitoring()
        if self._access_log is not None:
            self._access_log.shutdown(wait=False)
        if self._connector is not None:
            self._connector.close()
        self._initialized = False


# Singleton accessor
_offline_service: Optional[OfflineDataService] = None


def get_offline_service() -> OfflineDataService:
    """
    Get the global OfflineDataService instance.

    Returns:
        OfflineDataService singleton, initialized with background monitoring
    """
    global _offline_service
    if _offline_service is None:
        settings = get_settings()
        setup_logging(
            level=settings.logging_level,
            log_to_file=settings.log_to_file,
            log_dir=Path(settings.data_dir) / "logs",
        )
        _offline_service = OfflineDataService.get_instance()
        _offline_service.initialize()
    return _offline_service
