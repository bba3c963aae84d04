# =============================================================================
# sitesinc_core/offline/sync_engine.py
# Cache-first fetching and full project downloads
# =============================================================================
"""
SyncEngine - coordinates the remote API, the local store and the
reachability monitor.

Features:
- Cache-first collection fetches with optimistic callbacks
- Remote data always replaces the cache when a fetch succeeds
- Typed, descriptive errors when neither source can serve data
- Full project downloads with per-category failure policy
- Observable progress, cancellation, and one run per project at a time
"""

from __future__ import annotations
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Union
import logging

from sitesinc_core.errors import (
    AuthExpiredError,
    CacheMissReason,
    CacheUnavailableError,
    DecodingError,
    DownloadCancelledError,
    DownloadInProgressError,
    FileDownloadError,
    IOSetupError,
    MetadataFetchError,
    NetworkUnavailableError,
    SiteSincError,
)
from sitesinc_core.logging import LogContext
from sitesinc_core.offline.download_progress import DownloadProgressTracker
from sitesinc_core.offline.resources import (
    ATTACHMENT_PATH_MAP,
    DOWNLOAD_ORDER,
    OPTIONAL_METADATA,
    PERMISSIONS,
    PHOTO_PATH_MAP,
    AttachmentCategory,
    AttachmentRef,
    ResourceKind,
    annotate_offline,
    build_worklist,
)

logger = logging.getLogger(__name__)

Records = List[Dict[str, Any]]

SERVED_FROM_REMOTE = "remote"
SERVED_FROM_CACHE = "cache"
SERVED_FROM_NONE = "none"


class CancellationToken:
    """Cooperative cancellation flag checked between file downloads."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()


@dataclass
class FetchResult:
    """Outcome of a collection fetch."""
    records: Records = field(default_factory=list)
    served_from: str = SERVED_FROM_NONE
    error: Optional[SiteSincError] = None
    notice: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class DownloadReport:
    """Summary of a completed project download."""
    project_id: int
    counts: Dict[str, int] = field(default_factory=dict)
    total_files: int = 0
    downloaded_files: int = 0
    skipped_files: int = 0
    failed_optional_files: int = 0
    attachment_paths: Dict[str, str] = field(default_factory=dict)
    photo_paths: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "project_id": self.project_id,
            "counts": dict(self.counts),
            "total_files": self.total_files,
            "downloaded_files": self.downloaded_files,
            "skipped_files": self.skipped_files,
            "failed_optional_files": self.failed_optional_files,
        }


class SyncEngine:
    """
    Fetch and download engine for project resources.

    Usage:
        engine = SyncEngine(connector, connection_manager, store, preferences)
        result = engine.fetch_collection(42, ResourceKind.DRAWINGS, token=token)
        report = engine.download_all_resources(42, token)
    """

    def __init__(
        self,
        connector,
        connection_manager,
        store,
        preferences,
        progress_tracker: Optional[DownloadProgressTracker] = None,
    ):
        """
        Args:
            connector: Remote source (BaseAPIConnector implementation)
            connection_manager: Reachability monitor
            store: LocalStore for snapshots and attachments
            preferences: PreferenceStore holding the offline-mode flags
            progress_tracker: Receives download progress; a private one if omitted
        """
        self._connector = connector
        self._connection_manager = connection_manager
        self._store = store
        self._preferences = preferences
        self._progress = progress_tracker or DownloadProgressTracker()
        self._active_runs: Set[int] = set()
        self._runs_lock = threading.Lock()

    @property
    def progress_tracker(self) -> DownloadProgressTracker:
        return self._progress

    def is_downloading(self, project_id: int) -> bool:
        with self._runs_lock:
            return project_id in self._active_runs

    # =========================================================================
    # COLLECTION FETCH
    # =========================================================================

    def _exists(self, project_id: int) -> Callable[[AttachmentRef], bool]:
        return lambda ref: self._store.path_for(project_id, ref).is_file()

    def _annotate(self, project_id: int, kind: ResourceKind, records: Iterable[Dict[str, Any]]) -> Records:
        return annotate_offline(kind, records, self._exists(project_id))

    def fetch_collection(
        self,
        project_id: int,
        kind: Union[ResourceKind, str],
        has_permission: bool = True,
        token: Optional[str] = None,
        on_cached: Optional[Callable[[Records], None]] = None,
    ) -> FetchResult:
        """
        Fetch a collection, serving cached data when the remote cannot.

        Args:
            project_id: Project to fetch for
            kind: Resource kind
            has_permission: False short-circuits to an empty result
            token: Bearer token for the remote API
            on_cached: Called with cached records before the remote fetch

        Returns:
            FetchResult; a missing collection is reported through its error

        Raises:
            AuthExpiredError: the session expired or access was forbidden
        """
        kind = ResourceKind(kind)
        label = kind.value.replace("_", " ")

        if not has_permission:
            return FetchResult()

        cached = self._store.load(project_id, kind.value)
        if cached and on_cached is not None:
            try:
                on_cached(self._annotate(project_id, kind, cached))
            except Exception as e:
                logger.error(f"Error in cached {label} callback: {e}")

        failure: Optional[SiteSincError] = None
        if self._connection_manager.is_network_available:
            try:
                records = self._connector.fetch_collection(kind, project_id, token)
            except AuthExpiredError:
                logger.warning(f"Session expired while fetching {label} for project {project_id}")
                raise
            except SiteSincError as e:
                logger.warning(f"Remote fetch of {label} failed for project {project_id}: {e}")
                failure = e
            else:
                self._store.save(project_id, kind.value, records)
                return FetchResult(
                    records=self._annotate(project_id, kind, records),
                    served_from=SERVED_FROM_REMOTE,
                )

        if cached:
            return FetchResult(
                records=self._annotate(project_id, kind, cached),
                served_from=SERVED_FROM_CACHE,
                notice=f"Loaded cached {label} (offline)",
            )

        if failure is not None and not isinstance(failure, NetworkUnavailableError):
            reason = CacheMissReason.FETCH_FAILED
        elif self._preferences.is_offline_mode(project_id):
            reason = CacheMissReason.NEVER_DOWNLOADED
        else:
            reason = CacheMissReason.OFFLINE_MODE_DISABLED

        error = CacheUnavailableError(kind.value, reason, cause=failure)
        logger.info(f"No {label} available for project {project_id}: {reason.value}")
        return FetchResult(served_from=SERVED_FROM_NONE, error=error)

    # =========================================================================
    # FULL DOWNLOAD
    # =========================================================================

    def download_all_resources(
        self,
        project_id: int,
        token: str,
        permissions: Optional[Iterable[str]] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> DownloadReport:
        """
        Download every permitted collection and its attachments.

        Args:
            project_id: Project to download
            token: Bearer token
            permissions: Permission names held by the user; None means all
            cancel_token: Checked before each file download

        Returns:
            DownloadReport for the completed run

        Raises:
            DownloadInProgressError: a run for this project is already active
            NetworkUnavailableError: the network is down
            MetadataFetchError: a required collection could not be fetched
            FileDownloadError: a drawing or RFI file could not be downloaded
            IOSetupError: local storage could not be prepared or written
            DownloadCancelledError: the run was cancelled
            AuthExpiredError: the session expired
        """
        with self._runs_lock:
            if project_id in self._active_runs:
                raise DownloadInProgressError(project_id)
            self._active_runs.add(project_id)

        try:
            self._progress.begin_run(project_id)
            with LogContext(logger, f"Downloading project {project_id}", project_id=project_id):
                report = self._run_download(project_id, token, permissions, cancel_token)
        except Exception as e:
            self._progress.finish_run(project_id, error=e)
            raise
        else:
            self._progress.finish_run(project_id)
            logger.info(
                f"Project {project_id} downloaded: {report.downloaded_files}/{report.total_files} files, "
                f"{report.skipped_files} skipped, {report.failed_optional_files} failed"
            )
            return report
        finally:
            with self._runs_lock:
                self._active_runs.discard(project_id)

    def _run_download(
        self,
        project_id: int,
        token: str,
        permissions: Optional[Iterable[str]],
        cancel_token: Optional[CancellationToken],
    ) -> DownloadReport:
        if not self._connection_manager.is_network_available:
            raise NetworkUnavailableError("Cannot download project data while offline")

        self._store.ensure_project_folder(project_id)

        metadata = self._fetch_metadata(project_id, token, permissions)
        worklist = build_worklist(metadata)
        report = DownloadReport(
            project_id=project_id,
            counts={kind.value: len(records) for kind, records in metadata.items()},
            total_files=len(worklist),
        )

        if worklist:
            self._download_files(project_id, token, worklist, report, cancel_token)

        self._persist(project_id, metadata, report)
        return report

    @staticmethod
    def _is_permitted(kind: ResourceKind, permissions: Optional[Set[str]]) -> bool:
        return permissions is None or PERMISSIONS[kind] in permissions

    def _fetch_metadata(
        self,
        project_id: int,
        token: str,
        permissions: Optional[Iterable[str]],
    ) -> Dict[ResourceKind, Records]:
        """Fetch each permitted collection in download order."""
        granted = set(permissions) if permissions is not None else None
        metadata: Dict[ResourceKind, Records] = {}

        for kind in DOWNLOAD_ORDER:
            if not self._is_permitted(kind, granted):
                logger.debug(f"Skipping {kind.value}: not permitted")
                continue
            try:
                metadata[kind] = self._connector.fetch_collection(kind, project_id, token)
            except AuthExpiredError:
                raise
            except SiteSincError as e:
                if kind in OPTIONAL_METADATA:
                    logger.warning(f"Continuing without {kind.value} for project {project_id}: {e}")
                    metadata[kind] = []
                else:
                    raise MetadataFetchError(kind.value, cause=e)
            logger.debug(f"Fetched {len(metadata[kind])} {kind.value} for project {project_id}")

        return metadata

    def _should_stop(self, project_id: int, cancel_token: Optional[CancellationToken]) -> bool:
        if cancel_token is not None and cancel_token.is_cancelled:
            return True
        # Turning offline mode off mid-run stops attachment writes
        return not self._preferences.is_offline_mode(project_id)

    def _download_files(
        self,
        project_id: int,
        token: str,
        worklist: List[AttachmentRef],
        report: DownloadReport,
        cancel_token: Optional[CancellationToken],
    ) -> None:
        """Download attachments one at a time, advancing progress per attempt."""
        total = len(worklist)
        completed = 0
        presign_enabled = True

        for ref in worklist:
            if self._should_stop(project_id, cancel_token):
                raise DownloadCancelledError(project_id, completed=completed, total=total)

            url = ref.download_url
            failure: Optional[SiteSincError] = None

            if url is None and ref.file_key and presign_enabled:
                try:
                    url = self._connector.get_presigned_url(ref.file_key, token)
                except AuthExpiredError:
                    raise
                except DecodingError as e:
                    logger.warning(f"Presigned URL exchange disabled for this run: {e}")
                    presign_enabled = False
                except SiteSincError as e:
                    failure = e

            if failure is None and url is None:
                logger.debug(f"Skipping {ref.logical_key}: no download source")
                report.skipped_files += 1
            elif failure is None:
                failure = self._download_one(project_id, ref, url, report)

            if failure is not None:
                if ref.is_must_have:
                    raise FileDownloadError(ref.category.value, ref.file_name, cause=failure)
                logger.warning(f"Failed to download {ref.logical_key}: {failure}")
                report.failed_optional_files += 1

            completed += 1
            self._progress.set_progress(project_id, completed / total)

    def _download_one(
        self,
        project_id: int,
        ref: AttachmentRef,
        url: str,
        report: DownloadReport,
    ) -> Optional[SiteSincError]:
        """Download one file; returns the transport error instead of raising it."""
        destination = self._store.path_for(project_id, ref)
        self._store.ensure_category_dir(project_id, ref.category)
        try:
            self._connector.download_file(url, destination)
        except (AuthExpiredError, IOSetupError):
            raise
        except SiteSincError as e:
            return e

        paths = report.photo_paths if ref.category is AttachmentCategory.PHOTOS else report.attachment_paths
        paths[ref.logical_key] = str(destination)
        report.downloaded_files += 1
        return None

    def _persist(self, project_id: int, metadata: Dict[ResourceKind, Records], report: DownloadReport) -> None:
        """Write every snapshot and both path maps."""
        entries: Dict[str, Any] = {kind.value: records for kind, records in metadata.items()}
        entries[ATTACHMENT_PATH_MAP] = report.attachment_paths
        entries[PHOTO_PATH_MAP] = report.photo_paths

        for entry_kind, snapshot in entries.items():
            if not self._store.save(project_id, entry_kind, snapshot):
                raise IOSetupError(
                    f"Failed to persist {entry_kind} for project {project_id}",
                    path=str(self._store.snapshot_path(project_id, entry_kind)),
                )

    # =========================================================================
    # CACHED LOOKUPS
    # =========================================================================

    def cached_path_map(self, project_id: int, photos: bool = False) -> Dict[str, str]:
        """Logical key to local path for files downloaded by the last run."""
        entry_kind = PHOTO_PATH_MAP if photos else ATTACHMENT_PATH_MAP
        return self._store.load(project_id, entry_kind) or {}
