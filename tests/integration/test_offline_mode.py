# =============================================================================
# tests/integration/test_offline_mode.py
# Integration Tests for the offline-mode toggle (Enable → Download → Disable → Purge)
# =============================================================================

import threading

import pytest

from sitesinc_core.errors import (
    DownloadCancelledError,
    DownloadInProgressError,
    FileDownloadError,
    MetadataFetchError,
    NetworkUnavailableError,
    RemoteServerError,
)
from sitesinc_core.offline.project_state import ProjectOfflineState
from sitesinc_core.offline.resources import ResourceKind
from sitesinc_core.offline.sync_engine import CancellationToken
from tests.conftest import FILE_BASE, PROJECT_ID, TOKEN


@pytest.fixture
def project_state(engine, store, preferences, connection_manager):
    return ProjectOfflineState(engine, store, preferences, connection_manager)


class TestOfflineModeLifecycle:
    """
    Integration tests for turning offline mode on and off.

    Tests the flow:
    1. Enable offline mode (flag on, full download)
    2. Browse cached data while the network is down
    3. Disable offline mode (flag off, local data purged)
    """

    def test_enable_downloads_project(self, project_state, store, progress_tracker):
        report = project_state.enable_offline_mode(PROJECT_ID, TOKEN)

        assert report.downloaded_files == 6
        assert project_state.is_offline_enabled(PROJECT_ID)
        assert progress_tracker.status(PROJECT_ID).is_offline_enabled
        assert store.project_folder(PROJECT_ID).exists()

    def test_disable_purges_everything(self, project_state, store, progress_tracker):
        project_state.enable_offline_mode(PROJECT_ID, TOKEN)

        assert project_state.disable_offline_mode(PROJECT_ID) is True

        assert not project_state.is_offline_enabled(PROJECT_ID)
        assert not progress_tracker.status(PROJECT_ID).is_offline_enabled
        assert not store.project_folder(PROJECT_ID).exists()
        for kind in ResourceKind:
            assert store.load(PROJECT_ID, kind.value) is None
        assert store.load(PROJECT_ID, "attachment_path_map") is None
        assert store.load(PROJECT_ID, "photo_path_map") is None

    def test_disable_without_data_is_idempotent(self, project_state):
        assert project_state.disable_offline_mode(PROJECT_ID) is True
        assert project_state.disable_offline_mode(PROJECT_ID) is True

    def test_disable_leaves_other_projects_alone(self, project_state, store):
        store.save(7, "drawings", [{"id": 1}])

        project_state.enable_offline_mode(PROJECT_ID, TOKEN)
        project_state.disable_offline_mode(PROJECT_ID)

        assert store.load(7, "drawings") == [{"id": 1}]

    def test_cached_data_is_served_offline(self, project_state, engine, connection_manager):
        project_state.enable_offline_mode(PROJECT_ID, TOKEN)
        connection_manager.force_offline()

        assert project_state.is_project_offline(PROJECT_ID)

        drawings = engine.fetch_collection(PROJECT_ID, ResourceKind.DRAWINGS, token=TOKEN)
        photos = engine.fetch_collection(PROJECT_ID, ResourceKind.PHOTOS, token=TOKEN)

        assert drawings.served_from == "cache"
        assert [d["isOffline"] for d in drawings.records] == [True, True]
        assert photos.records[0]["isOffline"] is True
        assert drawings.notice == "Loaded cached drawings (offline)"

    def test_project_is_not_offline_while_network_is_up(self, project_state):
        project_state.enable_offline_mode(PROJECT_ID, TOKEN)

        assert not project_state.is_project_offline(PROJECT_ID)


class TestEnableFailures:
    """A failed enable turns the flag back off"""

    def test_drawing_failure_reverts_flag(self, project_state, mock_connector, progress_tracker):
        mock_connector.url_errors[f"{FILE_BASE}/drawings/A-101.pdf"] = RemoteServerError(
            "Server error 500", status_code=500
        )

        with pytest.raises(FileDownloadError):
            project_state.enable_offline_mode(PROJECT_ID, TOKEN)

        assert not project_state.is_offline_enabled(PROJECT_ID)
        state = progress_tracker.status(PROJECT_ID)
        assert state.has_error
        assert not state.is_offline_enabled

    def test_failed_enable_removes_downloaded_files(self, project_state, mock_connector, store):
        mock_connector.url_errors[f"{FILE_BASE}/drawings/A-102.pdf"] = RemoteServerError(
            "Server error 500", status_code=500
        )

        with pytest.raises(FileDownloadError):
            project_state.enable_offline_mode(PROJECT_ID, TOKEN)

        assert f"{FILE_BASE}/drawings/A-101.pdf" in mock_connector.download_calls
        assert not store.attachment_exists(PROJECT_ID, "drawings", "A-101.pdf")
        assert not store.project_folder(PROJECT_ID).exists()

    def test_cancelled_enable_keeps_downloaded_files(self, project_state, store, progress_tracker):
        cancel_token = CancellationToken()
        progress_tracker.register_callback(
            lambda project_id, state: cancel_token.cancel() if state.progress > 0 else None
        )

        with pytest.raises(DownloadCancelledError):
            project_state.enable_offline_mode(PROJECT_ID, TOKEN, cancel_token=cancel_token)

        assert not project_state.is_offline_enabled(PROJECT_ID)
        assert store.attachment_exists(PROJECT_ID, "drawings", "A-101.pdf")
        assert store.load(PROJECT_ID, "drawings") is None

    def test_metadata_failure_reverts_flag(self, project_state, mock_connector):
        mock_connector.kind_errors[ResourceKind.RFIS] = RemoteServerError("boom", status_code=500)

        with pytest.raises(MetadataFetchError):
            project_state.enable_offline_mode(PROJECT_ID, TOKEN)

        assert not project_state.is_offline_enabled(PROJECT_ID)

    def test_offline_enable_reverts_flag(self, project_state, connection_manager, mock_connector):
        connection_manager.force_offline()

        with pytest.raises(NetworkUnavailableError):
            project_state.enable_offline_mode(PROJECT_ID, TOKEN)

        assert not project_state.is_offline_enabled(PROJECT_ID)
        assert mock_connector.fetch_calls == []


class TestConcurrentEnable:
    """A second enable while a download is running is turned away"""

    def test_rejected_enable_leaves_running_download_alone(
        self, project_state, engine, mock_connector, progress_tracker
    ):
        started = threading.Event()
        release = threading.Event()
        original_fetch = mock_connector.fetch_collection

        def slow_fetch(kind, project_id, token):
            started.set()
            release.wait(timeout=5)
            return original_fetch(kind, project_id, token)

        mock_connector.fetch_collection = slow_fetch
        reports, errors = [], []

        def run():
            try:
                reports.append(project_state.enable_offline_mode(PROJECT_ID, TOKEN))
            except Exception as e:
                errors.append(e)

        worker = threading.Thread(target=run)
        worker.start()
        assert started.wait(timeout=5)

        with pytest.raises(DownloadInProgressError):
            project_state.enable_offline_mode(PROJECT_ID, TOKEN)
        assert project_state.is_offline_enabled(PROJECT_ID)
        assert engine.is_downloading(PROJECT_ID)

        release.set()
        worker.join(timeout=10)

        assert errors == []
        assert reports[0].downloaded_files == 6
        assert project_state.is_offline_enabled(PROJECT_ID)
        assert progress_tracker.status(PROJECT_ID).is_offline_enabled


class TestSetOfflineMode:
    """Test toggle transitions"""

    def test_enable_then_disable(self, project_state, store):
        report = project_state.set_offline_mode(PROJECT_ID, True, token=TOKEN)
        assert report.downloaded_files == 6

        assert project_state.set_offline_mode(PROJECT_ID, False) is True
        assert not store.project_folder(PROJECT_ID).exists()

    def test_no_transition_does_nothing(self, project_state, mock_connector, preferences):
        assert project_state.set_offline_mode(PROJECT_ID, False) is None

        preferences.set_offline_mode(PROJECT_ID, True)
        assert project_state.set_offline_mode(PROJECT_ID, True, token=TOKEN) is None
        assert mock_connector.fetch_calls == []


class TestLastViewedDrawing:
    """Test the remembered drawing per project"""

    def test_round_trip_and_clear(self, project_state, preferences):
        assert project_state.last_viewed_drawing(PROJECT_ID) is None

        project_state.set_last_viewed_drawing(PROJECT_ID, 1234)
        assert project_state.last_viewed_drawing(PROJECT_ID) == 1234
        assert preferences.get("lastViewedDrawing_42") == 1234

        project_state.set_last_viewed_drawing(PROJECT_ID, None)
        assert project_state.last_viewed_drawing(PROJECT_ID) is None
