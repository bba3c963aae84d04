# =============================================================================
# tests/conftest.py
# Pytest Configuration and Fixtures
# =============================================================================

import pytest
from typing import Dict, List

from sitesinc_core.api import MockSiteSincConnector
from sitesinc_core.config import Settings
from sitesinc_core.offline.connection_manager import ConnectionManager
from sitesinc_core.offline.download_progress import DownloadProgressTracker
from sitesinc_core.offline.local_store import LocalStore
from sitesinc_core.offline.preferences import PreferenceStore
from sitesinc_core.offline.resources import ResourceKind
from sitesinc_core.offline.sync_engine import SyncEngine


PROJECT_ID = 42
TOKEN = "test-token"
FILE_BASE = "https://files.sitesinc.test"
PDF_BYTES = b"%PDF-1.4\n%mock drawing\n"
JPG_BYTES = b"\xff\xd8\xff\xe0mock-jpeg"


# =============================================================================
# RECORD BUILDERS
# =============================================================================

def make_drawing(drawing_id: int, file_names: List[str], project_id: int = PROJECT_ID) -> Dict:
    """Drawing with a single revision holding the given files"""
    return {
        "id": drawing_id,
        "projectId": project_id,
        "number": f"A-{drawing_id}",
        "title": f"Level {drawing_id} Plan",
        "revisions": [{
            "id": drawing_id * 10,
            "versionNumber": 1,
            "revisionNumber": "A",
            "drawingFiles": [
                {
                    "id": drawing_id * 100 + i,
                    "fileName": name,
                    "downloadUrl": f"{FILE_BASE}/drawings/{name}",
                }
                for i, name in enumerate(file_names)
            ],
        }],
    }


def make_photo(photo_id: str, file_name: str, uploaded_at: str) -> Dict:
    return {
        "id": photo_id,
        "url": f"{FILE_BASE}/photos/{file_name}",
        "fileName": file_name,
        "fileType": "image/jpeg",
        "uploadedAt": uploaded_at,
        "source": "direct",
    }


# =============================================================================
# SAMPLE DATA FIXTURES
# =============================================================================

@pytest.fixture
def sample_records():
    """One project's worth of records: six downloadable files in total"""
    return {
        ResourceKind.DRAWINGS: [
            make_drawing(1, ["A-101.pdf", "A-101.dwg"]),
            make_drawing(2, ["A-102.pdf"]),
        ],
        ResourceKind.RFIS: [{
            "id": 7,
            "projectId": PROJECT_ID,
            "title": "Beam clash at grid C4",
            "attachments": [{"fileName": "rfi-7.pdf", "fileUrl": "rfis/7/rfi-7.pdf"}],
        }],
        ResourceKind.FORMS: [{"id": 3, "title": "Daily Diary"}],
        ResourceKind.FORM_SUBMISSIONS: [{
            "id": 11,
            "formId": 3,
            "responses": {
                "site_photo": {
                    "image": "forms/11/site.jpg",
                    "location": {"latitude": 53.3, "longitude": -6.2},
                },
                "notes": "All clear",
            },
        }],
        ResourceKind.PHOTOS: [make_photo("p1", "crane.jpg", "2024-05-02T10:00:00Z")],
        ResourceKind.DOCUMENTS: [{
            "id": 5,
            "name": "Specification",
            "revisions": [{
                "id": 50,
                "versionNumber": 1,
                "documentFiles": [
                    {"fileName": "spec.pdf", "downloadUrl": f"{FILE_BASE}/documents/spec.pdf"}
                ],
            }],
        }],
    }


@pytest.fixture
def sample_files():
    """Download URL -> file contents for every attachment in sample_records"""
    return {
        f"{FILE_BASE}/drawings/A-101.pdf": PDF_BYTES,
        f"{FILE_BASE}/drawings/A-102.pdf": PDF_BYTES,
        f"{FILE_BASE}/presigned/rfi-7.pdf": PDF_BYTES,
        f"{FILE_BASE}/presigned/site.jpg": JPG_BYTES,
        f"{FILE_BASE}/photos/crane.jpg": JPG_BYTES,
        f"{FILE_BASE}/documents/spec.pdf": PDF_BYTES,
    }


@pytest.fixture
def sample_presigned():
    """Storage key -> presigned URL"""
    return {
        "rfis/7/rfi-7.pdf": f"{FILE_BASE}/presigned/rfi-7.pdf",
        "forms/11/site.jpg": f"{FILE_BASE}/presigned/site.jpg",
    }


# =============================================================================
# COMPONENT FIXTURES
# =============================================================================

@pytest.fixture
def settings(tmp_path):
    """Settings rooted in a temporary directory"""
    return Settings(
        api_url="http://mock.sitesinc.local/api",
        data_dir=tmp_path / "data",
        documents_dir=tmp_path / "Documents",
    )


@pytest.fixture
def store(settings):
    return LocalStore(settings.cache_dir, settings.attachments_root)


@pytest.fixture
def preferences(settings):
    return PreferenceStore(settings.preferences_file)


@pytest.fixture
def progress_tracker():
    return DownloadProgressTracker()


@pytest.fixture
def connection_manager():
    """Connection manager forced online, never probing the real network"""
    manager = ConnectionManager(api_url="http://mock.sitesinc.local/api", probe=lambda h, p, t: True)
    manager.force_online()
    yield manager
    manager.stop_monitoring()


@pytest.fixture
def mock_connector(sample_records, sample_files, sample_presigned):
    connector = MockSiteSincConnector(
        records=sample_records,
        files=sample_files,
        presigned=sample_presigned,
    )
    yield connector
    connector.close()


@pytest.fixture
def engine(mock_connector, connection_manager, store, preferences, progress_tracker):
    return SyncEngine(mock_connector, connection_manager, store, preferences, progress_tracker)


@pytest.fixture
def offline_enabled(preferences):
    """Turn offline mode on for the sample project"""
    preferences.set_offline_mode(PROJECT_ID, True)
    return PROJECT_ID
