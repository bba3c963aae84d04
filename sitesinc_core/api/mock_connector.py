"""
Mock SiteSinc Connector
In-memory remote source for demos, development and tests
"""
from pathlib import Path
from typing import Any, Dict, List, Optional
import threading

from sitesinc_core.errors import IOSetupError, RemoteServerError
from sitesinc_core.offline.resources import ResourceKind

from .base_connector import BaseAPIConnector, APIConfig
from .sitesinc_connector import sort_newest_first


class MockSiteSincConnector(BaseAPIConnector):
    """
    Mock connector - serves canned records and file contents.

    Failures are injected per resource kind, per download URL, for the
    presign exchange and for access logging. Every call is recorded so
    tests can assert on what was requested.
    """

    def __init__(
        self,
        records: Optional[Dict[ResourceKind, List[Dict[str, Any]]]] = None,
        files: Optional[Dict[str, bytes]] = None,
        presigned: Optional[Dict[str, str]] = None,
    ):
        super().__init__(APIConfig(api_name="Mock SiteSinc", base_url="http://mock.sitesinc.local/api"))
        self.records: Dict[ResourceKind, List[Dict[str, Any]]] = dict(records or {})
        self.files: Dict[str, bytes] = dict(files or {})
        self.presigned: Dict[str, str] = dict(presigned or {})

        self.kind_errors: Dict[ResourceKind, Exception] = {}
        self.url_errors: Dict[str, Exception] = {}
        self.presign_error: Optional[Exception] = None
        self.access_log_error: Optional[Exception] = None

        self.fetch_calls: List[ResourceKind] = []
        self.download_calls: List[str] = []
        self.presign_calls: List[str] = []
        self.logged_events: List[Dict[str, Any]] = []
        self._lock = threading.Lock()

    def fetch_collection(self, kind: ResourceKind, project_id: int, token: str) -> List[Dict[str, Any]]:
        with self._lock:
            self.fetch_calls.append(kind)
        if kind in self.kind_errors:
            raise self.kind_errors[kind]
        records = [dict(r) for r in self.records.get(kind, [])]
        if kind is ResourceKind.PHOTOS:
            return sort_newest_first(records)
        return records

    def get_presigned_url(self, file_key: str, token: str) -> str:
        with self._lock:
            self.presign_calls.append(file_key)
        if self.presign_error is not None:
            raise self.presign_error
        if file_key not in self.presigned:
            raise RemoteServerError(f"Unknown file key {file_key}", status_code=404)
        return self.presigned[file_key]

    def download_file(self, url: str, destination: Path) -> Path:
        with self._lock:
            self.download_calls.append(url)
        if url in self.url_errors:
            raise self.url_errors[url]
        if url not in self.files:
            raise RemoteServerError("Download failed with status 404", status_code=404, endpoint=url)

        destination = Path(destination)
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            destination.write_bytes(self.files[url])
        except OSError as e:
            raise IOSetupError(f"Could not write {destination.name}: {e}", path=str(destination))
        return destination

    def log_access(self, resource_id: int, event_type: str, token: str) -> None:
        if self.access_log_error is not None:
            raise self.access_log_error
        with self._lock:
            self.logged_events.append({"resource_id": resource_id, "event_type": event_type})
