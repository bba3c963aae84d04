"""
SiteSinc API Connector
Fetches project records (drawings, RFIs, forms, documents, photos) over HTTPS
"""
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, List, Optional
import logging

from sitesinc_core.errors import DecodingError
from sitesinc_core.offline.resources import ResourceKind

from .base_connector import BaseAPIConnector, APIConfig

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://sitesinc.onrender.com/api"


def sort_newest_first(photos: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Order photos by uploadedAt, newest first (ISO strings sort lexically)."""
    return sorted(photos, key=lambda p: p.get("uploadedAt") or "", reverse=True)


class SiteSincConnector(BaseAPIConnector):
    """
    Connector for the SiteSinc REST API

    Expected response formats:
        GET /drawings?projectId=42          {"drawings": [...]}
        GET /projects/42/rfis               {"rfis": [...]} or [...]
        GET /forms/accessible?projectId=42  [...]
        GET /photos/project/42              [...]
    """

    PHOTO_SOURCES = (
        "photos/project/{project_id}",
        "photos/forms/submissions/{project_id}/photos",
        "photos/rfis/{project_id}/photos",
    )

    def __init__(self, config: Optional[APIConfig] = None, max_workers: int = 3):
        super().__init__(config or APIConfig(api_name="SiteSinc", base_url=DEFAULT_API_URL))
        self.max_workers = max_workers
        self._fetchers: Dict[ResourceKind, Callable[[int, str], List[Dict[str, Any]]]] = {
            ResourceKind.DRAWINGS: self.fetch_drawings,
            ResourceKind.RFIS: self.fetch_rfis,
            ResourceKind.FORMS: self.fetch_forms,
            ResourceKind.FORM_SUBMISSIONS: self.fetch_form_submissions,
            ResourceKind.PHOTOS: self.fetch_photos,
            ResourceKind.DOCUMENTS: self.fetch_documents,
        }

    def fetch_collection(self, kind: ResourceKind, project_id: int, token: str) -> List[Dict[str, Any]]:
        return self._fetchers[kind](project_id, token)

    def _get_list(
        self,
        endpoint: str,
        token: str,
        params: Optional[Dict] = None,
        envelope: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """GET an endpoint and unwrap its record list."""
        response = self._make_request(endpoint, token=token, params=params)
        data = self._decode_json(response, endpoint)

        # Some endpoints wrap the list, others return it bare
        if envelope and isinstance(data, dict):
            if envelope not in data:
                raise DecodingError(f"Missing '{envelope}' key in response", endpoint=endpoint)
            data = data[envelope]

        if not isinstance(data, list):
            raise DecodingError("Expected a list of records", endpoint=endpoint)
        return data

    # =========================================================================
    # COLLECTIONS
    # =========================================================================

    def fetch_drawings(self, project_id: int, token: str) -> List[Dict[str, Any]]:
        drawings = self._get_list(
            "drawings", token, params={"projectId": project_id}, envelope="drawings"
        )
        return [d for d in drawings if d.get("projectId", project_id) == project_id]

    def fetch_rfis(self, project_id: int, token: str) -> List[Dict[str, Any]]:
        return self._get_list(f"projects/{project_id}/rfis", token, envelope="rfis")

    def fetch_forms(self, project_id: int, token: str) -> List[Dict[str, Any]]:
        return self._get_list("forms/accessible", token, params={"projectId": project_id})

    def fetch_form_submissions(self, project_id: int, token: str) -> List[Dict[str, Any]]:
        return self._get_list(
            "forms/submissions", token, params={"projectId": project_id}, envelope="submissions"
        )

    def fetch_documents(self, project_id: int, token: str) -> List[Dict[str, Any]]:
        return self._get_list(
            "documents", token, params={"projectId": project_id}, envelope="documents"
        )

    def fetch_photos(self, project_id: int, token: str) -> List[Dict[str, Any]]:
        """
        Fetch project, form and RFI photos concurrently.

        The first failing source propagates its error; results are joined
        and sorted newest first.
        """
        endpoints = [source.format(project_id=project_id) for source in self.PHOTO_SOURCES]
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = [executor.submit(self._get_list, endpoint, token) for endpoint in endpoints]
            photos: List[Dict[str, Any]] = []
            for future in futures:
                photos.extend(future.result())

        logger.debug(f"Fetched {len(photos)} photos for project {project_id}")
        return sort_newest_first(photos)

    # =========================================================================
    # FILES AND EVENTS
    # =========================================================================

    def get_presigned_url(self, file_key: str, token: str) -> str:
        endpoint = "forms/refresh-attachment-url"
        response = self._make_request(endpoint, method="POST", token=token, data={"fileKey": file_key})
        data = self._decode_json(response, endpoint)
        if not isinstance(data, dict) or not data.get("fileUrl"):
            raise DecodingError("'fileUrl' key missing in response", endpoint=endpoint)
        return data["fileUrl"]

    def log_access(self, resource_id: int, event_type: str, token: str) -> None:
        self._make_request(
            f"drawings/proxy-file/{resource_id}", token=token, params={"type": event_type}
        )
