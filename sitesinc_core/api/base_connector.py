"""
Base API Connector Class for the remote SiteSinc API
Provides the abstract interface the offline core consumes
"""
from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional
import logging
import os
import tempfile

import requests

from sitesinc_core.errors import (
    AuthExpiredError,
    DecodingError,
    ForbiddenError,
    IOSetupError,
    NetworkUnavailableError,
    RemoteServerError,
)
from sitesinc_core.offline.resources import ResourceKind

logger = logging.getLogger(__name__)


@dataclass
class APIConfig:
    """Configuration for API connection"""
    api_name: str
    base_url: str
    headers: Optional[Dict[str, str]] = None
    timeout: float = 30.0
    download_timeout: float = 300.0
    chunk_size: int = 64 * 1024


class BaseAPIConnector(ABC):
    """
    Abstract remote source.

    Every operation takes the caller's bearer token explicitly, since tokens
    are owned by the session layer outside the offline core.
    """

    def __init__(self, config: APIConfig):
        self.config = config
        self.session = requests.Session()

        if config.headers:
            self.session.headers.update(config.headers)

    @abstractmethod
    def fetch_collection(
        self,
        kind: ResourceKind,
        project_id: int,
        token: str,
    ) -> List[Dict[str, Any]]:
        """
        Fetch an ordered collection of records

        Args:
            kind: Resource kind to fetch
            project_id: Project whose records are requested
            token: Bearer token

        Returns:
            List of JSON records
        """
        pass

    @abstractmethod
    def get_presigned_url(self, file_key: str, token: str) -> str:
        """Exchange an opaque storage key for a short-lived download URL"""
        pass

    @abstractmethod
    def log_access(self, resource_id: int, event_type: str, token: str) -> None:
        """Record a view/download event for a resource"""
        pass

    def close(self) -> None:
        """Close the HTTP session."""
        self.session.close()

    def __enter__(self) -> BaseAPIConnector:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    @staticmethod
    def _auth_headers(token: Optional[str]) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def _make_request(
        self,
        endpoint: str,
        method: str = "GET",
        token: Optional[str] = None,
        params: Optional[Dict] = None,
        data: Optional[Dict] = None
    ) -> requests.Response:
        """
        Make HTTP request with error handling

        Args:
            endpoint: API endpoint (appended to base_url)
            method: HTTP method (GET, POST, etc.)
            token: Bearer token for the Authorization header
            params: Query parameters
            data: JSON request body

        Returns:
            Response object (status 200 or 204)

        Raises:
            AuthExpiredError: on 401
            ForbiddenError: on 403
            RemoteServerError: on any other non-success status
            NetworkUnavailableError: when the server cannot be reached
        """
        url = f"{self.config.base_url.rstrip('/')}/{endpoint.lstrip('/')}"

        try:
            response = self.session.request(
                method=method,
                url=url,
                params=params,
                json=data,
                headers=self._auth_headers(token),
                timeout=self.config.timeout
            )
        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
            raise NetworkUnavailableError(
                f"API request failed for {self.config.api_name}: {e}",
                details={"endpoint": endpoint},
            )
        except requests.exceptions.RequestException as e:
            raise RemoteServerError(
                f"API request failed for {self.config.api_name}: {e}",
                endpoint=endpoint,
            )

        self._raise_for_status(response, endpoint)
        return response

    @staticmethod
    def _raise_for_status(response: requests.Response, endpoint: str) -> None:
        status = response.status_code
        if status in (200, 204):
            return
        if status == 401:
            raise AuthExpiredError(details={"endpoint": endpoint})
        if status == 403:
            raise ForbiddenError(details={"endpoint": endpoint})
        raise RemoteServerError(
            f"Unexpected response status {status}",
            status_code=status,
            endpoint=endpoint,
        )

    @staticmethod
    def _decode_json(response: requests.Response, endpoint: str) -> Any:
        """Parse a JSON body, mapping malformed payloads to DecodingError."""
        if response.status_code == 204 or not response.content:
            raise DecodingError("Empty response payload", endpoint=endpoint)
        try:
            return response.json()
        except ValueError as e:
            raise DecodingError(f"Malformed JSON payload: {e}", endpoint=endpoint)

    def download_file(self, url: str, destination: Path) -> Path:
        """
        Stream a file to destination, replacing any existing file atomically.

        Raises:
            NetworkUnavailableError / RemoteServerError: transport failures
            IOSetupError: the destination could not be written
        """
        destination = Path(destination)
        try:
            response = self.session.get(url, stream=True, timeout=self.config.download_timeout)
        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
            raise NetworkUnavailableError(f"Download failed: {e}", details={"url": url})
        except requests.exceptions.RequestException as e:
            raise RemoteServerError(f"Download failed: {e}", endpoint=url)

        with response:
            if not 200 <= response.status_code < 300:
                raise RemoteServerError(
                    f"Download failed with status {response.status_code}",
                    status_code=response.status_code,
                    endpoint=url,
                )

            tmp_name = None
            try:
                destination.parent.mkdir(parents=True, exist_ok=True)
                fd, tmp_name = tempfile.mkstemp(dir=str(destination.parent), suffix=".part")
                with os.fdopen(fd, "wb") as f:
                    for chunk in response.iter_content(chunk_size=self.config.chunk_size):
                        if chunk:
                            f.write(chunk)
                os.replace(tmp_name, destination)
            except requests.exceptions.RequestException as e:
                raise NetworkUnavailableError(f"Download interrupted: {e}", details={"url": url})
            except OSError as e:
                raise IOSetupError(f"Could not write {destination.name}: {e}", path=str(destination))
            finally:
                if tmp_name and os.path.exists(tmp_name):
                    os.unlink(tmp_name)

        logger.debug(f"Downloaded {destination.name}")
        return destination

    def test_connection(self, token: str) -> Dict[str, Any]:
        """
        Test API connection and return status

        Returns:
            Dict with status and message
        """
        try:
            self._make_request("projects", token=token)
            return {
                "status": "success",
                "message": f"Successfully connected to {self.config.api_name}",
            }
        except Exception as e:
            return {
                "status": "error",
                "message": f"Connection failed: {str(e)}"
            }
