# =============================================================================
# sitesinc_core/errors/exceptions.py
# Custom Exception Hierarchy for the SiteSinc offline core
# =============================================================================

from enum import Enum
from typing import Optional, Dict, Any


class SiteSincError(Exception):
    """
    Base exception for all SiteSinc offline core errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code (e.g., "SYNC_001")
        details: Additional context as a dictionary
        recoverable: Whether the error can be recovered from
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = True,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or "SS_000"
        self.details = details or {}
        self.recoverable = recoverable

    def __str__(self) -> str:
        base = f"[{self.code}] {self.message}"
        if self.details:
            base += f" | Details: {self.details}"
        return base

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization"""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
        }


# =============================================================================
# CONFIGURATION EXCEPTIONS
# =============================================================================

class ConfigurationError(SiteSincError):
    """Raised when configuration is invalid or missing"""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        expected_type: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if config_key:
            details["config_key"] = config_key
        if expected_type:
            details["expected_type"] = expected_type

        super().__init__(
            message=message,
            code="CONFIG_001",
            details=details,
            recoverable=False,
            **kwargs,
        )


# =============================================================================
# REMOTE SOURCE EXCEPTIONS
# =============================================================================

class AuthExpiredError(SiteSincError):
    """Raised on HTTP 401. The caller must re-authenticate; never retried."""

    def __init__(self, message: str = "Session expired", **kwargs):
        kwargs.setdefault("code", "AUTH_001")
        super().__init__(message=message, recoverable=False, **kwargs)


class ForbiddenError(AuthExpiredError):
    """Raised on HTTP 403. Handled exactly like an expired session."""

    def __init__(self, message: str = "Access forbidden", **kwargs):
        kwargs.setdefault("code", "AUTH_002")
        super().__init__(message=message, **kwargs)


class NetworkUnavailableError(SiteSincError):
    """Raised when the remote API cannot be reached"""

    def __init__(self, message: str = "Network unavailable", **kwargs):
        super().__init__(message=message, code="NET_001", **kwargs)


class RemoteServerError(SiteSincError):
    """Raised when the remote API answers with an unexpected status code"""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        endpoint: Optional[str] = None,
        **kwargs,
    ):
        details = kwargs.pop("details", {})
        if status_code is not None:
            details["status_code"] = status_code
        if endpoint:
            details["endpoint"] = endpoint
        self.status_code = status_code

        super().__init__(
            message=message,
            code="NET_002",
            details=details,
            **kwargs,
        )


class DecodingError(SiteSincError):
    """Raised when a response payload is absent or malformed"""

    def __init__(self, message: str, endpoint: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        if endpoint:
            details["endpoint"] = endpoint

        super().__init__(
            message=message,
            code="NET_003",
            details=details,
            **kwargs,
        )


# =============================================================================
# LOCAL STORAGE EXCEPTIONS
# =============================================================================

class IOSetupError(SiteSincError):
    """Raised when a project directory cannot be created"""

    def __init__(self, message: str, path: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        if path:
            details["path"] = path

        super().__init__(
            message=message,
            code="IO_001",
            details=details,
            **kwargs,
        )


class CacheMissReason(Enum):
    """Why a collection could not be served from cache."""
    NEVER_DOWNLOADED = "never_downloaded"            # Offline mode on, nothing cached
    OFFLINE_MODE_DISABLED = "offline_mode_disabled"  # Offline, offline mode off
    FETCH_FAILED = "fetch_failed"                    # Remote failed for another reason


class CacheUnavailableError(SiteSincError):
    """Raised (or returned) when neither remote nor cache can serve a collection"""

    def __init__(
        self,
        kind: str,
        reason: CacheMissReason,
        cause: Optional[BaseException] = None,
        **kwargs,
    ):
        self.kind = kind
        self.reason = reason
        self.cause = cause

        details = kwargs.pop("details", {})
        details["kind"] = kind
        details["reason"] = reason.value
        if cause is not None:
            details["cause"] = str(cause)

        super().__init__(
            message=self._build_message(kind, reason, cause),
            code="CACHE_001",
            details=details,
            **kwargs,
        )

    @staticmethod
    def _build_message(kind: str, reason: CacheMissReason, cause: Optional[BaseException]) -> str:
        label = kind.replace("_", " ")
        if reason is CacheMissReason.NEVER_DOWNLOADED:
            return (
                f"Offline: No cached {label} available. "
                "Ensure the project was downloaded while online."
            )
        if reason is CacheMissReason.OFFLINE_MODE_DISABLED:
            return (
                "Offline: Offline mode not enabled. "
                "Please enable offline mode and download the project while online."
            )
        cause_text = getattr(cause, "message", None) or (str(cause) if cause else "unknown error")
        return f"Failed to load {label}: {cause_text}"

    @property
    def user_message(self) -> str:
        return self.message


# =============================================================================
# SYNC EXCEPTIONS
# =============================================================================

class MetadataFetchError(SiteSincError):
    """Raised when a required metadata collection could not be fetched"""

    def __init__(self, kind: str, cause: Optional[BaseException] = None, **kwargs):
        self.kind = kind
        self.cause = cause
        details = kwargs.pop("details", {})
        details["kind"] = kind
        if cause is not None:
            details["cause"] = str(cause)

        super().__init__(
            message=f"Failed to fetch {kind.replace('_', ' ')}",
            code="SYNC_001",
            details=details,
            **kwargs,
        )


class FileDownloadError(SiteSincError):
    """Raised when a must-have attachment could not be downloaded"""

    def __init__(
        self,
        kind: str,
        file_name: str,
        cause: Optional[BaseException] = None,
        **kwargs,
    ):
        self.kind = kind
        self.file_name = file_name
        self.cause = cause
        details = kwargs.pop("details", {})
        details["kind"] = kind
        details["file_name"] = file_name
        if cause is not None:
            details["cause"] = str(cause)

        super().__init__(
            message=f"Failed to download {kind} file: {file_name}",
            code="SYNC_002",
            details=details,
            **kwargs,
        )


class DownloadInProgressError(SiteSincError):
    """Raised when a project download is requested while one is already running"""

    def __init__(self, project_id: int, **kwargs):
        self.project_id = project_id
        super().__init__(
            message=f"A download for project {project_id} is already in progress",
            code="SYNC_003",
            details={"project_id": project_id},
            **kwargs,
        )


class DownloadCancelledError(SiteSincError):
    """Raised when a project download is cancelled by the caller"""

    def __init__(self, project_id: int, completed: int = 0, total: int = 0, **kwargs):
        self.project_id = project_id
        super().__init__(
            message=f"Download for project {project_id} was cancelled",
            code="SYNC_004",
            details={"project_id": project_id, "completed": completed, "total": total},
            **kwargs,
        )
