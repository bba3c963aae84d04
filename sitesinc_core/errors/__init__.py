# =============================================================================
# sitesinc_core/errors/__init__.py
# Centralized Error Handling for the SiteSinc offline core
# =============================================================================

from .exceptions import (
    SiteSincError,
    ConfigurationError,
    AuthExpiredError,
    ForbiddenError,
    NetworkUnavailableError,
    RemoteServerError,
    DecodingError,
    IOSetupError,
    CacheMissReason,
    CacheUnavailableError,
    MetadataFetchError,
    FileDownloadError,
    DownloadInProgressError,
    DownloadCancelledError,
)

from .handlers import (
    describe_error,
    user_facing_message,
    handle_error,
    safe_execute,
    ErrorContext,
    error_boundary,
)

__all__ = [
    # Exceptions
    "SiteSincError",
    "ConfigurationError",
    "AuthExpiredError",
    "ForbiddenError",
    "NetworkUnavailableError",
    "RemoteServerError",
    "DecodingError",
    "IOSetupError",
    "CacheMissReason",
    "CacheUnavailableError",
    "MetadataFetchError",
    "FileDownloadError",
    "DownloadInProgressError",
    "DownloadCancelledError",
    # Handlers
    "describe_error",
    "user_facing_message",
    "handle_error",
    "safe_execute",
    "ErrorContext",
    "error_boundary",
]
