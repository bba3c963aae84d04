# =============================================================================
# tests/unit/test_errors.py
# Unit Tests for the error hierarchy and handlers
# =============================================================================

import logging

import pytest

from sitesinc_core.errors import (
    AuthExpiredError,
    CacheMissReason,
    CacheUnavailableError,
    ConfigurationError,
    DownloadCancelledError,
    ErrorContext,
    FileDownloadError,
    ForbiddenError,
    MetadataFetchError,
    RemoteServerError,
    SiteSincError,
    describe_error,
    error_boundary,
    handle_error,
    safe_execute,
)


class TestExceptions:
    """Test exception attributes and serialization"""

    def test_base_error_to_dict(self):
        error = SiteSincError("Something failed", code="TEST_001", details={"a": 1})

        assert error.to_dict() == {
            "error_type": "SiteSincError",
            "code": "TEST_001",
            "message": "Something failed",
            "details": {"a": 1},
            "recoverable": True,
        }
        assert str(error) == "[TEST_001] Something failed | Details: {'a': 1}"

    def test_forbidden_is_treated_as_auth_expired(self):
        error = ForbiddenError()

        assert isinstance(error, AuthExpiredError)
        assert error.code == "AUTH_002"
        assert not error.recoverable

    def test_remote_server_error_status(self):
        error = RemoteServerError("bad gateway", status_code=502, endpoint="drawings")

        assert error.status_code == 502
        assert error.details == {"status_code": 502, "endpoint": "drawings"}

    def test_sync_errors_carry_kind(self):
        metadata = MetadataFetchError("form_submissions", cause=RuntimeError("x"))
        download = FileDownloadError("drawings", "A-101.pdf")

        assert metadata.kind == "form_submissions"
        assert metadata.message == "Failed to fetch form submissions"
        assert download.details["file_name"] == "A-101.pdf"
        assert download.code == "SYNC_002"

    def test_cancelled_error_details(self):
        error = DownloadCancelledError(42, completed=3, total=6)

        assert error.details == {"project_id": 42, "completed": 3, "total": 6}

    @pytest.mark.parametrize("reason, expected", [
        (
            CacheMissReason.NEVER_DOWNLOADED,
            "Offline: No cached form submissions available. Ensure the project was downloaded while online.",
        ),
        (
            CacheMissReason.OFFLINE_MODE_DISABLED,
            "Offline: Offline mode not enabled. Please enable offline mode and download the project while online.",
        ),
    ])
    def test_cache_unavailable_messages(self, reason, expected):
        error = CacheUnavailableError("form_submissions", reason)

        assert error.user_message == expected
        assert error.details["reason"] == reason.value

    def test_fetch_failed_message_includes_cause(self):
        error = CacheUnavailableError(
            "photos", CacheMissReason.FETCH_FAILED, cause=RemoteServerError("Server error 500")
        )

        assert error.user_message == "Failed to load photos: Server error 500"
        assert error.cause.status_code is None


class TestHandlers:
    """Test error handling utilities"""

    def test_handle_error_recoverable(self, caplog):
        with caplog.at_level(logging.ERROR):
            message = handle_error(RemoteServerError("boom", status_code=500))

        assert message == "Error: boom"
        assert "NET_002" in caplog.text

    def test_handle_error_expired_session(self):
        message = handle_error(AuthExpiredError(), log_error=False)

        assert message == "Critical Error: Session expired. Please sign in again."

    def test_handle_error_critical(self, caplog):
        with caplog.at_level(logging.CRITICAL):
            message = handle_error(ConfigurationError("SITESINC_API_URL is empty"))

        assert message == "Critical Error: SITESINC_API_URL is empty"
        assert "CONFIG_001" in caplog.text

    def test_describe_unknown_error(self):
        code, details, recoverable = describe_error(KeyError("drawings"))

        assert code == "UNKNOWN"
        assert details["error_type"] == "KeyError"
        assert recoverable

    def test_handle_error_custom_message(self):
        message = handle_error(ValueError("raw"), log_error=False, user_message="Try again")

        assert message == "Error: Try again"

    def test_safe_execute_returns_default(self):
        def fail():
            raise RuntimeError("nope")

        assert safe_execute(fail, default=[]) == []
        assert safe_execute(lambda x: x * 2, 21) == 42

    def test_safe_execute_reraise(self):
        def fail():
            raise RuntimeError("nope")

        with pytest.raises(RuntimeError):
            safe_execute(fail, reraise=True)

    def test_error_context_suppresses_recoverable(self):
        with ErrorContext("Flushing queue") as ctx:
            raise RemoteServerError("busy", status_code=503)

        assert ctx.user_message == "Error: busy"

    def test_error_context_reraises_unrecoverable(self):
        with pytest.raises(RuntimeError):
            with ErrorContext("Downloading project", recoverable=False):
                raise RuntimeError("disk gone")

    def test_error_boundary(self):
        @error_boundary(default_return=False)
        def notify():
            raise KeyError("listener")

        assert notify() is False

    def test_error_context_records_error(self):
        with ErrorContext("Flushing queue") as ctx:
            raise KeyError("entry")

        assert isinstance(ctx.error, KeyError)
        assert ctx.user_message == "Error: Error during: Flushing queue"

    def test_error_context_always_propagates_expired_session(self):
        with pytest.raises(AuthExpiredError):
            with ErrorContext("Fetching drawings") as ctx:
                raise ForbiddenError()

        assert ctx.user_message.startswith("Critical Error: Access forbidden")

    def test_error_boundary_only_catches_listed_exceptions(self):
        @error_boundary(default_return=0, exceptions=(KeyError,))
        def count():
            raise ValueError("bad")

        with pytest.raises(ValueError):
            count()
