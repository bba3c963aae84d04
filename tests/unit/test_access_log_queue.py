# =============================================================================
# tests/unit/test_access_log_queue.py
# Unit Tests for AccessLogQueue
# =============================================================================

import threading

import pytest

from sitesinc_core.errors import NetworkUnavailableError, RemoteServerError
from sitesinc_core.offline.access_log_queue import ACCESS_LOG_QUEUE, AccessLogQueue, QueuedLogEntry
from tests.conftest import TOKEN


@pytest.fixture
def access_log(mock_connector, store, connection_manager):
    queue = AccessLogQueue(mock_connector, store, connection_manager)
    yield queue
    queue.shutdown()


class TestRecordAccess:
    """Test delivery and queueing of single events"""

    def test_delivered_event(self, access_log, mock_connector):
        assert access_log.record_access(1234, "view", TOKEN)

        assert mock_connector.logged_events == [{"resource_id": 1234, "event_type": "view"}]
        assert access_log.pending_count == 0

    def test_failure_while_offline_is_queued(self, access_log, mock_connector, connection_manager):
        mock_connector.access_log_error = NetworkUnavailableError()
        connection_manager.force_offline()

        assert not access_log.record_access(1234, "download", TOKEN)

        entries = access_log.pending_entries()
        assert len(entries) == 1
        assert entries[0].resource_id == 1234
        assert entries[0].event_type == "download"
        assert entries[0].auth_token == TOKEN
        assert entries[0].enqueued_at

    def test_failure_while_online_is_dropped(self, access_log, mock_connector):
        mock_connector.access_log_error = RemoteServerError("nope", status_code=500)

        assert not access_log.record_access(1234, "view", TOKEN)
        assert access_log.pending_count == 0

    def test_async_record(self, access_log, mock_connector):
        future = access_log.record_access_async(55, "view", TOKEN)

        assert future.result(timeout=5) is True
        assert mock_connector.logged_events == [{"resource_id": 55, "event_type": "view"}]

    def test_queue_is_persisted(self, access_log, mock_connector, connection_manager, store):
        mock_connector.access_log_error = NetworkUnavailableError()
        connection_manager.force_offline()

        access_log.record_access(1, "view", TOKEN)

        raw = store.load_global(ACCESS_LOG_QUEUE)
        assert raw[0]["resource_id"] == 1
        assert set(raw[0]) == {"resource_id", "event_type", "auth_token", "enqueued_at"}


class TestFlushQueue:
    """Test redelivery of queued events"""

    def _queue(self, store, *resource_ids):
        store.save_global(
            ACCESS_LOG_QUEUE,
            [QueuedLogEntry(rid, "view", TOKEN).to_dict() for rid in resource_ids],
        )

    def test_empty_queue_twice(self, access_log, store):
        assert access_log.flush_queue() == 0
        assert access_log.flush_queue() == 0
        assert access_log.pending_count == 0

    def test_successful_entries_are_removed(self, access_log, mock_connector, store):
        self._queue(store, 1, 2, 3)

        assert access_log.flush_queue() == 3

        assert access_log.pending_count == 0
        assert sorted(e["resource_id"] for e in mock_connector.logged_events) == [1, 2, 3]

    def test_failed_entries_remain_queued(self, access_log, mock_connector, store):
        self._queue(store, 1, 2)
        mock_connector.access_log_error = NetworkUnavailableError()

        assert access_log.flush_queue() == 0

        assert [e.resource_id for e in access_log.pending_entries()] == [1, 2]

    def test_partial_failure(self, access_log, mock_connector, store):
        self._queue(store, 1, 2, 3)
        original = mock_connector.log_access

        def flaky(resource_id, event_type, token):
            if resource_id == 2:
                raise RemoteServerError("busy", status_code=503)
            original(resource_id, event_type, token)

        mock_connector.log_access = flaky

        assert access_log.flush_queue() == 2
        assert [e.resource_id for e in access_log.pending_entries()] == [2]

    def test_entries_enqueued_during_flush_are_kept(self, access_log, mock_connector, store, connection_manager):
        self._queue(store, 1)
        in_flight = threading.Event()
        release = threading.Event()

        def slow(resource_id, event_type, token):
            in_flight.set()
            release.wait(timeout=5)
            raise NetworkUnavailableError()

        mock_connector.log_access = slow
        connection_manager.force_offline()
        results = []
        worker = threading.Thread(target=lambda: results.append(access_log.flush_queue()))
        worker.start()
        assert in_flight.wait(timeout=5)

        access_log._enqueue(QueuedLogEntry(2, "download", TOKEN))
        release.set()
        worker.join(timeout=10)

        assert results == [0]
        assert [e.resource_id for e in access_log.pending_entries()] == [1, 2]

    def test_malformed_entries_are_dropped(self, access_log, store):
        store.save_global(ACCESS_LOG_QUEUE, [{"event_type": "view"}, QueuedLogEntry(9, "view", TOKEN).to_dict()])

        assert access_log.flush_queue() == 1
        assert access_log.pending_count == 0
