# =============================================================================
# sitesinc_core/offline/access_log_queue.py
# Store-and-forward queue for drawing access events
# =============================================================================
"""
AccessLogQueue - fire-and-forget view/download events with offline retry.

An event that cannot be delivered while the network is down is persisted to
the global "access_log_queue" bucket of the LocalStore and redelivered by
flush_queue() once connectivity returns. Failures while online are dropped.
"""

from __future__ import annotations
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
import logging

from sitesinc_core.errors import SiteSincError

logger = logging.getLogger(__name__)

ACCESS_LOG_QUEUE = "access_log_queue"


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class QueuedLogEntry:
    """An access event waiting for redelivery."""
    resource_id: int
    event_type: str  # "view" or "download"
    auth_token: str
    enqueued_at: str = field(default_factory=_utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> QueuedLogEntry:
        return cls(
            resource_id=data["resource_id"],
            event_type=data["event_type"],
            auth_token=data["auth_token"],
            enqueued_at=data.get("enqueued_at") or _utc_now(),
        )


class AccessLogQueue:
    """
    Deliver access events now, or queue them while offline.

    Usage:
        queue = AccessLogQueue(connector, store, connection_manager)
        queue.record_access_async(1234, "view", token)
        ...
        delivered = queue.flush_queue()  # when back online
    """

    MAX_WORKERS = 4

    def __init__(self, connector, store, connection_manager, max_workers: Optional[int] = None):
        """
        Args:
            connector: Remote source exposing log_access(resource_id, event_type, token)
            store: LocalStore holding the persisted queue
            connection_manager: Reachability monitor consulted on failure
            max_workers: Concurrent deliveries during a flush
        """
        self._connector = connector
        self._store = store
        self._connection_manager = connection_manager
        self._max_workers = max_workers or self.MAX_WORKERS
        self._lock = threading.Lock()
        self._flush_lock = threading.Lock()
        self._executor = ThreadPoolExecutor(
            max_workers=self._max_workers, thread_name_prefix="AccessLog"
        )

    # =========================================================================
    # PERSISTENCE
    # =========================================================================

    def _load(self) -> List[QueuedLogEntry]:
        raw = self._store.load_global(ACCESS_LOG_QUEUE) or []
        entries = []
        for item in raw:
            try:
                entries.append(QueuedLogEntry.from_dict(item))
            except (KeyError, TypeError) as e:
                logger.warning(f"Dropping malformed queued access log entry: {e}")
        return entries

    def _save(self, entries: List[QueuedLogEntry]) -> None:
        if not self._store.save_global(ACCESS_LOG_QUEUE, [e.to_dict() for e in entries]):
            logger.error(f"Failed to persist {len(entries)} queued access log entries")

    def _enqueue(self, entry: QueuedLogEntry) -> None:
        with self._lock:
            entries = self._load()
            entries.append(entry)
            self._save(entries)
        logger.info(f"Queued {entry.event_type} event for resource {entry.resource_id}")

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._load())

    def pending_entries(self) -> List[QueuedLogEntry]:
        with self._lock:
            return self._load()

    # =========================================================================
    # DELIVERY
    # =========================================================================

    def _deliver(self, entry: QueuedLogEntry) -> bool:
        try:
            self._connector.log_access(entry.resource_id, entry.event_type, entry.auth_token)
            return True
        except SiteSincError as e:
            logger.debug(f"Access log delivery failed for resource {entry.resource_id}: {e}")
            return False

    def record_access(self, resource_id: int, event_type: str, token: str) -> bool:
        """
        Send one access event.

        Returns:
            True if the server accepted it. A failed event is queued when the
            network is unavailable and dropped otherwise.
        """
        entry = QueuedLogEntry(resource_id=resource_id, event_type=event_type, auth_token=token)
        if self._deliver(entry):
            return True

        if not self._connection_manager.is_network_available:
            self._enqueue(entry)
        else:
            logger.warning(
                f"Dropped {event_type} event for resource {resource_id}: server rejected it"
            )
        return False

    def record_access_async(self, resource_id: int, event_type: str, token: str) -> Future:
        """Send an access event on a background worker."""
        return self._executor.submit(self.record_access, resource_id, event_type, token)

    def flush_queue(self) -> int:
        """
        Redeliver every queued event concurrently.

        Failed entries stay queued, along with anything enqueued while the
        flush was running. A flush already in progress makes this a no-op.

        Returns:
            Number of entries delivered
        """
        if not self._flush_lock.acquire(blocking=False):
            logger.debug("Access log flush already running")
            return 0

        try:
            with self._lock:
                pending = self._load()
            if not pending:
                return 0

            with ThreadPoolExecutor(max_workers=self._max_workers) as executor:
                results = list(executor.map(self._deliver, pending))

            still_queued = [entry for entry, ok in zip(pending, results) if not ok]
            delivered = len(pending) - len(still_queued)

            with self._lock:
                current = self._load()
                # Entries appended while delivering sit past the flushed prefix
                added = current[len(pending):]
                self._save(still_queued + added)

            logger.info(
                f"Flushed access log queue: {delivered} delivered, "
                f"{len(still_queued) + len(added)} pending"
            )
            return delivered
        finally:
            self._flush_lock.release()

    def shutdown(self, wait: bool = True) -> None:
        """Stop the background worker pool."""
        self._executor.shutdown(wait=wait)
