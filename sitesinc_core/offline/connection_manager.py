# =============================================================================
# sitesinc_core/offline/connection_manager.py
# Network Reachability Detection and Monitoring
# =============================================================================
"""
ConnectionManager - Detects and monitors internet/API connectivity.

Features:
- Connection probes against the SiteSinc API host and public DNS servers
- Periodic background health checks
- Event callbacks for status changes
- Process-wide default instance, while remaining freely constructible
"""

from __future__ import annotations
import socket
import threading
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple
from urllib.parse import urlparse
import logging

logger = logging.getLogger(__name__)

Probe = Callable[[str, int, float], bool]


class ConnectionStatus(Enum):
    """Connection status states."""
    ONLINE = "online"           # Internet and API host reachable
    OFFLINE = "offline"         # No connectivity
    DEGRADED = "degraded"       # Internet OK but API host unavailable
    CHECKING = "checking"       # Currently checking status
    UNKNOWN = "unknown"         # Initial state


@dataclass
class ConnectionState:
    """Current connection state with metadata."""
    status: ConnectionStatus = ConnectionStatus.UNKNOWN
    internet_available: bool = False
    api_available: bool = False
    last_check: Optional[datetime] = None
    last_online: Optional[datetime] = None
    consecutive_failures: int = 0
    error_message: Optional[str] = None


def tcp_probe(host: str, port: int, timeout: float) -> bool:
    """Return True if a TCP connection to host:port succeeds."""
    try:
        with socket.create_connection((host, port), timeout=timeout):
            return True
    except OSError:
        return False


class ConnectionManager:
    """
    Manager for network reachability.

    Usage:
        manager = ConnectionManager(api_url="https://sitesinc.onrender.com/api")
        manager.initialize()
        if manager.is_network_available:
            # Use the remote API
        else:
            # Serve from the local cache
    """

    # Configuration
    CHECK_INTERVAL_ONLINE = 30      # Seconds between checks when online
    CHECK_INTERVAL_OFFLINE = 10     # Seconds between checks when offline
    CONNECTION_TIMEOUT = 5          # Timeout for connection tests
    INTERNET_HOSTS: Sequence[Tuple[str, int]] = (
        ("8.8.8.8", 53),        # Google DNS
        ("1.1.1.1", 53),        # Cloudflare DNS
        ("208.67.222.222", 53), # OpenDNS
    )

    def __init__(
        self,
        api_url: Optional[str] = None,
        probe: Optional[Probe] = None,
        check_interval: Optional[float] = None,
    ):
        """
        Initialize connection manager.

        Args:
            api_url: Base URL of the remote API whose host is probed
            probe: Callable(host, port, timeout) -> bool, defaults to a TCP connect
            check_interval: Override for the online check interval (seconds)
        """
        self._state = ConnectionState()
        self._state_lock = threading.Lock()
        self._callbacks: List[Callable[[ConnectionState], None]] = []
        self._monitor_thread: Optional[threading.Thread] = None
        self._stop_monitoring = threading.Event()
        self._initial_status = threading.Event()
        self._initialized = False
        self._probe = probe or tcp_probe
        self._api_host = self._parse_host(api_url)
        if check_interval is not None:
            self.CHECK_INTERVAL_ONLINE = check_interval

    @staticmethod
    def _parse_host(api_url: Optional[str]) -> Optional[Tuple[str, int]]:
        if not api_url:
            return None
        parsed = urlparse(api_url)
        if not parsed.hostname:
            return None
        port = parsed.port or (443 if parsed.scheme == "https" else 80)
        return parsed.hostname, port

    @property
    def state(self) -> ConnectionState:
        """Get a copy of the current connection state."""
        with self._state_lock:
            return replace(self._state)

    @property
    def status(self) -> ConnectionStatus:
        return self._state.status

    @property
    def is_online(self) -> bool:
        """Check if we have full connectivity."""
        return self._state.status == ConnectionStatus.ONLINE

    @property
    def is_offline(self) -> bool:
        """Check if we're completely offline."""
        return self._state.status == ConnectionStatus.OFFLINE

    @property
    def is_network_available(self) -> bool:
        """Whether remote operations are worth attempting."""
        return self._state.internet_available

    def initialize(self, start_monitoring: bool = True) -> None:
        """
        Initialize the connection manager.

        Args:
            start_monitoring: Whether to start background monitoring
        """
        if self._initialized:
            return

        self.check_connection()

        if start_monitoring:
            self.start_monitoring()

        self._initialized = True
        logger.info(f"ConnectionManager initialized. Status: {self._state.status.value}")

    def check_connection(self) -> ConnectionState:
        """
        Perform a connection check and update state.

        Returns:
            Updated ConnectionState
        """
        api_ok = False
        if self._api_host is not None:
            api_ok = self._probe(self._api_host[0], self._api_host[1], self.CONNECTION_TIMEOUT)

        internet_ok = api_ok or self._check_internet()

        with self._state_lock:
            old_status = self._state.status
            self._state.last_check = datetime.now()
            self._state.internet_available = internet_ok
            self._state.api_available = api_ok or (internet_ok and self._api_host is None)

            if internet_ok and self._state.api_available:
                self._state.status = ConnectionStatus.ONLINE
                self._state.last_online = datetime.now()
                self._state.consecutive_failures = 0
                self._state.error_message = None
            elif internet_ok:
                self._state.status = ConnectionStatus.DEGRADED
                self._state.consecutive_failures += 1
                self._state.error_message = "API host unreachable"
            else:
                self._state.status = ConnectionStatus.OFFLINE
                self._state.consecutive_failures += 1
                self._state.error_message = "No network connectivity"
            changed = old_status != self._state.status

        self._initial_status.set()

        if changed:
            logger.info(f"Connection status changed: {old_status.value} -> {self._state.status.value}")
            self._notify_callbacks()

        return self.state

    def _check_internet(self) -> bool:
        """
        Check internet connectivity by attempting to reach well-known hosts.

        Returns:
            True if internet is available
        """
        for host, port in self.INTERNET_HOSTS:
            if self._probe(host, port, self.CONNECTION_TIMEOUT):
                return True
        return False

    def wait_for_initial_status(self, timeout: float = 10.0) -> bool:
        """
        Block until the first connection check has completed.

        Returns:
            Network availability once known, or the current value on timeout
        """
        if not self._initial_status.wait(timeout=timeout):
            logger.warning(
                f"Timeout waiting for initial network status after {timeout}s, "
                f"using current status: {self.is_network_available}"
            )
        return self.is_network_available

    def start_monitoring(self) -> None:
        """Start background connection monitoring."""
        if self._monitor_thread is not None and self._monitor_thread.is_alive():
            return

        self._stop_monitoring.clear()
        self._monitor_thread = threading.Thread(
            target=self._monitoring_loop,
            daemon=True,
            name="ConnectionMonitor"
        )
        self._monitor_thread.start()
        logger.debug("Connection monitoring started")

    def stop_monitoring(self) -> None:
        """Stop background connection monitoring."""
        self._stop_monitoring.set()
        if self._monitor_thread:
            self._monitor_thread.join(timeout=5)
        logger.debug("Connection monitoring stopped")

    def _monitoring_loop(self) -> None:
        """Background monitoring loop."""
        while not self._stop_monitoring.is_set():
            interval = (
                self.CHECK_INTERVAL_ONLINE
                if self.is_online
                else self.CHECK_INTERVAL_OFFLINE
            )

            if self._stop_monitoring.wait(timeout=interval):
                break

            try:
                self.check_connection()
            except Exception as e:
                logger.error(f"Error in connection check: {e}")

    def register_callback(self, callback: Callable[[ConnectionState], None]) -> None:
        """
        Register a callback for connection status changes.

        Args:
            callback: Function called with ConnectionState when status changes
        """
        if callback not in self._callbacks:
            self._callbacks.append(callback)

    def unregister_callback(self, callback: Callable[[ConnectionState], None]) -> None:
        """Remove a registered callback."""
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def _notify_callbacks(self) -> None:
        """Notify all registered callbacks of status change."""
        state = self.state
        for callback in list(self._callbacks):
            try:
                callback(state)
            except Exception as e:
                logger.error(f"Error in connection callback: {e}")

    def _force(self, online: bool) -> None:
        with self._state_lock:
            old_status = self._state.status
            self._state.status = ConnectionStatus.ONLINE if online else ConnectionStatus.OFFLINE
            self._state.internet_available = online
            self._state.api_available = online
            self._state.last_check = datetime.now()
            if online:
                self._state.last_online = self._state.last_check
            changed = old_status != self._state.status
        self._initial_status.set()
        if changed:
            self._notify_callbacks()

    def force_offline(self) -> None:
        """Force offline mode (for testing or user preference)."""
        self._force(False)
        logger.info("Forced offline mode")

    def force_online(self) -> None:
        """Force online mode (for testing)."""
        self._force(True)
        logger.info("Forced online mode")

    def force_check(self) -> ConnectionState:
        """Force an immediate connection check."""
        return self.check_connection()

    def get_status_display(self) -> dict:
        """Get status information for display."""
        state = self.state
        return {
            "status": state.status.value,
            "is_online": state.status == ConnectionStatus.ONLINE,
            "internet": state.internet_available,
            "api": state.api_available,
            "last_check": state.last_check.isoformat() if state.last_check else None,
            "last_online": state.last_online.isoformat() if state.last_online else None,
            "failures": state.consecutive_failures,
            "error": state.error_message,
        }


# Singleton accessor
_connection_manager: Optional[ConnectionManager] = None


def get_connection_manager() -> ConnectionManager:
    """Get the global ConnectionManager instance, probing the configured API host."""
    global _connection_manager
    if _connection_manager is None:
        from sitesinc_core.config import get_settings
        settings = get_settings()
        _connection_manager = ConnectionManager(
            api_url=settings.api_url,
            check_interval=settings.monitor_interval,
        )
    return _connection_manager
