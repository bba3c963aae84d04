# =============================================================================
# sitesinc_core/offline/__init__.py
# Offline Resource Cache & Sync Engine for SiteSinc
# =============================================================================
"""
Offline Resource Cache Module

Keeps construction project data (drawings, RFIs, forms, documents, photos)
usable without a network connection.

Architecture:
------------
┌─────────────────────────────────────────────────────────────────┐
│                    OFFLINE RESOURCE CACHE                        │
├─────────────────────────────────────────────────────────────────┤
│                                                                  │
│   ┌──────────────────────────────────────────────────────────┐  │
│   │                 OfflineDataService                        │  │
│   │         (Single API - callers use this only)              │  │
│   └──────────────────────────────────────────────────────────┘  │
│              │                │                  │               │
│              ▼                ▼                  ▼               │
│   ┌────────────────┐ ┌─────────────────┐ ┌────────────────┐     │
│   │ProjectOffline- │ │   SyncEngine    │ │ AccessLogQueue │     │
│   │State (toggle)  │ │ (fetch/download)│ │ (store+forward)│     │
│   └────────────────┘ └─────────────────┘ └────────────────┘     │
│                          │        │                              │
│              ┌───────────┘        └────────────┐                 │
│              ▼                                 ▼                 │
│   ┌──────────────────┐                ┌──────────────────┐      │
│   │  ConnectionMgr   │                │    LocalStore    │      │
│   │  (Online/Offline)│                │ (JSON + files)   │      │
│   └──────────────────┘                └──────────────────┘      │
│                                                                  │
│   DownloadProgressTracker observes every download run            │
└─────────────────────────────────────────────────────────────────┘

Usage:
------
from sitesinc_core.offline import get_offline_service

service = get_offline_service()
result = service.fetch_collection(42, "drawings", token=token)
if result.error:
    print(result.error.user_message)
"""

from sitesinc_core.offline.resources import (
    ResourceKind,
    AttachmentCategory,
    AttachmentRef,
    latest_revision,
)

from sitesinc_core.offline.connection_manager import (
    ConnectionManager,
    ConnectionState,
    ConnectionStatus,
    get_connection_manager,
)

from sitesinc_core.offline.local_store import (
    LocalStore,
    format_file_size,
)

from sitesinc_core.offline.preferences import PreferenceStore

from sitesinc_core.offline.download_progress import (
    DownloadProgressState,
    DownloadProgressTracker,
    get_progress_tracker,
)

from sitesinc_core.offline.access_log_queue import (
    AccessLogQueue,
    QueuedLogEntry,
)

from sitesinc_core.offline.sync_engine import (
    SyncEngine,
    CancellationToken,
    FetchResult,
    DownloadReport,
)

from sitesinc_core.offline.project_state import ProjectOfflineState

from sitesinc_core.offline.offline_service import (
    OfflineDataService,
    get_offline_service,
)

__all__ = [
    # Resource model
    "ResourceKind",
    "AttachmentCategory",
    "AttachmentRef",
    "latest_revision",
    # Connection Management
    "ConnectionManager",
    "ConnectionState",
    "ConnectionStatus",
    "get_connection_manager",
    # Local storage
    "LocalStore",
    "format_file_size",
    "PreferenceStore",
    # Download progress
    "DownloadProgressState",
    "DownloadProgressTracker",
    "get_progress_tracker",
    # Access logging
    "AccessLogQueue",
    "QueuedLogEntry",
    # Sync Engine
    "SyncEngine",
    "CancellationToken",
    "FetchResult",
    "DownloadReport",
    # Offline mode
    "ProjectOfflineState",
    # Unified Service (Main API)
    "OfflineDataService",
    "get_offline_service",
]
