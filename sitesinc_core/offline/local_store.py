# =============================================================================
# sitesinc_core/offline/local_store.py
# Per-project snapshot and attachment storage
# =============================================================================
"""
LocalStore - Durable on-disk storage for cached metadata and attachments.

Directory Structure:
-------------------
<data_dir>/
├── SiteSincCache/
│   ├── drawings_project_42.json        # Metadata snapshots
│   ├── attachment_path_map_project_42.json
│   └── access_log_queue.json           # Global buckets
└── ...
<documents_dir>/
└── Project_42/
    ├── drawings/                        # Downloaded binaries
    ├── rfis/
    ├── documents/
    ├── form_attachments/
    └── photos/

Features:
- Atomic snapshot replacement (write temp file, then rename)
- Per-key write locks
- Cache miss is a normal result (None), never an exception
- Project purge and cache maintenance helpers
"""

from __future__ import annotations
import json
import os
import shutil
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union
import logging

from sitesinc_core.errors import IOSetupError
from sitesinc_core.offline.resources import AttachmentCategory, AttachmentRef, safe_file_name

logger = logging.getLogger(__name__)

Category = Union[AttachmentCategory, str]


def format_file_size(num_bytes: int) -> str:
    """Human readable size using file-style (1000-based) units."""
    if num_bytes < 1000:
        return f"{num_bytes} bytes"
    size = float(num_bytes)
    for unit in ("KB", "MB", "GB"):
        size /= 1000.0
        if size < 1000 or unit == "GB":
            return f"{size:.1f} {unit}"
    return f"{size:.1f} GB"


def _directory_size(directory: Path) -> int:
    if not directory.exists():
        return 0
    total = 0
    for path in directory.rglob("*"):
        try:
            if path.is_file():
                total += path.stat().st_size
        except OSError:
            # File vanished or is unreadable
            continue
    return total


class LocalStore:
    """
    Key-value snapshot storage plus the project attachment tree.

    Usage:
        store = LocalStore(cache_dir, attachments_root)
        store.save(42, "drawings", drawings)
        cached = store.load(42, "drawings")  # None on cache miss
        store.purge(42)
    """

    PROJECT_PREFIX = "Project_"

    def __init__(self, cache_dir: Path, attachments_root: Path):
        """
        Initialize the store.

        Args:
            cache_dir: Directory for JSON snapshots
            attachments_root: Directory holding Project_<id> folders
        """
        self.cache_dir = Path(cache_dir)
        self.attachments_root = Path(attachments_root)
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    # =========================================================================
    # PATHS AND LOCKS
    # =========================================================================

    def _lock_for(self, key: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    def snapshot_path(self, project_id: int, entry_kind: str) -> Path:
        return self.cache_dir / f"{entry_kind}_project_{project_id}.json"

    def global_path(self, name: str) -> Path:
        return self.cache_dir / f"{name}.json"

    def project_folder(self, project_id: int) -> Path:
        return self.attachments_root / f"{self.PROJECT_PREFIX}{project_id}"

    def attachment_path(self, project_id: int, category: Category, file_name: str) -> Path:
        category_name = category.value if isinstance(category, AttachmentCategory) else category
        return self.project_folder(project_id) / category_name / safe_file_name(file_name)

    def path_for(self, project_id: int, ref: AttachmentRef) -> Path:
        return self.attachment_path(project_id, ref.category, ref.file_name)

    def attachment_exists(self, project_id: int, category: Category, file_name: str) -> bool:
        return self.attachment_path(project_id, category, file_name).is_file()

    def ensure_project_folder(self, project_id: int) -> Path:
        """Create Project_<id>/; raises IOSetupError when that is impossible."""
        folder = self.project_folder(project_id)
        try:
            folder.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise IOSetupError(f"Failed to create directory: {e}", path=str(folder))
        return folder

    def ensure_category_dir(self, project_id: int, category: Category) -> Path:
        """Create Project_<id>/<category>/; raises IOSetupError on failure."""
        directory = self.attachment_path(project_id, category, "placeholder").parent
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise IOSetupError(f"Failed to create directory: {e}", path=str(directory))
        return directory

    # =========================================================================
    # SNAPSHOTS
    # =========================================================================

    def _write_json(self, path: Path, snapshot: Any) -> bool:
        """Atomically replace path with the JSON encoding of snapshot."""
        with self._lock_for(str(path)):
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                fd, tmp_name = tempfile.mkstemp(
                    dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp"
                )
                try:
                    with os.fdopen(fd, "w", encoding="utf-8") as f:
                        json.dump(snapshot, f, default=str)
                        f.flush()
                        os.fsync(f.fileno())
                    os.replace(tmp_name, path)
                except BaseException:
                    if os.path.exists(tmp_name):
                        os.unlink(tmp_name)
                    raise
            except (OSError, TypeError, ValueError) as e:
                logger.error(f"Error saving snapshot {path.name}: {e}")
                return False
        return True

    def _read_json(self, path: Path) -> Optional[Any]:
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Ignoring unreadable snapshot {path.name}: {e}")
            return None

    def save(self, project_id: int, entry_kind: str, snapshot: Any) -> bool:
        """
        Persist a snapshot, replacing any previous one for the same key.

        Args:
            project_id: Project the entry belongs to
            entry_kind: Bucket name (e.g. "drawings", "attachment_path_map")
            snapshot: JSON-serializable list or mapping

        Returns:
            True if written, False if the write failed (the failure is logged)
        """
        saved = self._write_json(self.snapshot_path(project_id, entry_kind), snapshot)
        if saved:
            size = len(snapshot) if hasattr(snapshot, "__len__") else 1
            logger.debug(f"Saved {size} {entry_kind} entries for project {project_id}")
        return saved

    def load(self, project_id: int, entry_kind: str) -> Optional[Any]:
        """Load a snapshot; None when nothing was ever cached."""
        return self._read_json(self.snapshot_path(project_id, entry_kind))

    def delete(self, project_id: int, entry_kind: str) -> bool:
        path = self.snapshot_path(project_id, entry_kind)
        with self._lock_for(str(path)):
            try:
                path.unlink()
            except FileNotFoundError:
                return True
            except OSError as e:
                logger.error(f"Error deleting snapshot {path.name}: {e}")
                return False
        return True

    def save_global(self, name: str, snapshot: Any) -> bool:
        """Persist a bucket that is not tied to a project."""
        return self._write_json(self.global_path(name), snapshot)

    def load_global(self, name: str) -> Optional[Any]:
        return self._read_json(self.global_path(name))

    # =========================================================================
    # PROJECT LIFECYCLE
    # =========================================================================

    def purge(self, project_id: int) -> bool:
        """
        Remove a project's attachment folder and every cached snapshot.

        Idempotent: purging a project with nothing on disk succeeds.

        Returns:
            True if everything was removed
        """
        success = True
        folder = self.project_folder(project_id)
        if folder.exists():
            try:
                shutil.rmtree(folder)
            except OSError as e:
                logger.error(f"Error removing {folder}: {e}")
                success = False

        if self.cache_dir.exists():
            for path in self.cache_dir.glob(f"*_project_{project_id}.json"):
                with self._lock_for(str(path)):
                    try:
                        path.unlink()
                    except FileNotFoundError:
                        continue
                    except OSError as e:
                        logger.error(f"Error removing {path.name}: {e}")
                        success = False

        if success:
            logger.info(f"Offline data cleared for project {project_id}")
        return success

    # =========================================================================
    # CACHE MAINTENANCE
    # =========================================================================

    def _project_folders(self):
        if not self.attachments_root.exists():
            return []
        return [
            p for p in self.attachments_root.iterdir()
            if p.is_dir() and p.name.startswith(self.PROJECT_PREFIX)
        ]

    def clear_attachment_cache(
        self,
        category: Category = AttachmentCategory.DRAWINGS,
        extension: Optional[str] = ".pdf",
    ) -> Tuple[bool, str]:
        """Delete downloaded files of one category across all projects."""
        category_name = category.value if isinstance(category, AttachmentCategory) else category
        deleted = 0
        cleared = 0
        try:
            for project_dir in self._project_folders():
                category_dir = project_dir / category_name
                if not category_dir.exists():
                    continue
                for file in category_dir.iterdir():
                    if not file.is_file():
                        continue
                    if extension and file.suffix.lower() != extension:
                        continue
                    cleared += file.stat().st_size
                    file.unlink()
                    deleted += 1
        except OSError as e:
            return False, f"Failed to clear {category_name} cache: {e}"

        return True, f"Cleared {deleted} {category_name} files ({format_file_size(cleared)})"

    def clear_snapshot_cache(self, entry_kind: str) -> Tuple[bool, str]:
        """Delete cached snapshots of one kind across all projects."""
        if not self.cache_dir.exists():
            return True, f"No {entry_kind} cache found"

        deleted = 0
        cleared = 0
        try:
            for path in self.cache_dir.glob(f"{entry_kind}_project_*.json"):
                cleared += path.stat().st_size
                path.unlink()
                deleted += 1
        except OSError as e:
            return False, f"Failed to clear {entry_kind} cache: {e}"

        if deleted == 0:
            return True, f"No {entry_kind} cache files found"
        return True, f"Cleared {deleted} {entry_kind} cache files ({format_file_size(cleared)})"

    def clear_all_caches(self) -> Tuple[bool, str]:
        """Clear drawing PDFs and drawing list snapshots."""
        results = []
        overall = True
        for label, (ok, message) in (
            ("PDF Drawings", self.clear_attachment_cache(AttachmentCategory.DRAWINGS, ".pdf")),
            ("Drawings List", self.clear_snapshot_cache("drawings")),
        ):
            results.append(f"{label}: {message}")
            overall = overall and ok
        return overall, "\n".join(results)

    def cache_size(self) -> Tuple[int, str]:
        """Total bytes used by snapshots and project attachments."""
        total = _directory_size(self.cache_dir)
        for project_dir in self._project_folders():
            total += _directory_size(project_dir)
        return total, format_file_size(total)
