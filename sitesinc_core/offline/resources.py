# =============================================================================
# sitesinc_core/offline/resources.py
# Resource kinds, attachment references and offline-availability rules
# =============================================================================
"""
Domain records travel through the offline core as plain JSON dictionaries,
exactly as the remote API returns them. This module knows where each record
type keeps its downloadable files:

    drawings          revisions[].drawingFiles[]            (PDF only)
    rfis              attachments[]
    documents         revisions[].documentFiles[] or revisions[].fileUrl
    form_submissions  responses{...} camera images / closeout photos (storage keys)
    photos            url
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import PurePosixPath
from typing import Any, Callable, Dict, Iterable, List, Optional
from urllib.parse import unquote, urlparse


class ResourceKind(Enum):
    """Collections the engine can fetch and cache."""
    DRAWINGS = "drawings"
    RFIS = "rfis"
    FORMS = "forms"
    FORM_SUBMISSIONS = "form_submissions"
    PHOTOS = "photos"
    DOCUMENTS = "documents"


class AttachmentCategory(Enum):
    """Sub-folders of Project_<id>/ holding downloaded binaries."""
    DRAWINGS = "drawings"
    RFIS = "rfis"
    DOCUMENTS = "documents"
    FORM_ATTACHMENTS = "form_attachments"
    PHOTOS = "photos"


# Order in which a full project download fetches metadata
DOWNLOAD_ORDER = [
    ResourceKind.DRAWINGS,
    ResourceKind.RFIS,
    ResourceKind.FORMS,
    ResourceKind.FORM_SUBMISSIONS,
    ResourceKind.PHOTOS,
    ResourceKind.DOCUMENTS,
]

# Metadata kinds whose fetch failure is tolerated during a full download
OPTIONAL_METADATA = {ResourceKind.DOCUMENTS}

# A transport failure on these categories aborts a full download
MUST_HAVE_CATEGORIES = {AttachmentCategory.DRAWINGS, AttachmentCategory.RFIS}

# Path-map cache entries
ATTACHMENT_PATH_MAP = "attachment_path_map"
PHOTO_PATH_MAP = "photo_path_map"

# Permission names gating each resource kind
PERMISSIONS = {
    ResourceKind.DRAWINGS: "view_drawings",
    ResourceKind.RFIS: "view_rfis",
    ResourceKind.FORMS: "view_forms",
    ResourceKind.FORM_SUBMISSIONS: "view_forms",
    ResourceKind.PHOTOS: "view_photos",
    ResourceKind.DOCUMENTS: "view_documents",
}

OFFLINE_FLAG = "isOffline"


@dataclass(frozen=True)
class AttachmentRef:
    """A downloadable binary referenced by a domain record."""
    category: AttachmentCategory
    file_name: str
    download_url: Optional[str] = None
    file_key: Optional[str] = None
    record_id: Any = None

    @property
    def logical_key(self) -> str:
        return f"{self.category.value}/{self.file_name}"

    @property
    def is_must_have(self) -> bool:
        return self.category in MUST_HAVE_CATEGORIES

    @property
    def has_source(self) -> bool:
        return bool(self.download_url or self.file_key)

    @property
    def is_pdf(self) -> bool:
        return self.file_name.lower().endswith(".pdf")


def safe_file_name(name: str, fallback: str = "file") -> str:
    """Strip any directory components a server-provided name may carry."""
    cleaned = PurePosixPath(str(name).replace("\\", "/")).name
    if cleaned in ("", ".", ".."):
        return fallback
    return cleaned


def _is_url(value: Optional[str]) -> bool:
    return bool(value) and urlparse(value).scheme in ("http", "https")


def _name_from_url(url: str, fallback: str) -> str:
    path = urlparse(url).path if _is_url(url) else url
    return safe_file_name(unquote(path.rsplit("/", 1)[-1]), fallback)


def _source_fields(download_url: Optional[str], file_url: Optional[str]) -> Dict[str, Optional[str]]:
    """Direct URL if one is available, otherwise treat file_url as a storage key."""
    if download_url:
        return {"download_url": download_url, "file_key": None}
    if _is_url(file_url):
        return {"download_url": file_url, "file_key": None}
    return {"download_url": None, "file_key": file_url or None}


# =============================================================================
# ATTACHMENT EXTRACTION
# =============================================================================

def drawing_attachments(drawing: Dict[str, Any]) -> List[AttachmentRef]:
    """PDF drawing files across every revision."""
    refs = []
    for revision in drawing.get("revisions") or []:
        for file in revision.get("drawingFiles") or []:
            name = file.get("fileName") or ""
            if not name.lower().endswith(".pdf"):
                continue
            refs.append(AttachmentRef(
                category=AttachmentCategory.DRAWINGS,
                file_name=safe_file_name(name),
                download_url=file.get("downloadUrl"),
                record_id=drawing.get("id"),
            ))
    return refs


def rfi_attachments(rfi: Dict[str, Any]) -> List[AttachmentRef]:
    refs = []
    for attachment in rfi.get("attachments") or []:
        name = attachment.get("fileName") or _name_from_url(attachment.get("fileUrl") or "", "attachment")
        refs.append(AttachmentRef(
            category=AttachmentCategory.RFIS,
            file_name=safe_file_name(name),
            record_id=rfi.get("id"),
            **_source_fields(attachment.get("downloadUrl"), attachment.get("fileUrl")),
        ))
    return refs


def document_attachments(document: Dict[str, Any]) -> List[AttachmentRef]:
    """Document files, falling back to the revision's own fileUrl."""
    refs = []
    for revision in document.get("revisions") or []:
        files = revision.get("documentFiles")
        if files:
            for file in files:
                refs.append(AttachmentRef(
                    category=AttachmentCategory.DOCUMENTS,
                    file_name=safe_file_name(file.get("fileName") or "", "document.pdf"),
                    record_id=document.get("id"),
                    **_source_fields(file.get("downloadUrl"), file.get("fileUrl")),
                ))
        elif revision.get("fileUrl"):
            refs.append(AttachmentRef(
                category=AttachmentCategory.DOCUMENTS,
                file_name=_name_from_url(revision["fileUrl"], "document.pdf"),
                record_id=document.get("id"),
                **_source_fields(revision.get("downloadUrl"), revision["fileUrl"]),
            ))
    return refs


def _collect_form_keys(value: Any, keys: List[str]) -> None:
    """Walk a submission response value collecting camera images and closeout photos."""
    if isinstance(value, dict):
        image = value.get("image")
        if isinstance(image, str) and image:
            keys.append(image)
        photos = value.get("photos")
        if isinstance(photos, list):
            keys.extend(p for p in photos if isinstance(p, str) and p)
        for nested in value.values():
            if isinstance(nested, (dict, list)):
                _collect_form_keys(nested, keys)
    elif isinstance(value, list):
        for item in value:
            _collect_form_keys(item, keys)


def form_submission_attachments(submission: Dict[str, Any]) -> List[AttachmentRef]:
    keys: List[str] = []
    _collect_form_keys(submission.get("responses") or {}, keys)

    submission_id = submission.get("id")
    refs = []
    seen = set()
    for key in keys:
        if key in seen:
            continue
        seen.add(key)
        # Keys of different submissions often end in the same file name
        name = _name_from_url(key, "attachment")
        refs.append(AttachmentRef(
            category=AttachmentCategory.FORM_ATTACHMENTS,
            file_name=safe_file_name(f"{submission_id}_{name}"),
            record_id=submission_id,
            **_source_fields(None, key),
        ))
    return refs


def photo_attachments(photo: Dict[str, Any]) -> List[AttachmentRef]:
    url = photo.get("url")
    name = photo.get("fileName") or (_name_from_url(url, "photo.jpg") if url else "photo.jpg")
    # Photos from different sources may share a file name
    file_name = safe_file_name(f"{photo.get('id')}_{name}")
    return [AttachmentRef(
        category=AttachmentCategory.PHOTOS,
        file_name=file_name,
        record_id=photo.get("id"),
        **_source_fields(None, url),
    )]


EXTRACTORS: Dict[ResourceKind, Callable[[Dict[str, Any]], List[AttachmentRef]]] = {
    ResourceKind.DRAWINGS: drawing_attachments,
    ResourceKind.RFIS: rfi_attachments,
    ResourceKind.DOCUMENTS: document_attachments,
    ResourceKind.FORM_SUBMISSIONS: form_submission_attachments,
    ResourceKind.PHOTOS: photo_attachments,
}


def attachments_for(kind: ResourceKind, record: Dict[str, Any]) -> List[AttachmentRef]:
    """Attachments referenced by one record (forms carry none)."""
    extractor = EXTRACTORS.get(kind)
    return extractor(record) if extractor else []


def build_worklist(metadata: Dict[ResourceKind, List[Dict[str, Any]]]) -> List[AttachmentRef]:
    """Flatten every attachment in the fetched metadata, in download order."""
    worklist: List[AttachmentRef] = []
    for kind in DOWNLOAD_ORDER:
        for record in metadata.get(kind, []):
            worklist.extend(attachments_for(kind, record))
    return worklist


# =============================================================================
# OFFLINE AVAILABILITY
# =============================================================================

def is_available_offline(
    kind: ResourceKind,
    record: Dict[str, Any],
    exists: Callable[[AttachmentRef], bool],
) -> bool:
    """
    Whether every file a record needs is on disk.

    Drawings and documents only consider PDF files; a document without any PDF
    is never available offline. Other kinds require all of their attachments.
    """
    refs = attachments_for(kind, record)
    if kind in (ResourceKind.DRAWINGS, ResourceKind.DOCUMENTS):
        refs = [r for r in refs if r.is_pdf]
        if kind is ResourceKind.DOCUMENTS and not refs:
            return False
    return all(exists(ref) for ref in refs)


def annotate_offline(
    kind: ResourceKind,
    records: Iterable[Dict[str, Any]],
    exists: Callable[[AttachmentRef], bool],
) -> List[Dict[str, Any]]:
    """Return copies of the records with the isOffline flag set."""
    annotated = []
    for record in records:
        copy = dict(record)
        copy[OFFLINE_FLAG] = is_available_offline(kind, record, exists)
        annotated.append(copy)
    return annotated


# =============================================================================
# REVISIONS
# =============================================================================

def _parse_timestamp(value: Optional[str]) -> datetime:
    if not value:
        return datetime.min.replace(tzinfo=timezone.utc)
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return datetime.min.replace(tzinfo=timezone.utc)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def latest_revision(revisions: Optional[Iterable[Dict[str, Any]]]) -> Optional[Dict[str, Any]]:
    """
    Pick the latest revision: highest versionNumber, ties broken by the most
    recent uploadedAt (or createdAt) timestamp.

    Returns:
        The revision dict, or None when there are no revisions
    """
    candidates = list(revisions or [])
    if not candidates:
        return None
    return max(
        candidates,
        key=lambda r: (
            r.get("versionNumber") or 0,
            _parse_timestamp(r.get("uploadedAt") or r.get("createdAt")),
        ),
    )
