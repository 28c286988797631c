from __future__ import annotations

import re
from datetime import datetime
from typing import Any

from werkzeug.utils import secure_filename

from app.policydesk.constants import DEFAULT_STATUS, DOCUMENT_STATUSES, DOCUMENT_TYPES
from app.policydesk.modules.documents.entities import DocumentDraft, Upload
from app.policydesk.utils import parse_timestamp

IMAGE_EXTENSIONS = frozenset({"jpg", "jpeg", "png", "gif", "webp", "svg"})
TEXT_EXTENSIONS = frozenset({"txt", "md", "csv"})

_SIZE_UNITS = ("Bytes", "KB", "MB", "GB")


def sanitize_upload_filename(filename: str) -> str:
    fn = secure_filename(filename or "")
    return fn or "document.bin"


def file_extension(filename: str) -> str:
    """Text after the last dot (the whole name when there is none), reduced to [a-z0-9]."""
    tail = (filename or "").rsplit(".", 1)[-1].lower()
    ext = re.sub(r"[^a-z0-9]", "", tail)
    return ext or "bin"


def storage_key(owner_id: str, document_id: str, filename: str) -> str:
    # Same owner + document always maps to the same key, so re-uploads overwrite.
    return f"{owner_id}/{document_id}.{file_extension(filename)}"


def file_kind(filename: str | None) -> str:
    ext = file_extension(filename or "")
    if ext in IMAGE_EXTENSIONS:
        return "image"
    if ext == "pdf":
        return "pdf"
    if ext in TEXT_EXTENSIONS:
        return "text"
    return "other"


def format_file_size(size: int | None) -> str:
    if not size:
        return "Unknown size"
    value = float(size)
    i = 0
    while value >= 1024 and i < len(_SIZE_UNITS) - 1:
        value /= 1024
        i += 1
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return f"{text} {_SIZE_UNITS[i]}"


def validate_upload(upload: Upload, *, max_bytes: int) -> list[str]:
    errors = []
    if upload.size == 0:
        errors.append("Uploaded file is empty.")
    if upload.size > max_bytes:
        errors.append(f"File size must be less than {format_file_size(max_bytes)}.")
    return errors


def _clean(payload: dict[str, Any], key: str) -> str:
    return str(payload.get(key) or "").strip()


def _parse_when(payload: dict[str, Any], key: str, label: str, errors: list[str]) -> datetime | None:
    raw = _clean(payload, key)
    if not raw:
        return None
    try:
        return parse_timestamp(raw)
    except ValueError:
        errors.append(f"{label} must be an ISO date (YYYY-MM-DD) or datetime.")
        return None


def parse_document_draft(payload: dict[str, Any]) -> tuple[DocumentDraft | None, list[str]]:
    """Validate create-form input. Returns (draft, errors); draft is None when errors is non-empty."""
    errors: list[str] = []
    name = _clean(payload, "name")
    doc_type = _clean(payload, "type")
    department_id = _clean(payload, "department_id")
    status = _clean(payload, "status") or DEFAULT_STATUS

    if not name:
        errors.append("Name is required.")
    if doc_type not in DOCUMENT_TYPES:
        errors.append(f"Type must be one of: {', '.join(DOCUMENT_TYPES)}")
    if not department_id:
        errors.append("Department is required.")
    if status not in DOCUMENT_STATUSES:
        errors.append(f"Invalid status. Must be one of: {', '.join(DOCUMENT_STATUSES)}")

    next_review = _parse_when(payload, "next_review", "Next review", errors)
    if next_review is None and not _clean(payload, "next_review"):
        errors.append("Next review date is required.")
    last_review = _parse_when(payload, "last_review", "Last review", errors)

    if errors:
        return None, errors
    return (
        DocumentDraft(
            name=name,
            type=doc_type,
            department_id=department_id,
            next_review=next_review,  # type: ignore[arg-type]
            status=status,
            last_review=last_review,
            description=_clean(payload, "description") or None,
        ),
        [],
    )


def parse_document_changes(payload: dict[str, Any], *, now: datetime) -> tuple[dict[str, Any], list[str]]:
    """
    Validate edit-form input into a partial update. Only fields present in
    the payload are included; `mark_reviewed` stamps last_review with `now`.
    """
    errors: list[str] = []
    changes: dict[str, Any] = {}

    if "name" in payload:
        name = _clean(payload, "name")
        if not name:
            errors.append("Name cannot be empty.")
        changes["name"] = name
    if "type" in payload:
        doc_type = _clean(payload, "type")
        if doc_type not in DOCUMENT_TYPES:
            errors.append(f"Type must be one of: {', '.join(DOCUMENT_TYPES)}")
        changes["type"] = doc_type
    if "department_id" in payload:
        department_id = _clean(payload, "department_id")
        if not department_id:
            errors.append("Department cannot be empty.")
        changes["department_id"] = department_id
    if "status" in payload:
        status = _clean(payload, "status")
        if status not in DOCUMENT_STATUSES:
            errors.append(f"Invalid status. Must be one of: {', '.join(DOCUMENT_STATUSES)}")
        changes["status"] = status
    if "description" in payload:
        changes["description"] = _clean(payload, "description") or None
    if "next_review" in payload:
        next_review = _parse_when(payload, "next_review", "Next review", errors)
        if next_review is None and not _clean(payload, "next_review"):
            errors.append("Next review date cannot be cleared.")
        changes["next_review"] = next_review
    if "last_review" in payload:
        changes["last_review"] = _parse_when(payload, "last_review", "Last review", errors)
    if _clean(payload, "mark_reviewed").lower() in ("1", "true", "yes", "on"):
        changes["last_review"] = now

    return changes, errors
