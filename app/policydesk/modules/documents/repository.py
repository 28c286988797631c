"""
Document repository: translates between gateway rows and Document/Department
entities and performs list/create/update/delete plus attachment upload.

Known gaps, kept on purpose:
- create() with a file: if the upload fails after the row was inserted, the
  row stays without an attachment (nothing is rolled back).
- delete() removes the row only; the uploaded blob is left in storage.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any

from app.policydesk.modules.documents.entities import Department, Document, DocumentDraft, Upload
from app.policydesk.modules.documents.gateway import Gateway, GatewayError
from app.policydesk.modules.documents.service import sanitize_upload_filename, storage_key
from app.policydesk.utils import format_timestamp, parse_timestamp

logger = logging.getLogger(__name__)

DOCUMENTS = "documents"
DEPARTMENTS = "departments"
DEFAULT_BUCKET = "documents"

UPDATABLE_FIELDS = frozenset(
    {
        "name",
        "type",
        "department_id",
        "last_review",
        "next_review",
        "status",
        "description",
    }
)
IMMUTABLE_FIELDS = frozenset({"id", "created_by", "created_at"})
# Attachment fields change only together, through upload().
ATTACHMENT_FIELDS = frozenset({"file_url", "file_name", "file_size"})
_TIMESTAMP_FIELDS = ("last_review", "next_review")


class RepositoryError(RuntimeError):
    pass


class FetchError(RepositoryError):
    pass


class CreateError(RepositoryError):
    pass


class UpdateError(RepositoryError):
    pass


class DeleteError(RepositoryError):
    pass


class UploadError(RepositoryError):
    pass


@dataclass(frozen=True)
class Listing:
    """
    Result of DocumentRepository.list(). A half that failed is None and its
    error is in `errors`; the other half is still usable.
    """

    documents: list[Document] | None
    departments: list[Department] | None
    errors: list[FetchError] = field(default_factory=list)


def _required_ts(row: dict[str, Any], key: str) -> datetime:
    ts = parse_timestamp(row.get(key))
    if ts is None:
        raise ValueError(f"{key} missing")
    return ts


def document_from_row(row: dict[str, Any]) -> Document:
    embedded = row.get(DEPARTMENTS)
    file_size = row.get("file_size")
    return Document(
        id=str(row["id"]),
        name=row["name"],
        type=row["type"],
        department_id=str(row["department_id"]),
        last_review=parse_timestamp(row.get("last_review")),
        next_review=_required_ts(row, "next_review"),
        status=row["status"],
        description=row.get("description"),
        file_url=row.get("file_url"),
        file_name=row.get("file_name"),
        file_size=int(file_size) if file_size is not None else None,
        created_by=str(row["created_by"]),
        created_at=_required_ts(row, "created_at"),
        updated_at=_required_ts(row, "updated_at"),
        department_name=embedded.get("name") if isinstance(embedded, dict) else None,
    )


def department_from_row(row: dict[str, Any]) -> Department:
    return Department(
        id=str(row["id"]),
        name=row["name"],
        color=row.get("color") or "",
        created_at=_required_ts(row, "created_at"),
    )


def _serialize_timestamps(values: dict[str, Any]) -> dict[str, Any]:
    out = dict(values)
    for key in _TIMESTAMP_FIELDS:
        if out.get(key) is not None:
            out[key] = format_timestamp(out[key])
    return out


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class DocumentRepository:
    gateway: Gateway
    owner_id: str
    bucket: str = DEFAULT_BUCKET

    def list(self) -> Listing:
        """
        Fetch departments (by name) and documents (newest first). Each half
        fails independently; FetchError is raised only when both fail.
        """
        errors: list[FetchError] = []

        departments: list[Department] | None = None
        try:
            rows = self.gateway.select(DEPARTMENTS, order_by="name")
            departments = [department_from_row(r) for r in rows]
        except (GatewayError, KeyError, TypeError, ValueError) as e:
            logger.error("Error fetching departments: %s", e)
            err = FetchError("Failed to load departments")
            err.__cause__ = e
            errors.append(err)

        documents: list[Document] | None = None
        try:
            rows = self.gateway.select(
                DOCUMENTS,
                order_by="created_at",
                descending=True,
                embed={DEPARTMENTS: ("name",)},
            )
            documents = [document_from_row(r) for r in rows]
        except (GatewayError, KeyError, TypeError, ValueError) as e:
            logger.error("Error fetching documents: %s", e)
            err = FetchError("Failed to load documents")
            err.__cause__ = e
            errors.append(err)

        if documents is None and departments is None:
            raise FetchError("Failed to load documents and departments") from errors[-1].__cause__
        return Listing(documents=documents, departments=departments, errors=errors)

    def create(self, draft: DocumentDraft, upload: Upload | None = None) -> Document:
        row = {
            "name": draft.name,
            "type": draft.type,
            "department_id": draft.department_id,
            "last_review": draft.last_review,
            "next_review": draft.next_review,
            "status": draft.status,
            "description": draft.description,
            "created_by": self.owner_id,
        }
        try:
            stored = self.gateway.insert(DOCUMENTS, _serialize_timestamps(row))
        except GatewayError as e:
            raise CreateError(f"Failed to create document: {e}") from e
        try:
            doc = document_from_row(stored)
        except (KeyError, TypeError, ValueError) as e:
            raise CreateError(f"Backend returned an unreadable document row: {e}") from e
        logger.info("Created document id=%s name=%r", doc.id, doc.name)

        if upload is None:
            return doc
        attachment = self.upload(doc.id, upload)
        try:
            self.gateway.update(DOCUMENTS, attachment, eq={"id": doc.id})
        except GatewayError as e:
            raise UploadError(f"Uploaded file but could not attach it to document {doc.id}: {e}") from e
        return replace(doc, **attachment)

    def upload(self, document_id: str, upload: Upload) -> dict[str, Any]:
        """Store the blob under its deterministic key; returns the attachment fields to patch onto the row."""
        key = storage_key(self.owner_id, document_id, upload.filename)
        try:
            self.gateway.upload(self.bucket, key, upload.data, content_type=upload.content_type)
            url = self.gateway.public_url(self.bucket, key)
        except GatewayError as e:
            raise UploadError(f"Failed to upload {upload.filename!r}: {e}") from e
        logger.info("Uploaded attachment for document id=%s key=%s size=%s", document_id, key, upload.size)
        return {
            "file_url": url,
            "file_name": sanitize_upload_filename(upload.filename),
            "file_size": upload.size,
        }

    def update(self, document_id: str, changes: dict[str, Any], upload: Upload | None = None) -> None:
        immutable = sorted(IMMUTABLE_FIELDS.intersection(changes))
        if immutable:
            raise UpdateError(f"Cannot change {', '.join(immutable)}")
        if ATTACHMENT_FIELDS.intersection(changes):
            raise UpdateError("Attachment fields can only be set by uploading a file")
        unknown = sorted(set(changes) - UPDATABLE_FIELDS - {"updated_at"})
        if unknown:
            raise UpdateError(f"Unknown document fields: {', '.join(unknown)}")
        if "next_review" in changes and changes["next_review"] is None:
            raise UpdateError("next_review cannot be cleared")

        values = _serialize_timestamps(changes)
        values["updated_at"] = format_timestamp(_now())
        if upload is not None:
            values.update(self.upload(document_id, upload))
        try:
            self.gateway.update(DOCUMENTS, values, eq={"id": document_id})
        except GatewayError as e:
            raise UpdateError(f"Failed to update document {document_id}: {e}") from e
        logger.info("Updated document id=%s fields=%s", document_id, sorted(values))

    def delete(self, document_id: str) -> None:
        try:
            self.gateway.delete(DOCUMENTS, eq={"id": document_id})
        except GatewayError as e:
            raise DeleteError(f"Failed to delete document {document_id}: {e}") from e
        logger.info("Deleted document id=%s", document_id)
