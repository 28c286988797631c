from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class Department:
    id: str
    name: str
    color: str
    created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return _jsonable(asdict(self))


@dataclass(frozen=True)
class Document:
    id: str
    name: str
    type: str
    department_id: str
    next_review: datetime
    status: str
    created_by: str
    created_at: datetime
    updated_at: datetime
    last_review: datetime | None = None
    description: str | None = None
    file_url: str | None = None
    file_name: str | None = None
    file_size: int | None = None
    # Embedded from the departments relation when the backend provides it.
    department_name: str | None = None

    @property
    def has_attachment(self) -> bool:
        return bool(self.file_url)

    def to_dict(self) -> dict[str, Any]:
        return _jsonable(asdict(self))


@dataclass(frozen=True)
class DocumentDraft:
    """Input for creating a document; id, timestamps and created_by are assigned on insert."""

    name: str
    type: str
    department_id: str
    next_review: datetime
    status: str = "Draft"
    last_review: datetime | None = None
    description: str | None = None


@dataclass(frozen=True)
class Upload:
    filename: str
    data: bytes
    content_type: str = "application/octet-stream"

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class DashboardStats:
    total_policies: int = 0
    total_sops: int = 0
    upcoming_reviews: int = 0
    overdue_reviews: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass(frozen=True)
class Snapshot:
    """Everything the dashboard reads; replaced as a whole on each refresh."""

    documents: tuple[Document, ...] = ()
    departments: tuple[Department, ...] = ()
    stats: DashboardStats = field(default_factory=DashboardStats)


def _jsonable(d: dict[str, Any]) -> dict[str, Any]:
    return {k: (v.isoformat() if isinstance(v, datetime) else v) for k, v in d.items()}
