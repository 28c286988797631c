from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from app.policydesk.modules.documents.entities import (
    DashboardStats,
    Department,
    Document,
    DocumentDraft,
    Snapshot,
    Upload,
)
from app.policydesk.modules.documents.repository import (
    DocumentRepository,
    FetchError,
    RepositoryError,
    UploadError,
)
from app.policydesk.modules.documents.review import compute_stats

logger = logging.getLogger(__name__)

Notifier = Callable[[str, str], None]


def _log_notifier(message: str, category: str) -> None:
    logger.info("[%s] %s", category, message)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DocumentStore:
    """
    Holds the last fetched snapshot of documents and departments for one
    signed-in user, plus the dashboard stats derived from it.

    Every command goes through the repository and, on success, re-fetches
    everything. Failures are logged and reported through `notify`; they never
    propagate and never touch the snapshot.

    Overlapping refreshes: each call takes a sequence number when it starts,
    and a result older than the last one applied is dropped.
    """

    def __init__(
        self,
        repository: DocumentRepository | None,
        *,
        notify: Notifier | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._repository = repository
        self._notify = notify or _log_notifier
        self._clock = clock or _utcnow
        self._lock = threading.Lock()
        self._snapshot = Snapshot()
        self._issued = 0
        self._applied = 0
        # Without a session there is nothing to load.
        self.loading = repository is not None

    @property
    def ready(self) -> bool:
        return self._repository is not None

    @property
    def snapshot(self) -> Snapshot:
        return self._snapshot

    @property
    def documents(self) -> tuple[Document, ...]:
        return self._snapshot.documents

    @property
    def departments(self) -> tuple[Department, ...]:
        return self._snapshot.departments

    @property
    def stats(self) -> DashboardStats:
        return self._snapshot.stats

    def get(self, document_id: str) -> Document | None:
        for doc in self._snapshot.documents:
            if doc.id == document_id:
                return doc
        return None

    def department_name(self, department_id: str) -> str:
        for dept in self._snapshot.departments:
            if dept.id == department_id:
                return dept.name
        return "Unknown"

    def refresh(self) -> bool:
        """Re-fetch documents and departments. Returns True when the result was applied."""
        if self._repository is None:
            self.loading = False
            return False

        with self._lock:
            self._issued += 1
            seq = self._issued
        try:
            listing = self._repository.list()
        except FetchError as e:
            logger.error("Error refreshing data: %s (cause: %s)", e, e.__cause__)
            self._notify(str(e), "danger")
            return False
        finally:
            self.loading = False

        for err in listing.errors:
            self._notify(str(err), "danger")

        with self._lock:
            if seq < self._applied:
                logger.info("Dropping stale refresh #%s (already applied #%s)", seq, self._applied)
                return False
            self._applied = seq
            current = self._snapshot
            documents = tuple(listing.documents) if listing.documents is not None else current.documents
            departments = tuple(listing.departments) if listing.departments is not None else current.departments
            self._snapshot = Snapshot(
                documents=documents,
                departments=departments,
                stats=compute_stats(documents, self._clock()),
            )
        return True

    def _failed(self, what: str, e: RepositoryError, message: str) -> None:
        logger.error("Error %s: %s (cause: %s)", what, e, e.__cause__)
        self._notify(message, "danger")

    def create(self, draft: DocumentDraft, upload: Upload | None = None) -> Document | None:
        if self._repository is None:
            return None
        try:
            doc = self._repository.create(draft, upload)
        except UploadError as e:
            self._failed("uploading file for new document", e, "Document was saved but the file upload failed")
            return None
        except RepositoryError as e:
            self._failed("adding document", e, "Failed to create document")
            return None
        self.refresh()
        self._notify("Document created successfully!", "success")
        return doc

    def update(self, document_id: str, changes: dict[str, Any], upload: Upload | None = None) -> bool:
        if self._repository is None:
            return False
        try:
            self._repository.update(document_id, changes, upload)
        except UploadError as e:
            self._failed("uploading file", e, "Failed to upload file")
            return False
        except RepositoryError as e:
            self._failed("updating document", e, "Failed to update document")
            return False
        self.refresh()
        self._notify("Document updated successfully!", "success")
        return True

    def remove(self, document_id: str) -> bool:
        if self._repository is None:
            return False
        try:
            self._repository.delete(document_id)
        except RepositoryError as e:
            self._failed("deleting document", e, "Failed to delete document")
            return False
        self.refresh()
        self._notify("Document deleted successfully!", "success")
        return True


class StoreRegistry:
    """
    One DocumentStore per signed-in user, opened at login and closed at
    logout. Sessions that just expire never log out, so a store left idle
    longer than `max_idle_seconds` is evicted on the next open().
    """

    def __init__(self, *, max_idle_seconds: float | None = None, clock: Callable[[], float] = time.monotonic) -> None:
        self._stores: dict[str, DocumentStore] = {}
        self._last_used: dict[str, float] = {}
        self._max_idle = max_idle_seconds
        self._clock = clock
        self._lock = threading.Lock()

    def _evict_idle(self, now: float) -> None:
        if self._max_idle is None:
            return
        idle = [uid for uid, t in self._last_used.items() if now - t > self._max_idle]
        for uid in idle:
            self._stores.pop(uid, None)
            self._last_used.pop(uid, None)
        if idle:
            logger.info("Evicted %s idle document store(s)", len(idle))

    def open(self, user_id: str, factory: Callable[[], DocumentStore]) -> tuple[DocumentStore, bool]:
        """Return (store, created)."""
        with self._lock:
            now = self._clock()
            self._evict_idle(now)
            self._last_used[user_id] = now
            store = self._stores.get(user_id)
            if store is not None:
                return store, False
            store = factory()
            self._stores[user_id] = store
            return store, True

    def get(self, user_id: str) -> DocumentStore | None:
        with self._lock:
            return self._stores.get(user_id)

    def close(self, user_id: str) -> None:
        with self._lock:
            self._stores.pop(user_id, None)
            self._last_used.pop(user_id, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._stores)
