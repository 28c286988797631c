from __future__ import annotations

from datetime import datetime, timezone

from flask import Blueprint, current_app, get_flashed_messages, request

from app.policydesk.auth import login_required
from app.policydesk.constants import TAB_ALL
from app.policydesk.modules.documents.context import current_store
from app.policydesk.modules.documents.entities import Document, Upload
from app.policydesk.modules.documents.review import (
    DocumentFilters,
    dashboard_documents,
    is_overdue,
    is_upcoming,
)
from app.policydesk.modules.documents.service import (
    file_kind,
    format_file_size,
    parse_document_changes,
    parse_document_draft,
    validate_upload,
)
from app.policydesk.modules.documents.store import DocumentStore

bp = Blueprint("documents", __name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _payload(**body) -> dict:
    # Store notifications are flashed; hand them back with every response.
    body["notifications"] = [[c, m] for c, m in get_flashed_messages(with_categories=True)]
    return body


def _document_json(store: DocumentStore, doc: Document, now: datetime) -> dict:
    d = doc.to_dict()
    d["department_name"] = doc.department_name or store.department_name(doc.department_id)
    d["upcoming"] = is_upcoming(doc, now)
    d["overdue"] = is_overdue(doc, now)
    if doc.has_attachment:
        d["file_kind"] = file_kind(doc.file_name)
        d["file_size_display"] = format_file_size(doc.file_size)
    return d


def _upload_from_request() -> Upload | None:
    f = request.files.get("file")
    if not f or not f.filename:
        return None
    return Upload(
        filename=f.filename,
        data=f.read(),
        content_type=(f.mimetype or "application/octet-stream").strip(),
    )


@bp.get("/")
@login_required
def list_documents():
    store = current_store(fresh=True)
    now = _now()
    tab = (request.args.get("tab") or TAB_ALL).strip()
    docs = dashboard_documents(store.documents, DocumentFilters.from_args(request.args), tab, now)
    return _payload(
        documents=[_document_json(store, d, now) for d in docs],
        departments=[d.to_dict() for d in store.departments],
        stats=store.stats.to_dict(),
        loading=store.loading,
        tab=tab,
    )


@bp.get("/departments")
@login_required
def list_departments():
    store = current_store(fresh=True)
    return _payload(departments=[d.to_dict() for d in store.departments])


@bp.get("/stats")
@login_required
def dashboard_stats():
    store = current_store(fresh=True)
    return _payload(stats=store.stats.to_dict(), loading=store.loading)


@bp.post("/refresh")
@login_required
def refresh_documents():
    store = current_store()
    ok = store.refresh()
    return _payload(ok=ok, stats=store.stats.to_dict()), (200 if ok else 502)


@bp.post("/")
@login_required
def create_document():
    store = current_store()
    draft, errors = parse_document_draft(request.form)
    upload = _upload_from_request()
    if upload is not None:
        errors += validate_upload(upload, max_bytes=current_app.config["MAX_UPLOAD_BYTES"])
    if errors or draft is None:
        return _payload(ok=False, errors=errors), 400

    doc = store.create(draft, upload)
    if doc is None:
        return _payload(ok=False), 502
    return _payload(ok=True, document=_document_json(store, store.get(doc.id) or doc, _now())), 201


@bp.get("/<doc_id>")
@login_required
def document_detail(doc_id: str):
    store = current_store(fresh=True)
    doc = store.get(doc_id)
    if doc is None:
        return _payload(ok=False, error="Document not found."), 404
    return _payload(ok=True, document=_document_json(store, doc, _now()))


@bp.post("/<doc_id>")
@login_required
def update_document(doc_id: str):
    store = current_store(fresh=True)
    if store.get(doc_id) is None:
        return _payload(ok=False, error="Document not found."), 404

    now = _now()
    changes, errors = parse_document_changes(request.form, now=now)
    upload = _upload_from_request()
    if upload is not None:
        errors += validate_upload(upload, max_bytes=current_app.config["MAX_UPLOAD_BYTES"])
    if not errors and not changes and upload is None:
        errors.append("Nothing to update.")
    if errors:
        return _payload(ok=False, errors=errors), 400

    if not store.update(doc_id, changes, upload):
        return _payload(ok=False), 502
    doc = store.get(doc_id)
    return _payload(ok=True, document=_document_json(store, doc, now) if doc else None)


@bp.delete("/<doc_id>")
@login_required
def delete_document(doc_id: str):
    store = current_store(fresh=True)
    if store.get(doc_id) is None:
        return _payload(ok=False, error="Document not found."), 404
    if not store.remove(doc_id):
        return _payload(ok=False), 502
    return _payload(ok=True)
