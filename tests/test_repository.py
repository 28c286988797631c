"""Tests for the document repository against the SQL gateway."""
from datetime import datetime, timedelta, timezone

import pytest

from app.policydesk import create_app
from app.policydesk.db import session_scope
from app.policydesk.models import Base
from app.policydesk.modules.documents.entities import DocumentDraft, Upload
from app.policydesk.modules.documents.gateway import Gateway, GatewayError, SqlGateway, gateway_from_config
from app.policydesk.modules.documents.models import DepartmentRecord
from app.policydesk.modules.documents.repository import (
    CreateError,
    DocumentRepository,
    FetchError,
    UpdateError,
    UploadError,
)
from app.policydesk.storage import storage_from_config

T1 = datetime(2027, 3, 1, 9, 30, tzinfo=timezone.utc)


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("STORAGE_ROOT", str(tmp_path / "storage"))
    for k in ("GATEWAY_BACKEND", "GATEWAY_URL", "PUBLIC_FILES_URL", "DOCUMENTS_BUCKET"):
        monkeypatch.delenv(k, raising=False)

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])
    with session_scope(app) as s:
        s.add_all(
            [
                DepartmentRecord(id="dept-ops", name="Operations", color="#F59E0B"),
                DepartmentRecord(id="dept-hr", name="Human Resources", color="#3B82F6"),
            ]
        )
    return app


@pytest.fixture()
def repo(app):
    return DocumentRepository(gateway=gateway_from_config(app), owner_id="user-1")


class RecordingGateway(Gateway):
    def __init__(self, inner, *, fail=()):
        self.inner = inner
        self.fail = set(fail)
        self.calls = []

    def _check(self, op, table=None):
        if op in self.fail or (op, table) in self.fail:
            raise GatewayError(f"{op} unavailable", status=503)

    def select(self, table, **kw):
        self.calls.append(("select", table, kw))
        self._check("select", table)
        return self.inner.select(table, **kw)

    def insert(self, table, row):
        self.calls.append(("insert", table, row))
        self._check("insert", table)
        return self.inner.insert(table, row)

    def update(self, table, values, *, eq):
        self.calls.append(("update", table, values, eq))
        self._check("update", table)
        return self.inner.update(table, values, eq=eq)

    def delete(self, table, *, eq):
        self.calls.append(("delete", table, eq))
        self._check("delete", table)
        return self.inner.delete(table, eq=eq)

    def upload(self, bucket, key, data, *, content_type=None):
        self.calls.append(("upload", bucket, key))
        self._check("upload")
        return self.inner.upload(bucket, key, data, content_type=content_type)

    def public_url(self, bucket, key):
        return self.inner.public_url(bucket, key)


def _recording(app, **kw):
    inner = SqlGateway(app.extensions["sqlalchemy_sessionmaker"], storage_from_config(app.config))
    return RecordingGateway(inner, **kw)


def _draft(name="Fire Safety", **kw):
    values = dict(name=name, type="Policy", department_id="dept-hr", next_review=T1, status="Draft")
    values.update(kw)
    return DocumentDraft(**values)


def test_create_then_list_round_trip(repo):
    created = repo.create(_draft())

    listing = repo.list()
    assert listing.errors == []
    assert len(listing.documents) == 1
    doc = listing.documents[0]
    assert doc.id == created.id and doc.id
    assert doc.name == "Fire Safety"
    assert doc.type == "Policy"
    assert doc.department_id == "dept-hr"
    assert doc.next_review == T1
    assert doc.status == "Draft"
    assert doc.last_review is None
    assert doc.description is None
    assert doc.created_by == "user-1"
    assert doc.created_at.tzinfo is not None
    assert doc.updated_at >= doc.created_at
    assert doc.file_url is None and doc.file_name is None and doc.file_size is None
    assert doc.department_name == "Human Resources"


def test_list_orders_documents_newest_first_and_departments_by_name(repo):
    for name in ("First", "Second", "Third"):
        repo.create(_draft(name))
    listing = repo.list()
    assert [d.name for d in listing.documents] == ["Third", "Second", "First"]
    assert [d.name for d in listing.departments] == ["Human Resources", "Operations"]


def test_dates_are_sent_in_canonical_form(app):
    gw = _recording(app)
    repo = DocumentRepository(gateway=gw, owner_id="user-1")
    last = datetime(2026, 5, 1, 10, 0, tzinfo=timezone(timedelta(hours=2)))
    doc = repo.create(_draft(last_review=last))

    _, table, row = gw.calls[0]
    assert table == "documents"
    assert row["next_review"] == "2027-03-01T09:30:00+00:00"
    assert row["last_review"] == "2026-05-01T08:00:00+00:00"
    assert row["created_by"] == "user-1"

    repo.update(doc.id, {"next_review": datetime(2027, 6, 1, tzinfo=timezone.utc)})
    _, _, values, eq = gw.calls[-1]
    assert eq == {"id": doc.id}
    assert values["next_review"] == "2027-06-01T00:00:00+00:00"
    assert "updated_at" in values


def test_create_with_file_uploads_under_owner_and_document_id(repo, tmp_path):
    doc = repo.create(_draft(), Upload("Fire Safety.PDF", b"%PDF-1.4 body", "application/pdf"))

    assert doc.file_url == f"/files/documents/user-1/{doc.id}.pdf"
    assert doc.file_name == "Fire_Safety.PDF"
    assert doc.file_size == len(b"%PDF-1.4 body")
    blob = tmp_path / "storage" / "documents" / "user-1" / f"{doc.id}.pdf"
    assert blob.read_bytes() == b"%PDF-1.4 body"

    stored = repo.list().documents[0]
    assert (stored.file_url, stored.file_name, stored.file_size) == (doc.file_url, doc.file_name, doc.file_size)


def test_reupload_overwrites_the_same_blob(repo, tmp_path):
    doc = repo.create(_draft(), Upload("v1.pdf", b"version one"))
    repo.update(doc.id, {}, Upload("v2.pdf", b"version two"))

    blob = tmp_path / "storage" / "documents" / "user-1" / f"{doc.id}.pdf"
    assert blob.read_bytes() == b"version two"
    stored = repo.list().documents[0]
    assert stored.file_name == "v2.pdf"
    assert stored.file_size == len(b"version two")
    assert stored.file_url == doc.file_url


def test_partial_update_changes_only_given_fields(repo):
    doc = repo.create(_draft(description="Evacuation routes"))
    repo.update(doc.id, {"name": "Fire Safety v2", "status": "Current"})

    stored = repo.list().documents[0]
    assert stored.name == "Fire Safety v2"
    assert stored.status == "Current"
    assert stored.description == "Evacuation routes"
    assert stored.next_review == T1
    assert stored.created_by == "user-1"
    assert stored.created_at == doc.created_at
    assert stored.updated_at >= doc.updated_at


@pytest.mark.parametrize(
    "changes",
    [
        {"created_by": "someone-else"},
        {"created_at": T1},
        {"id": "other"},
        {"file_url": "https://example.com/x.pdf"},
        {"colour": "red"},
        {"next_review": None},
    ],
)
def test_update_rejects_protected_or_unknown_fields(app, changes):
    gw = _recording(app)
    repo = DocumentRepository(gateway=gw, owner_id="user-1")
    with pytest.raises(UpdateError):
        repo.update("doc-1", changes)
    assert gw.calls == []


def test_create_with_unknown_department_fails(repo):
    with pytest.raises(CreateError):
        repo.create(_draft(department_id="no-such-department"))
    assert repo.list().documents == []


def test_upload_failure_after_insert_leaves_record_without_attachment(app):
    repo = DocumentRepository(gateway=_recording(app, fail={"upload"}), owner_id="user-1")
    with pytest.raises(UploadError):
        repo.create(_draft(), Upload("a.pdf", b"data"))

    docs = repo.list().documents
    assert len(docs) == 1
    assert docs[0].file_url is None


def test_delete_is_hard_and_leaves_blob(repo, tmp_path):
    keep = repo.create(_draft("Keep"))
    gone = repo.create(_draft("Gone"), Upload("gone.txt", b"bye"))

    repo.delete(gone.id)
    assert [d.id for d in repo.list().documents] == [keep.id]
    assert (tmp_path / "storage" / "documents" / "user-1" / f"{gone.id}.txt").exists()


def test_list_reports_each_half_independently(app):
    repo = DocumentRepository(gateway=_recording(app, fail={("select", "departments")}), owner_id="user-1")
    listing = repo.list()
    assert listing.departments is None
    assert listing.documents == []
    assert [str(e) for e in listing.errors] == ["Failed to load departments"]

    repo = DocumentRepository(gateway=_recording(app, fail={("select", "documents")}), owner_id="user-1")
    listing = repo.list()
    assert listing.documents is None
    assert len(listing.departments) == 2
    assert [str(e) for e in listing.errors] == ["Failed to load documents"]


def test_list_raises_when_both_halves_fail(app):
    repo = DocumentRepository(gateway=_recording(app, fail={"select"}), owner_id="user-1")
    with pytest.raises(FetchError):
        repo.list()


class MalformedRowGateway(RecordingGateway):
    """Returns rows with a numeric created_at, as a misbehaving backend might."""

    def select(self, table, **kw):
        rows = super().select(table, **kw)
        if table == "documents":
            rows = [{**r, "created_at": 1767261600} for r in rows]
        return rows

    def insert(self, table, row):
        stored = super().insert(table, row)
        return {k: v for k, v in stored.items() if k != "created_by"}


def test_unreadable_rows_become_repository_errors(repo):
    repo.create(_draft())
    bad = DocumentRepository(gateway=MalformedRowGateway(repo.gateway), owner_id="user-1")

    listing = bad.list()
    assert listing.documents is None
    assert len(listing.departments) == 2
    assert [str(e) for e in listing.errors] == ["Failed to load documents"]

    with pytest.raises(CreateError):
        bad.create(_draft("Second"))
