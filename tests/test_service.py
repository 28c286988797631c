from datetime import datetime, timezone

import pytest

from app.policydesk.modules.documents.entities import Upload
from app.policydesk.modules.documents.service import (
    file_extension,
    file_kind,
    format_file_size,
    parse_document_changes,
    parse_document_draft,
    sanitize_upload_filename,
    storage_key,
    validate_upload,
)

NOW = datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    ("filename", "ext"),
    [
        ("policy.PDF", "pdf"),
        ("archive.tar.gz", "gz"),
        ("noextension", "noextension"),
        ("weird.p-d_f", "pdf"),
        ("trailing.", "bin"),
        ("", "bin"),
    ],
)
def test_file_extension(filename, ext):
    assert file_extension(filename) == ext


def test_storage_key_is_deterministic():
    assert storage_key("user-1", "doc-9", "Fire Safety.PDF") == "user-1/doc-9.pdf"
    assert storage_key("user-1", "doc-9", "other.pdf") == storage_key("user-1", "doc-9", "Fire Safety.PDF")


def test_sanitize_upload_filename():
    assert sanitize_upload_filename("../../etc/passwd") == "etc_passwd"
    assert sanitize_upload_filename("My Policy.pdf") == "My_Policy.pdf"
    assert sanitize_upload_filename("") == "document.bin"


@pytest.mark.parametrize(
    ("name", "kind"),
    [
        ("photo.JPG", "image"),
        ("diagram.svg", "image"),
        ("policy.pdf", "pdf"),
        ("notes.txt", "text"),
        ("sheet.xlsx", "other"),
        (None, "other"),
    ],
)
def test_file_kind(name, kind):
    assert file_kind(name) == kind


@pytest.mark.parametrize(
    ("size", "text"),
    [
        (None, "Unknown size"),
        (0, "Unknown size"),
        (512, "512 Bytes"),
        (1024, "1 KB"),
        (1536, "1.5 KB"),
        (1048576, "1 MB"),
        (10 * 1024 * 1024, "10 MB"),
        (1288490189, "1.2 GB"),
    ],
)
def test_format_file_size(size, text):
    assert format_file_size(size) == text


def test_validate_upload():
    limit = 10 * 1024 * 1024
    assert validate_upload(Upload("a.pdf", b"x"), max_bytes=limit) == []
    assert validate_upload(Upload("a.pdf", b""), max_bytes=limit) == ["Uploaded file is empty."]
    assert validate_upload(Upload("a.pdf", b"x" * 11), max_bytes=10) == ["File size must be less than 10 Bytes."]


def test_parse_document_draft_ok():
    draft, errors = parse_document_draft(
        {
            "name": "  Fire Safety ",
            "type": "Policy",
            "department_id": "dept-hr",
            "next_review": "2027-03-01",
            "last_review": "2026-03-01T10:00:00Z",
            "description": "",
        }
    )
    assert errors == []
    assert draft.name == "Fire Safety"
    assert draft.status == "Draft"
    assert draft.next_review == datetime(2027, 3, 1, tzinfo=timezone.utc)
    assert draft.last_review == datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc)
    assert draft.description is None


def test_parse_document_draft_errors():
    draft, errors = parse_document_draft(
        {"name": "X", "type": "SOP", "department_id": "d", "next_review": "next week", "status": "Archived"}
    )
    assert draft is None
    assert "Next review must be an ISO date (YYYY-MM-DD) or datetime." in errors
    assert any(e.startswith("Invalid status") for e in errors)
    assert "Next review date is required." not in errors


def test_parse_document_changes_only_includes_present_fields():
    changes, errors = parse_document_changes({"status": "Current", "description": "  "}, now=NOW)
    assert errors == []
    assert changes == {"status": "Current", "description": None}


def test_parse_document_changes_mark_reviewed():
    changes, errors = parse_document_changes({"mark_reviewed": "true", "last_review": "2020-01-01"}, now=NOW)
    assert errors == []
    assert changes == {"last_review": NOW}


def test_parse_document_changes_rejects_bad_values():
    changes, errors = parse_document_changes({"name": " ", "type": "Memo", "next_review": ""}, now=NOW)
    assert "Name cannot be empty." in errors
    assert any(e.startswith("Type must be one of") for e in errors)
    assert "Next review date cannot be cleared." in errors
