from flask import Blueprint, abort, current_app, send_file

from app.policydesk.storage import LocalStorage, StorageError, storage_from_config

bp = Blueprint("routes", __name__)


@bp.get("/")
def index():
    return {"app": "policydesk", "documents": "/documents/", "login": "/auth/login"}


@bp.get("/health")
def health():
    """Health check endpoint. Returns JSON."""
    return {"ok": True}


@bp.get("/healthz")
def healthz():
    """
    Fast health check for k8s/DO probes. No DB access, minimal overhead.
    """
    return "ok", 200


@bp.get("/files/<path:key>")
def public_file(key: str):
    """Public URLs for attachments held in local storage (S3 serves its own)."""
    storage = storage_from_config(current_app.config)
    if not isinstance(storage, LocalStorage) or not storage.exists(key):
        abort(404)
    try:
        fobj = storage.open(key)
    except StorageError:
        abort(404)
    return send_file(fobj, download_name=key.rsplit("/", 1)[-1], max_age=0)
