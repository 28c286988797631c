from __future__ import annotations

from datetime import timedelta

from flask import Flask, current_app, flash, g, has_request_context

from app.policydesk.modules.documents.gateway import gateway_from_config
from app.policydesk.modules.documents.repository import DocumentRepository
from app.policydesk.modules.documents.store import DocumentStore, StoreRegistry


def flash_notifier(message: str, category: str) -> None:
    if has_request_context():
        flash(message, category)
    else:
        current_app.logger.info("[%s] %s", category, message)


def get_registry(app: Flask) -> StoreRegistry:
    reg = app.extensions.get("document_stores")
    if reg is None:
        lifetime = app.config.get("PERMANENT_SESSION_LIFETIME")
        idle = lifetime.total_seconds() if isinstance(lifetime, timedelta) else None
        reg = StoreRegistry(max_idle_seconds=idle)
        app.extensions["document_stores"] = reg
    return reg


def open_store(app: Flask, user_id: str | None) -> DocumentStore:
    """
    Store for `user_id`, created and loaded on first use. With no user the
    store is empty and not loading.
    """
    if not user_id:
        return DocumentStore(None, notify=flash_notifier)

    def _factory() -> DocumentStore:
        repo = DocumentRepository(
            gateway=gateway_from_config(app),
            owner_id=user_id,
            bucket=app.config.get("DOCUMENTS_BUCKET") or "documents",
        )
        return DocumentStore(repo, notify=flash_notifier)

    store, created = get_registry(app).open(user_id, _factory)
    if created:
        app.logger.info("Opened document store for user_id=%s", user_id)
        store.refresh()
    return store


def close_store(app: Flask, user_id: str | None) -> None:
    if user_id:
        get_registry(app).close(user_id)
        app.logger.info("Closed document store for user_id=%s", user_id)


def current_store(*, fresh: bool = False) -> DocumentStore:
    """
    Store for the signed-in user. With `fresh`, re-fetch before returning so
    that writes made through another worker process are visible.
    """
    user = getattr(g, "current_user", None)
    app = current_app._get_current_object()  # type: ignore[attr-defined]
    registry = get_registry(app)
    existed = user is not None and registry.get(str(user.id)) is not None
    store = open_store(app, str(user.id) if user else None)
    if fresh and existed:
        store.refresh()
    return store
