from __future__ import annotations

import uuid
from collections import defaultdict
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from functools import wraps
from typing import Any

from flask import Blueprint, current_app, flash, g, get_flashed_messages, redirect, request, session, url_for
from werkzeug.security import check_password_hash

from app.policydesk.db import db_session
from app.policydesk.models import User

bp = Blueprint("auth", __name__)
_login_attempts: dict[str, list[datetime]] = defaultdict(list)
_LOGIN_RATE_LIMIT = 5
_LOGIN_RATE_WINDOW = 300  # seconds

_PUBLIC_PREFIXES = ("/static/", "/health", "/healthz", "/files/")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _check_rate_limit(ip: str) -> bool:
    cutoff = _utcnow() - timedelta(seconds=_LOGIN_RATE_WINDOW)
    _login_attempts[ip] = [t for t in _login_attempts[ip] if t > cutoff]
    return len(_login_attempts[ip]) >= _LOGIN_RATE_LIMIT


def _record_attempt(ip: str) -> None:
    _login_attempts[ip].append(_utcnow())


def load_current_user() -> None:
    """
    Loads g.current_user from the signed session cookie.
    Also assigns a simple per-request request_id (for log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    if request.path.startswith(_PUBLIC_PREFIXES):
        g.current_user = None
        return

    user_id = session.get("user_id")
    if not user_id:
        g.current_user = None
        return

    try:
        s = db_session()
        user = s.get(User, int(user_id))
        if not user or not user.is_active:
            from app.policydesk.modules.documents.context import close_store

            close_store(current_app._get_current_object(), str(user_id))  # type: ignore[attr-defined]
            session.pop("user_id", None)
            g.current_user = None
            return
        g.current_user = user
    except Exception as e:
        current_app.logger.error("load_current_user DB error (clearing session): %s", e)
        session.pop("user_id", None)
        g.current_user = None


def login_required(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        user: User | None = getattr(g, "current_user", None)
        if not user or not user.is_active:
            nxt = request.full_path or request.path
            # Avoid trailing '?' from full_path when there is no query string.
            if nxt.endswith("?"):
                nxt = nxt[:-1]
            return redirect(url_for("auth.login_get", next=nxt))
        return fn(*args, **kwargs)

    return wrapped


@bp.get("/login")
def login_get():
    nxt = (request.args.get("next") or "").strip()
    messages = [[c, m] for c, m in get_flashed_messages(with_categories=True)]
    return {"login": "required", "next": nxt, "notifications": messages}, 401


@bp.post("/login")
def login_post():
    from app.policydesk.modules.documents.context import open_store

    email = (request.form.get("email") or "").strip().lower()
    password = request.form.get("password") or ""
    nxt = (request.form.get("next") or "").strip()
    ip = request.remote_addr or "unknown"

    if _check_rate_limit(ip):
        flash("Too many login attempts. Please wait 5 minutes.", "danger")
        return redirect(url_for("auth.login_get"))

    _record_attempt(ip)

    try:
        s = db_session()
        user = s.query(User).filter(User.email == email).one_or_none()
        if not user or not user.is_active or not check_password_hash(user.password_hash, password):
            current_app.logger.warning("Login failed for email=%s ip=%s", email, ip)
            flash("Invalid credentials.", "danger")
            return redirect(url_for("auth.login_get"))

        session["user_id"] = user.id
        _login_attempts[ip].clear()
        current_app.logger.info("Login user_id=%s request_id=%s", user.id, getattr(g, "request_id", None))
        open_store(current_app._get_current_object(), str(user.id))  # type: ignore[attr-defined]
        # Optional "next" redirect (only allow local paths to avoid open redirects).
        if nxt.startswith("/") and not nxt.startswith("//"):
            return redirect(nxt)
        return redirect(url_for("documents.list_documents"))
    except Exception:
        current_app.logger.exception("Login POST crashed (email=%s request_id=%s)", email, getattr(g, "request_id", None))
        raise


@bp.get("/logout")
def logout():
    from app.policydesk.modules.documents.context import close_store

    user = getattr(g, "current_user", None)
    if user:
        close_store(current_app._get_current_object(), str(user.id))  # type: ignore[attr-defined]
        current_app.logger.info("Logout user_id=%s", user.id)
    session.pop("user_id", None)
    return redirect(url_for("routes.index"))
