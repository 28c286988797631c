import logging
from datetime import timedelta

from flask import Flask, g, request
from dotenv import load_dotenv
from sqlalchemy import inspect as sa_inspect

from app.policydesk.config import load_config
from app.policydesk.db import init_db, teardown_db_session
from app.policydesk.routes import bp as routes_bp
from app.policydesk.auth import bp as auth_bp, load_current_user
from app.policydesk.modules.documents.admin import bp as documents_bp

# Columns the documents module reads and writes; checked against the live schema at startup.
_EXPECTED_COLUMNS = {
    "departments": ("id", "name", "color", "created_at"),
    "documents": (
        "id",
        "name",
        "type",
        "department_id",
        "last_review",
        "next_review",
        "status",
        "description",
        "file_url",
        "file_name",
        "file_size",
        "created_by",
        "created_at",
        "updated_at",
    ),
}


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=8)
    app.config["SESSION_REFRESH_EACH_REQUEST"] = True

    logging.getLogger("app.policydesk").setLevel(app.config.get("LOG_LEVEL") or "INFO")

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    backend = (app.config.get("GATEWAY_BACKEND") or "sql").strip().lower()
    if backend not in ("sql", "rest"):
        raise RuntimeError(f"GATEWAY_BACKEND must be 'sql' or 'rest' (got {backend!r}).")
    if backend == "rest" and not app.config.get("GATEWAY_URL"):
        raise RuntimeError("GATEWAY_URL is required when GATEWAY_BACKEND=rest.")
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if backend == "sql" and str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")

    init_db(app)

    def _dispose_engine_on_fork() -> None:
        import os

        if hasattr(os, "register_at_fork"):
            def _after_fork_child():
                engine = app.extensions.get("sqlalchemy_engine")
                if engine:
                    engine.dispose()
                    app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

            os.register_at_fork(after_in_child=_after_fork_child)

    _dispose_engine_on_fork()

    # Storage health check (fail loudly on misconfiguration)
    if backend == "sql" and app.config.get("STORAGE_BACKEND") == "s3":
        missing_s3 = []
        for key in ("S3_ENDPOINT", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY"):
            if not app.config.get(key):
                missing_s3.append(key)
        if missing_s3:
            app.logger.error("STORAGE CONFIG ERROR: Missing required S3 env vars: %s", ", ".join(missing_s3))
        else:
            try:
                from app.policydesk.storage import storage_from_config, S3Storage

                storage = storage_from_config(app.config)
                if isinstance(storage, S3Storage):
                    storage._client().head_bucket(Bucket=storage.bucket)
                    app.logger.info("Storage health check PASSED: S3 bucket '%s' accessible", storage.bucket)
            except Exception as e:
                app.logger.error("STORAGE CONFIG ERROR: Cannot access S3 bucket: %s", e)

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(documents_bp, url_prefix="/documents")

    app.before_request(load_current_user)
    app.teardown_appcontext(teardown_db_session)

    def _run_schema_health_check() -> None:
        missing: list[str] = []
        try:
            engine = app.extensions.get("sqlalchemy_engine")
            if engine is None:
                raise RuntimeError("sqlalchemy_engine not initialized")
            insp = sa_inspect(engine)
            for table, expected in _EXPECTED_COLUMNS.items():
                if not insp.has_table(table):
                    missing.append(f"{table} (table)")
                    continue
                cols = {c["name"] for c in insp.get_columns(table)}
                missing.extend(f"{table}.{col}" for col in expected if col not in cols)
        except Exception as e:
            app.logger.exception("Schema health check failed: %s", e)
            return
        if missing:
            app.logger.error("DB schema out of date; run `alembic upgrade head`. Missing: %s", ", ".join(missing))
        app.config["_schema_health_missing"] = missing

    if backend == "sql":
        _run_schema_health_check()

    @app.errorhandler(400)
    def _err_400(e):  # type: ignore[no-redef]
        return {"ok": False, "error": getattr(e, "description", "Bad request.")}, 400

    @app.errorhandler(404)
    def _err_404(e):  # type: ignore[no-redef]
        return {"ok": False, "error": "Not found."}, 404

    @app.errorhandler(405)
    def _err_405(e):  # type: ignore[no-redef]
        return {"ok": False, "error": "Method not allowed."}, 405

    @app.errorhandler(413)
    def _err_413(e):  # type: ignore[no-redef]
        limit = app.config.get("MAX_UPLOAD_BYTES") or 0
        return {"ok": False, "error": f"File too large. Maximum size is {limit // (1024 * 1024)}MB."}, 413

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        # Ensure stack trace shows in logs.
        rid = getattr(g, "request_id", None)
        app.logger.exception("Unhandled 500 (request_id=%s path=%s)", rid, request.path)
        return {"ok": False, "error": "Internal server error.", "request_id": rid}, 500

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
