import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str
    log_level: str

    gateway_backend: str
    gateway_url: str
    gateway_api_key: str
    gateway_timeout: int
    documents_bucket: str

    storage_backend: str
    storage_root: str
    public_files_url: str
    s3_endpoint: str
    s3_region: str
    s3_bucket: str
    s3_access_key_id: str
    s3_secret_access_key: str

    max_upload_bytes: int


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise RuntimeError(f"{name} must be an integer (got {raw!r}).") from e


def load_settings() -> Settings:
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///policydesk.db"),
        log_level=_getenv("LOG_LEVEL", "INFO").upper(),
        gateway_backend=_getenv("GATEWAY_BACKEND", "sql").lower(),
        gateway_url=_getenv("GATEWAY_URL", ""),
        gateway_api_key=_getenv("GATEWAY_API_KEY", ""),
        gateway_timeout=_getenv_int("GATEWAY_TIMEOUT", 60),
        documents_bucket=_getenv("DOCUMENTS_BUCKET", "documents"),
        storage_backend=_getenv("STORAGE_BACKEND", "local"),
        storage_root=_getenv("STORAGE_ROOT", ""),
        public_files_url=_getenv("PUBLIC_FILES_URL", "/files"),
        s3_endpoint=_getenv("S3_ENDPOINT", ""),
        s3_region=_getenv("S3_REGION", "nyc3"),
        s3_bucket=_getenv("S3_BUCKET", ""),
        s3_access_key_id=_getenv("S3_ACCESS_KEY_ID", ""),
        s3_secret_access_key=_getenv("S3_SECRET_ACCESS_KEY", ""),
        max_upload_bytes=_getenv_int("MAX_UPLOAD_BYTES", 10 * 1024 * 1024),
    )


def load_config() -> dict:
    s = load_settings()
    is_production = s.env in ("prod", "production")
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "LOG_LEVEL": s.log_level,
        "GATEWAY_BACKEND": s.gateway_backend,
        "GATEWAY_URL": s.gateway_url,
        "GATEWAY_API_KEY": s.gateway_api_key,
        "GATEWAY_TIMEOUT": s.gateway_timeout,
        "DOCUMENTS_BUCKET": s.documents_bucket,
        "STORAGE_BACKEND": s.storage_backend,
        "STORAGE_ROOT": s.storage_root,
        "PUBLIC_FILES_URL": s.public_files_url,
        "S3_ENDPOINT": s.s3_endpoint,
        "S3_REGION": s.s3_region,
        "S3_BUCKET": s.s3_bucket,
        "S3_ACCESS_KEY_ID": s.s3_access_key_id,
        "S3_SECRET_ACCESS_KEY": s.s3_secret_access_key,
        # security defaults
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SAMESITE": "Lax",
        "SESSION_COOKIE_SECURE": is_production,  # Require HTTPS in production
        # per-attachment limit; the request limit leaves room for form fields
        "MAX_UPLOAD_BYTES": s.max_upload_bytes,
        "MAX_CONTENT_LENGTH": s.max_upload_bytes + 1024 * 1024,
    }
