from __future__ import annotations

import os
import urllib.parse
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO


class StorageError(RuntimeError):
    pass


class Storage:
    def put_bytes(self, key: str, data: bytes, *, content_type: str | None = None) -> None:
        """Write ``data`` under ``key``; an existing object with the same key is replaced."""
        raise NotImplementedError

    def open(self, key: str) -> BinaryIO:
        raise NotImplementedError

    def exists(self, key: str) -> bool:
        raise NotImplementedError

    def public_url(self, key: str) -> str:
        raise NotImplementedError


def _clean_key(key: str) -> str:
    safe_key = (key or "").lstrip("/").replace("\\", "/")
    parts = [p for p in safe_key.split("/") if p not in ("", ".")]
    if not parts or ".." in parts:
        raise StorageError(f"Invalid storage key: {key!r}")
    return "/".join(parts)


@dataclass(frozen=True)
class LocalStorage(Storage):
    root: Path
    base_url: str = "/files"

    def _path(self, key: str) -> Path:
        return self.root / _clean_key(key)

    def put_bytes(self, key: str, data: bytes, *, content_type: str | None = None) -> None:
        p = self._path(key)
        try:
            p.parent.mkdir(parents=True, exist_ok=True)
            p.write_bytes(data)
        except OSError as e:
            raise StorageError(f"Could not write {key!r}: {e}") from e

    def open(self, key: str) -> BinaryIO:
        p = self._path(key)
        try:
            return p.open("rb")
        except OSError as e:
            raise StorageError(f"Could not open {key!r}: {e}") from e

    def exists(self, key: str) -> bool:
        try:
            return self._path(key).is_file()
        except StorageError:
            return False

    def public_url(self, key: str) -> str:
        return f"{self.base_url.rstrip('/')}/{urllib.parse.quote(_clean_key(key))}"


@dataclass(frozen=True)
class S3Storage(Storage):
    endpoint: str
    region: str
    bucket: str
    access_key_id: str
    secret_access_key: str

    def _client(self):
        import boto3

        return boto3.client(
            "s3",
            endpoint_url=f"https://{self.endpoint}" if self.endpoint else None,
            region_name=self.region or None,
            aws_access_key_id=self.access_key_id,
            aws_secret_access_key=self.secret_access_key,
        )

    def put_bytes(self, key: str, data: bytes, *, content_type: str | None = None) -> None:
        from botocore.exceptions import BotoCoreError, ClientError

        extra: dict[str, object] = {"ACL": "public-read"}
        if content_type:
            extra["ContentType"] = content_type
        try:
            self._client().put_object(Bucket=self.bucket, Key=_clean_key(key), Body=data, **extra)
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"S3 upload failed for {key!r}: {e}") from e

    def open(self, key: str) -> BinaryIO:
        from botocore.exceptions import BotoCoreError, ClientError

        try:
            obj = self._client().get_object(Bucket=self.bucket, Key=_clean_key(key))
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"S3 download failed for {key!r}: {e}") from e
        return obj["Body"]  # type: ignore[return-value]

    def exists(self, key: str) -> bool:
        from botocore.exceptions import BotoCoreError, ClientError

        try:
            self._client().head_object(Bucket=self.bucket, Key=_clean_key(key))
            return True
        except (BotoCoreError, ClientError):
            return False

    def public_url(self, key: str) -> str:
        host = f"{self.bucket}.{self.endpoint}" if self.endpoint else f"{self.bucket}.s3.amazonaws.com"
        return f"https://{host}/{urllib.parse.quote(_clean_key(key))}"


def storage_from_config(config: dict) -> Storage:
    backend = (config.get("STORAGE_BACKEND") or "local").strip().lower()
    if backend == "s3":
        return S3Storage(
            endpoint=(config.get("S3_ENDPOINT") or "").strip(),
            region=(config.get("S3_REGION") or "nyc3").strip(),
            bucket=(config.get("S3_BUCKET") or "").strip(),
            access_key_id=(config.get("S3_ACCESS_KEY_ID") or "").strip(),
            secret_access_key=(config.get("S3_SECRET_ACCESS_KEY") or "").strip(),
        )
    # default local
    root_cfg = (config.get("STORAGE_ROOT") or "").strip()
    root = Path(root_cfg) if root_cfg else Path(os.getcwd()) / "storage"
    return LocalStorage(root=root, base_url=(config.get("PUBLIC_FILES_URL") or "/files").strip())
