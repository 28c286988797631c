"""
Backend gateway: record CRUD over the `documents`/`departments` collections
plus blob storage with public URLs.

Rows cross this boundary in wire form (plain dicts, ISO-8601 timestamp
strings, None for missing values) whichever backend sits behind it.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from flask import Flask
from sqlalchemy import DateTime
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from app.policydesk.db import transaction
from app.policydesk.modules.documents.models import DepartmentRecord, DocumentRecord
from app.policydesk.storage import Storage, StorageError, storage_from_config
from app.policydesk.utils import format_timestamp, to_naive_utc

logger = logging.getLogger(__name__)


class GatewayError(RuntimeError):
    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class Gateway:
    def select(
        self,
        table: str,
        *,
        eq: dict[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        embed: dict[str, tuple[str, ...]] | None = None,
    ) -> list[dict[str, Any]]:
        raise NotImplementedError

    def insert(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        """Insert one row and return it as stored (server-assigned fields included)."""
        raise NotImplementedError

    def update(self, table: str, values: dict[str, Any], *, eq: dict[str, Any]) -> None:
        raise NotImplementedError

    def delete(self, table: str, *, eq: dict[str, Any]) -> None:
        raise NotImplementedError

    def upload(self, bucket: str, key: str, data: bytes, *, content_type: str | None = None) -> None:
        raise NotImplementedError

    def public_url(self, bucket: str, key: str) -> str:
        raise NotImplementedError


_TABLES = {
    "documents": DocumentRecord,
    "departments": DepartmentRecord,
}

# (table, embedded table) -> relationship attribute
_EMBEDS = {
    ("documents", "departments"): "department",
}

_SERVER_ASSIGNED = ("id", "created_at", "updated_at")


def _wire_value(v: Any) -> Any:
    if isinstance(v, datetime):
        return format_timestamp(v)
    return v


class SqlGateway(Gateway):
    """Gateway over the local SQLAlchemy database and the configured blob Storage."""

    def __init__(self, sm: sessionmaker, storage: Storage) -> None:
        self._sm = sm
        self._storage = storage

    def _model(self, table: str):
        model = _TABLES.get(table)
        if model is None:
            raise GatewayError(f"Unknown table: {table!r}", status=404)
        return model

    def _column(self, model, name: str):
        col = model.__table__.columns.get(name)
        if col is None:
            raise GatewayError(f"Unknown column {model.__tablename__}.{name}", status=400)
        return col

    def _row(self, obj) -> dict[str, Any]:
        return {c.key: _wire_value(getattr(obj, c.key)) for c in obj.__table__.columns}

    def _values(self, model, values: dict[str, Any]) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for key, v in values.items():
            col = self._column(model, key)
            if isinstance(col.type, DateTime) and v is not None:
                try:
                    v = to_naive_utc(v)
                except ValueError as e:
                    raise GatewayError(f"Invalid timestamp for {key}: {v!r}", status=400) from e
            out[key] = v
        return out

    def select(self, table, *, eq=None, order_by=None, descending=False, embed=None):
        model = self._model(table)
        try:
            with transaction(self._sm) as s:
                q = s.query(model)
                for key, v in (eq or {}).items():
                    q = q.filter(self._column(model, key) == v)
                if order_by:
                    col = self._column(model, order_by)
                    q = q.order_by(col.desc() if descending else col.asc())
                rows = []
                for obj in q.all():
                    row = self._row(obj)
                    for other, cols in (embed or {}).items():
                        attr = _EMBEDS.get((table, other))
                        if attr is None:
                            raise GatewayError(f"No relation {table} -> {other}", status=400)
                        related = getattr(obj, attr)
                        row[other] = {c: _wire_value(getattr(related, c)) for c in cols} if related else None
                    rows.append(row)
        except SQLAlchemyError as e:
            raise GatewayError(f"select from {table} failed: {e}") from e
        return rows

    def insert(self, table, row):
        model = self._model(table)
        values = self._values(model, {k: v for k, v in row.items() if k not in _SERVER_ASSIGNED})
        try:
            with transaction(self._sm) as s:
                obj = model(**values)
                s.add(obj)
                s.flush()
                stored = self._row(obj)
        except SQLAlchemyError as e:
            raise GatewayError(f"insert into {table} failed: {e}") from e
        logger.debug("Inserted %s id=%s", table, stored.get("id"))
        return stored

    def update(self, table, values, *, eq):
        model = self._model(table)
        if not eq:
            raise GatewayError("update requires a filter", status=400)
        clean = self._values(model, {k: v for k, v in values.items() if k not in ("id", "created_at")})
        try:
            with transaction(self._sm) as s:
                q = s.query(model)
                for key, v in eq.items():
                    q = q.filter(self._column(model, key) == v)
                for obj in q.all():
                    for key, v in clean.items():
                        setattr(obj, key, v)
        except SQLAlchemyError as e:
            raise GatewayError(f"update of {table} failed: {e}") from e

    def delete(self, table, *, eq):
        model = self._model(table)
        if not eq:
            raise GatewayError("delete requires a filter", status=400)
        try:
            with transaction(self._sm) as s:
                q = s.query(model)
                for key, v in eq.items():
                    q = q.filter(self._column(model, key) == v)
                for obj in q.all():
                    s.delete(obj)
        except SQLAlchemyError as e:
            raise GatewayError(f"delete from {table} failed: {e}") from e

    def upload(self, bucket, key, data, *, content_type=None):
        try:
            self._storage.put_bytes(f"{bucket}/{key}", data, content_type=content_type)
        except StorageError as e:
            raise GatewayError(f"upload of {bucket}/{key} failed: {e}") from e

    def public_url(self, bucket, key):
        try:
            return self._storage.public_url(f"{bucket}/{key}")
        except StorageError as e:
            raise GatewayError(str(e)) from e


def gateway_from_config(app: Flask) -> Gateway:
    gw = app.extensions.get("documents_gateway")
    if gw is not None:
        return gw
    backend = (app.config.get("GATEWAY_BACKEND") or "sql").strip().lower()
    if backend == "rest":
        from app.policydesk.modules.documents.rest_gateway import RestGateway

        gw = RestGateway(
            base_url=app.config["GATEWAY_URL"],
            api_key=app.config.get("GATEWAY_API_KEY") or "",
            timeout_seconds=int(app.config.get("GATEWAY_TIMEOUT") or 60),
        )
    else:
        gw = SqlGateway(app.extensions["sqlalchemy_sessionmaker"], storage_from_config(app.config))
    app.extensions["documents_gateway"] = gw
    app.logger.info("Documents gateway: %s", type(gw).__name__)
    return gw
