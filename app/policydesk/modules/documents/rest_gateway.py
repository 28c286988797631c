from __future__ import annotations

import json
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass
from typing import Any

from app.policydesk.modules.documents.gateway import Gateway, GatewayError


def _filter_value(v: Any) -> str:
    if v is None:
        return "is.null"
    if isinstance(v, bool):
        return "is." + ("true" if v else "false")
    return f"eq.{v}"


@dataclass(frozen=True)
class RestGateway(Gateway):
    """
    Client for a hosted backend speaking the PostgREST record API
    (`/rest/v1/<table>`) and its storage API (`/storage/v1/object/...`).
    """

    base_url: str
    api_key: str
    access_token: str | None = None
    timeout_seconds: int = 60

    def _headers(self) -> dict[str, str]:
        return {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.access_token or self.api_key}",
        }

    def _url(self, path: str, params: list[tuple[str, str]] | None = None) -> str:
        url = self.base_url.rstrip("/") + path
        if params:
            url += "?" + urllib.parse.urlencode(params, safe="*,().")
        return url

    def request(
        self,
        method: str,
        path: str,
        *,
        params: list[tuple[str, str]] | None = None,
        body: bytes | None = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        req = urllib.request.Request(self._url(path, params), data=body, method=method)
        for k, v in {**self._headers(), **(headers or {})}.items():
            req.add_header(k, v)
        try:
            with urllib.request.urlopen(req, timeout=self.timeout_seconds) as resp:
                raw = resp.read()
        except urllib.error.HTTPError as e:
            try:
                detail = e.read().decode("utf-8", errors="ignore")
            except Exception:
                detail = ""
            raise GatewayError(f"HTTP {e.code} from {method} {path}: {detail[:300]}", status=e.code) from e
        except (urllib.error.URLError, OSError) as e:
            raise GatewayError(f"{method} {path} failed: {e}") from e
        if not raw:
            return None
        try:
            return json.loads(raw.decode("utf-8"))
        except ValueError as e:
            raise GatewayError(f"Invalid JSON from {method} {path}") from e

    def _json_body(self, payload: Any) -> bytes:
        return json.dumps(payload).encode("utf-8")

    def _eq_params(self, eq: dict[str, Any] | None) -> list[tuple[str, str]]:
        return [(k, _filter_value(v)) for k, v in (eq or {}).items()]

    def select(self, table, *, eq=None, order_by=None, descending=False, embed=None):
        columns = ["*"] + [f"{other}({','.join(cols)})" for other, cols in (embed or {}).items()]
        params = [("select", ",".join(columns))] + self._eq_params(eq)
        if order_by:
            params.append(("order", f"{order_by}.{'desc' if descending else 'asc'}"))
        data = self.request("GET", f"/rest/v1/{table}", params=params)
        if not isinstance(data, list):
            raise GatewayError(f"Expected a list of {table} rows")
        return data

    def insert(self, table, row):
        data = self.request(
            "POST",
            f"/rest/v1/{table}",
            params=[("select", "*")],
            body=self._json_body(row),
            headers={"Content-Type": "application/json", "Prefer": "return=representation"},
        )
        if isinstance(data, list):
            data = data[0] if data else None
        if not isinstance(data, dict):
            raise GatewayError(f"Insert into {table} returned no row")
        return data

    def update(self, table, values, *, eq):
        if not eq:
            raise GatewayError("update requires a filter", status=400)
        self.request(
            "PATCH",
            f"/rest/v1/{table}",
            params=self._eq_params(eq),
            body=self._json_body(values),
            headers={"Content-Type": "application/json", "Prefer": "return=minimal"},
        )

    def delete(self, table, *, eq):
        if not eq:
            raise GatewayError("delete requires a filter", status=400)
        self.request("DELETE", f"/rest/v1/{table}", params=self._eq_params(eq))

    def _object_path(self, bucket: str, key: str) -> str:
        return f"{urllib.parse.quote(bucket)}/{urllib.parse.quote(key.lstrip('/'))}"

    def upload(self, bucket, key, data, *, content_type=None):
        self.request(
            "POST",
            f"/storage/v1/object/{self._object_path(bucket, key)}",
            body=data,
            headers={
                "Content-Type": content_type or "application/octet-stream",
                "x-upsert": "true",
            },
        )

    def public_url(self, bucket, key):
        return self._url(f"/storage/v1/object/public/{self._object_path(bucket, key)}")
