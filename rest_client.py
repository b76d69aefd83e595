import logging
import re
from typing import Any, Dict, List, Optional

import httpx

from config import settings
from store import NotFound, StorageFailure, Store

logger = logging.getLogger(__name__)

# PostgREST error code for "single row requested, zero or several rows returned"
SINGLE_ROW_CODE = "PGRST116"
_ZERO_ROWS = re.compile(r"\b0 rows\b")
SINGLE_OBJECT = "application/vnd.pgrst.object+json"


class RestStore(Store):
    """Store backed by the hosted backend's PostgREST endpoint.

    Failures are reported once and never retried.
    """

    def __init__(self, base_url: Optional[str] = None, api_key: Optional[str] = None,
                 timeout: Optional[float] = None, transport: Optional[httpx.BaseTransport] = None) -> None:
        self.base_url = (base_url or settings.backend_url).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.backend_key

        limits = httpx.Limits(
            max_keepalive_connections=20,
            max_connections=100,
            keepalive_expiry=30.0
        )
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["apikey"] = self.api_key
            headers["Authorization"] = f"Bearer {self.api_key}"

        self._client = httpx.Client(
            base_url=f"{self.base_url}/rest/v1",
            headers=headers,
            limits=limits,
            timeout=httpx.Timeout(timeout or settings.backend_timeout),
            follow_redirects=True,
            transport=transport,
        )

    # ------------------------- Row operations ------------------------- #
    def select(self, table: str, *, filters: Optional[Dict[str, Any]] = None,
               order_by: Optional[str] = None, descending: bool = False) -> List[dict]:
        params = self._filter_params(filters)
        params["select"] = "*"
        if order_by:
            params["order"] = f"{order_by}.{'desc' if descending else 'asc'}"
        response = self._request("GET", table, params=params)
        return response.json()

    def select_single(self, table: str, *, filters: Dict[str, Any]) -> dict:
        params = self._filter_params(filters)
        params["select"] = "*"
        response = self._request("GET", table, params=params, headers={"Accept": SINGLE_OBJECT})
        return response.json()

    def insert(self, table: str, row: Dict[str, Any]) -> dict:
        response = self._request(
            "POST", table, json=[row],
            headers={"Prefer": "return=representation"},
        )
        rows = response.json()
        if not rows:
            raise StorageFailure(f"Insert into {table} returned no rows")
        return rows[0]

    def update(self, table: str, values: Dict[str, Any], *, filters: Dict[str, Any]) -> int:
        if not values:
            raise ValueError("Nothing to update.")
        response = self._request(
            "PATCH", table, params=self._filter_params(filters), json=values,
            headers={"Prefer": "return=representation"},
        )
        return len(response.json())

    def delete(self, table: str, *, filters: Dict[str, Any]) -> int:
        if not filters:
            raise ValueError("Refusing to delete without filters.")
        response = self._request(
            "DELETE", table, params=self._filter_params(filters),
            headers={"Prefer": "return=representation"},
        )
        return len(response.json())

    def close(self) -> None:
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    # ------------------------- Helpers ------------------------- #
    @staticmethod
    def _filter_params(filters: Optional[Dict[str, Any]]) -> Dict[str, str]:
        params = {}
        for name, value in (filters or {}).items():
            if isinstance(value, bool):
                value = "true" if value else "false"
            params[name] = f"eq.{value}"
        return params

    def _request(self, method: str, table: str, **kwargs) -> httpx.Response:
        try:
            response = self._client.request(method, f"/{table}", **kwargs)
        except httpx.HTTPError as exc:
            logger.error("%s %s failed: %s", method, table, exc)
            raise StorageFailure(f"Backend unreachable: {exc}") from exc

        if response.status_code >= 400:
            error = self._error_payload(response)
            if error.get("code") == SINGLE_ROW_CODE and _ZERO_ROWS.search(error.get("details") or ""):
                raise NotFound(error.get("message") or f"No row in {table}")
            logger.error("%s %s returned %s: %s", method, table, response.status_code, error)
            raise StorageFailure(error.get("message") or f"Backend returned HTTP {response.status_code}")
        return response

    @staticmethod
    def _error_payload(response: httpx.Response) -> dict:
        try:
            payload = response.json()
        except ValueError:
            return {"message": response.text}
        return payload if isinstance(payload, dict) else {"message": str(payload)}
