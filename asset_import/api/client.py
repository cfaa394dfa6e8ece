from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import requests

from ..models.config_models import ApiConfig
from ..models.import_result import ImportResult, NewOptions

"""HTTP client for the asset backend.

Two endpoints are used by the import pipeline:

- ``POST {base_url}/assets/bulk-import``  body ``{"assets": [...]}``
- ``POST {base_url}/assets/check-new-options``  same body; reports the
  category/model/software/Windows/Office values that do not exist yet

Every transport or HTTP failure surfaces as AssetApiError carrying the
backend's own error text when it sent one. Bulk import is not retried: it is
not idempotent.
"""

__all__ = [
    "AssetApiError",
    "AssetApiClient",
    "BULK_IMPORT_PATH",
    "CHECK_NEW_OPTIONS_PATH",
]

logger = logging.getLogger(__name__)

BULK_IMPORT_PATH = "/assets/bulk-import"
CHECK_NEW_OPTIONS_PATH = "/assets/check-new-options"


class AssetApiError(Exception):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def _error_text(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        for key in ("error", "message"):
            if body.get(key):
                return str(body[key])
    text = (response.text or "").strip()
    return text or f"HTTP {response.status_code}"


class AssetApiClient:
    """Thin JSON client; one ``requests.Session`` per client."""

    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        timeout: float = 60.0,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session if session is not None else requests.Session()
        self.session.headers.update({"Content-Type": "application/json"})
        if token:
            self.session.headers.update({"Authorization": f"Bearer {token}"})

    @classmethod
    def from_config(cls, config: ApiConfig) -> AssetApiClient:
        return cls(config.base_url, token=config.token, timeout=config.timeout)

    def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.post(url, json=payload, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise AssetApiError(f"request to {url} failed: {e}") from e

        if response.status_code >= 400:
            raise AssetApiError(_error_text(response), status_code=response.status_code)
        try:
            data = response.json()
        except ValueError as e:
            raise AssetApiError(f"invalid JSON from {url}: {e}", status_code=response.status_code) from e
        if not isinstance(data, dict):
            raise AssetApiError(
                f"unexpected response from {url}: {type(data).__name__}", status_code=response.status_code
            )
        return data

    def bulk_create(self, assets: Sequence[dict[str, Any]]) -> ImportResult:
        logger.debug(f"bulk import assets={len(assets)}")
        data = self._post(BULK_IMPORT_PATH, {"assets": list(assets)})
        return ImportResult.from_response(data)

    def check_new_options(self, assets: Sequence[dict[str, Any]]) -> NewOptions:
        data = self._post(CHECK_NEW_OPTIONS_PATH, {"assets": list(assets)})
        return NewOptions.from_response(data)
