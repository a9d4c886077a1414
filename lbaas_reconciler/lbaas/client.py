"""REST client for the Anexia LBaaS and core resource APIs."""

from __future__ import annotations

import logging
from typing import Any, Iterator, TypeVar
from urllib.parse import quote

import requests

from ..config import APIConfig
from ..exceptions import LBaaSAPIError, RateLimited, ResourceNotFound
from .models import Resource, TaggedResource

logger = logging.getLogger(__name__)

R = TypeVar("R", bound=Resource)

LBAAS_PREFIX = "/api/LBaaS/v1"
CORE_RESOURCE_PREFIX = "/api/core/v1/resource.json"


class LBaaSClient:
    """Thin wrapper around the LBaaS v1 API, implementing ``LBaaSProvider``."""

    def __init__(self, config: APIConfig):
        self._base = config.base_url.rstrip("/")
        self._session = requests.Session()
        self._session.headers["Authorization"] = f"Token {config.token}"
        self._session.headers["Content-Type"] = "application/json"
        self._session.verify = config.verify_ssl
        self._timeout = config.timeout

    # ── LBaaS resources ─────────────────────────────────────────────

    def get(self, kind: type[R], identifier: str) -> R:
        resp = self._get(f"{self._kind_path(kind)}/{identifier}")
        return kind.from_api(self._unwrap(resp.json()))

    def create(self, resource: Resource) -> str:
        resp = self._post(self._kind_path(type(resource)), json=resource.to_api())
        identifier = self._unwrap(resp.json()).get("identifier")
        if not identifier:
            raise LBaaSAPIError(f"Create of {resource.kind} returned no identifier", status_code=resp.status_code)
        return identifier

    def destroy(self, resource: Resource) -> None:
        self._delete(f"{self._kind_path(type(resource))}/{resource.identifier}")

    # ── Tags ────────────────────────────────────────────────────────

    def list_tagged(self, tag: str) -> Iterator[TaggedResource]:
        """List resources carrying the tag. HTTP 422 means nothing is tagged."""
        resp = self._get(f"{CORE_RESOURCE_PREFIX}/filtered", params={"tag_name": tag})
        payload = resp.json()
        items = payload.get("data", []) if isinstance(payload, dict) else payload
        for item in items or []:
            yield TaggedResource.from_api(item)

    def tag(self, identifier: str, tag: str) -> None:
        self._post(f"{CORE_RESOURCE_PREFIX}/{identifier}/tags/{quote(tag, safe='')}")

    # ── Internal HTTP helpers ───────────────────────────────────────

    @staticmethod
    def _kind_path(kind: type[Resource]) -> str:
        return f"{LBAAS_PREFIX}/{kind.kind}.json"

    @staticmethod
    def _unwrap(payload: Any) -> dict[str, Any]:
        if isinstance(payload, dict) and isinstance(payload.get("data"), dict):
            return payload["data"]
        return payload if isinstance(payload, dict) else {}

    def _get(self, path: str, params: dict | None = None) -> requests.Response:
        return self._request("GET", path, params=params)

    def _post(self, path: str, json: Any = None, params: dict | None = None) -> requests.Response:
        return self._request("POST", path, json=json, params=params)

    def _delete(self, path: str, params: dict | None = None) -> requests.Response:
        return self._request("DELETE", path, params=params)

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        url = f"{self._base}{path}"
        kwargs.setdefault("timeout", self._timeout)
        logger.debug("%s %s params=%s", method, path, kwargs.get("params"))

        try:
            resp = self._session.request(method, url, **kwargs)
        except requests.RequestException as exc:
            raise LBaaSAPIError(f"Request failed: {exc}") from exc

        if resp.status_code == 404:
            raise ResourceNotFound(f"HTTP 404 on {method} {path}", response_body=resp.text)

        if resp.status_code == 429:
            raise RateLimited(f"HTTP 429 on {method} {path}", response_body=resp.text)

        if resp.status_code >= 400:
            raise LBaaSAPIError(
                f"HTTP {resp.status_code} on {method} {path}: {resp.text}",
                status_code=resp.status_code,
                response_body=resp.text,
            )

        return resp
