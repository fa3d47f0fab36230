"""HTTP client for the NiFi Registry REST API.

Every call issues exactly one request with an explicit timeout. There are no
retries at this layer; callers decide whether a failure is worth retrying.
"""

from __future__ import annotations

import logging
from typing import Any

import requests
from requests.exceptions import ConnectionError as ReqConnectionError
from requests.exceptions import RequestException, Timeout

from flowsync.exceptions import (
    FlowNotFound,
    MalformedResponse,
    RegistryRequestFailed,
    RegistryUnavailable,
)
from flowsync.models.registry import Bucket, Flow, VersionMeta

logger = logging.getLogger(__name__)

_API_PREFIX = "/nifi-registry-api"


class RegistryClient:
    """Thin JSON wrapper over the Registry bucket/flow/version endpoints.

    Attributes:
        base_url: The Registry base URL (e.g., http://localhost:18080).
        session: requests.Session used for every call; injectable for tests.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 15.0,
        health_timeout: float = 5.0,
        verify_ssl: bool = True,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._health_timeout = health_timeout

        self.session = session if session is not None else requests.Session()
        self.session.verify = verify_ssl
        self.session.headers.update({"Accept": "application/json"})

    # ── transport ───────────────────────────────────────────────────────

    def _send(
        self, method: str, path: str, *, timeout: float | None = None, **kwargs: Any
    ) -> requests.Response:
        url = f"{self.base_url}{_API_PREFIX}{path}"
        logger.debug("%s %s", method, url)
        try:
            resp = self.session.request(
                method, url, timeout=timeout or self._timeout, **kwargs
            )
        except (ReqConnectionError, Timeout) as exc:
            raise RegistryUnavailable(f"Cannot connect to NiFi Registry at {self.base_url}: {exc}") from exc
        except RequestException as exc:
            raise RegistryUnavailable(f"{method} {url} failed: {exc}") from exc
        return resp

    def _api_get(self, path: str) -> Any:
        """Execute a GET request and return the decoded JSON body."""
        resp = self._send("GET", path)
        if not resp.ok:
            raise RegistryRequestFailed("GET", resp.url or path, resp.status_code, resp.text)
        return self._decode(resp, path)

    def _api_get_list(self, path: str) -> list[Any]:
        """GET an endpoint that returns a JSON array; a blank body is an empty list."""
        resp = self._send("GET", path)
        if not resp.ok:
            raise RegistryRequestFailed("GET", resp.url or path, resp.status_code, resp.text)
        if not resp.text.strip():
            return []
        body = self._decode(resp, path)
        if not isinstance(body, list):
            raise MalformedResponse(f"Expected a JSON array from {path}, got {type(body).__name__}")
        return body

    @staticmethod
    def _decode(resp: requests.Response, path: str) -> Any:
        try:
            return resp.json()
        except ValueError as exc:
            raise MalformedResponse(
                f"Invalid JSON response from {path}: {resp.text[:200]!r}"
            ) from exc

    # ── health ──────────────────────────────────────────────────────────

    def check_available(self) -> None:
        """Verify the Registry API answers.

        Raises:
            RegistryUnavailable: On connect errors, timeouts or a non-2xx status.
        """
        resp = self._send("GET", "/access", timeout=self._health_timeout)
        if not resp.ok:
            hint = {
                404: "API endpoint not found; check the Registry URL",
                503: "service unavailable; the Registry may still be starting",
            }.get(resp.status_code, "unexpected status")
            raise RegistryUnavailable(
                f"NiFi Registry at {self.base_url} returned HTTP {resp.status_code} ({hint})"
            )
        logger.info("NiFi Registry is ready at %s", self.base_url)

    # ── read operations ─────────────────────────────────────────────────

    def list_buckets(self) -> list[Bucket]:
        raw = self._api_get_list("/buckets")
        return [self._parse(Bucket.from_api, item, "bucket") for item in raw]

    def list_flows(self, bucket_id: str) -> list[Flow]:
        raw = self._api_get_list(f"/buckets/{bucket_id}/flows")
        return [
            self._parse(lambda item: Flow.from_api(item, bucket_id=bucket_id), item, "flow")
            for item in raw
        ]

    def get_flow(self, bucket_id: str, flow_id: str) -> Flow:
        """Resolve one flow of a bucket by ID.

        Raises:
            FlowNotFound: If the bucket holds no flow with that ID.
        """
        for flow in self.list_flows(bucket_id):
            if flow.id == flow_id:
                return flow
        raise FlowNotFound(f"Flow {flow_id} not found in bucket {bucket_id}")

    def list_versions(self, bucket_id: str, flow_id: str) -> list[VersionMeta]:
        raw = self._api_get_list(f"/buckets/{bucket_id}/flows/{flow_id}/versions")
        return [self._parse(VersionMeta.from_api, item, "version") for item in raw]

    def get_version_snapshot(self, bucket_id: str, flow_id: str, version: int) -> dict[str, Any]:
        """Fetch the snapshot document of one flow version."""
        body = self._api_get(f"/buckets/{bucket_id}/flows/{flow_id}/versions/{version}")
        if not isinstance(body, dict):
            raise MalformedResponse(
                f"Expected a JSON object for flow {flow_id} v{version}, got {type(body).__name__}"
            )
        return body

    # ── setup ───────────────────────────────────────────────────────────

    def create_bucket(self, name: str, description: str = "") -> Bucket | None:
        """Create a bucket; returns None if a bucket with this name already exists."""
        payload = {"name": name, "description": description, "allowPublicRead": False}
        resp = self._send("POST", "/buckets", json=payload)

        if resp.status_code == 409:
            logger.warning("Bucket '%s' already exists", name)
            return None
        if not resp.ok:
            raise RegistryRequestFailed("POST", resp.url or "/buckets", resp.status_code, resp.text)

        bucket = self._parse(Bucket.from_api, self._decode(resp, "/buckets"), "bucket")
        logger.info("Created bucket '%s' (ID: %s)", bucket.name, bucket.id)
        return bucket

    def close(self) -> None:
        self.session.close()

    @staticmethod
    def _parse(factory: Any, item: Any, kind: str) -> Any:
        if not isinstance(item, dict):
            raise MalformedResponse(f"Expected a JSON object for {kind}, got {type(item).__name__}")
        try:
            return factory(item)
        except (KeyError, TypeError, ValueError) as exc:
            raise MalformedResponse(f"Malformed {kind} in Registry response: {exc}") from exc
