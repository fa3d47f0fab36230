"""HTTP client for the NiFi REST API used by flow imports.

Covers token authentication, readiness polling, root group resolution, the
direct process-group upload endpoint and the component endpoints needed to
rebuild a flow processor by processor.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

import requests
import urllib3
from requests.exceptions import ConnectionError as ReqConnectionError
from requests.exceptions import RequestException, Timeout

from flowsync.exceptions import (
    AuthenticationFailed,
    MalformedResponse,
    NiFiRequestFailed,
    NiFiUnavailable,
)
from flowsync.models.snapshot import LabelDef, Position, ProcessorDef

urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

logger = logging.getLogger(__name__)

# 400 during startup can mean single-user auth is still initializing; after
# this many attempts it is treated as a misconfiguration.
_BAD_REQUEST_GRACE = 5

_FATAL_AUTH_STATUS = {
    401: "invalid credentials",
    403: "forbidden; single-user authentication may not be configured",
}


class NiFiClient:
    """HTTP client for the NiFi REST API with token-based authentication.

    Attributes:
        base_url: The NiFi base URL (e.g., https://nifi:8443).
        session: requests.Session carrying the bearer token once obtained.
    """

    def __init__(
        self,
        base_url: str,
        username: str,
        password: str,
        *,
        timeout: float = 15.0,
        verify_ssl: bool = False,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._username = username
        self._password = password
        self._timeout = timeout
        self._token: str | None = None

        self.session = session if session is not None else requests.Session()
        self.session.verify = verify_ssl
        self.session.headers.update({"Accept": "application/json"})

    @property
    def authenticated(self) -> bool:
        return self._token is not None

    # ── transport ───────────────────────────────────────────────────────

    def _request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        url = f"{self.base_url}/nifi-api{path}"
        kwargs.setdefault("timeout", self._timeout)
        try:
            return self.session.request(method, url, **kwargs)
        except (ReqConnectionError, Timeout) as exc:
            raise NiFiUnavailable(f"Cannot connect to NiFi at {self.base_url}: {exc}") from exc
        except RequestException as exc:
            raise NiFiUnavailable(f"{method} {url} failed: {exc}") from exc

    @staticmethod
    def _json(resp: requests.Response, path: str) -> dict[str, Any]:
        try:
            body = resp.json()
        except ValueError as exc:
            raise MalformedResponse(f"Invalid JSON response from {path}: {resp.text[:200]!r}") from exc
        if not isinstance(body, dict):
            raise MalformedResponse(f"Expected a JSON object from {path}, got {type(body).__name__}")
        return body

    def _api_get(self, path: str) -> dict[str, Any]:
        """Execute a GET request against the NiFi API."""
        resp = self._request("GET", path)
        if not resp.ok:
            raise NiFiRequestFailed("GET", path, resp.status_code, resp.text)
        return self._json(resp, path)

    def _api_post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Execute a POST request against the NiFi API."""
        resp = self._request("POST", path, json=payload)

        if resp.status_code not in (200, 201):
            logger.error("POST %s failed (HTTP %d): %s", path, resp.status_code, resp.text[:500])
            raise NiFiRequestFailed("POST", path, resp.status_code, resp.text)

        return self._json(resp, path)

    # ── authentication & readiness ──────────────────────────────────────

    def authenticate(self) -> str:
        """Exchange the configured credentials for a bearer token.

        Returns:
            The token, which is also installed on the session.

        Raises:
            AuthenticationFailed: ``retryable`` is False for rejected
                credentials (401/403) and True for anything that may clear up
                once NiFi finishes starting (409, 5xx, connection errors).
        """
        logger.debug("Requesting access token from %s", self.base_url)
        try:
            resp = self._request(
                "POST",
                "/access/token",
                data={"username": self._username, "password": self._password},
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
        except NiFiUnavailable as exc:
            raise AuthenticationFailed(str(exc), retryable=True) from exc

        status = resp.status_code
        if status in _FATAL_AUTH_STATUS:
            raise AuthenticationFailed(
                f"Authentication failed (HTTP {status}): {_FATAL_AUTH_STATUS[status]}",
                retryable=False,
                status=status,
            )
        if status not in (200, 201):
            hint = "NiFi is still initializing" if status == 409 else "unexpected status"
            raise AuthenticationFailed(
                f"Authentication not ready (HTTP {status}): {hint}",
                retryable=True,
                status=status,
            )

        token = resp.text.strip()
        if not token:
            raise AuthenticationFailed("Empty token received", retryable=True, status=status)

        self._token = token
        self.session.headers["Authorization"] = f"Bearer {token}"
        logger.info("Authentication successful, token obtained")
        return token

    def wait_for_ready(
        self,
        max_attempts: int = 60,
        poll_interval: float = 5.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Poll ``/access/config`` until NiFi answers.

        Args:
            max_attempts: Number of polls before giving up.
            poll_interval: Seconds between poll attempts.
            sleep: Sleep function, injectable for tests.

        Raises:
            NiFiUnavailable: If NiFi does not respond within ``max_attempts``.
        """
        logger.info("Waiting for NiFi to be ready at %s (max %d attempts)", self.base_url, max_attempts)
        for attempt in range(1, max_attempts + 1):
            try:
                resp = self._request("GET", "/access/config")
                if resp.ok:
                    logger.info("NiFi is responding (attempt %d)", attempt)
                    return
                logger.debug("NiFi not ready yet (HTTP %d), attempt %d/%d", resp.status_code, attempt, max_attempts)
            except NiFiUnavailable:
                logger.debug("NiFi not reachable, attempt %d/%d", attempt, max_attempts)
            if attempt < max_attempts:
                sleep(poll_interval)

        raise NiFiUnavailable(
            f"NiFi did not become ready at {self.base_url} ({max_attempts} attempts)"
        )

    def wait_for_auth(
        self,
        max_attempts: int = 20,
        poll_interval: float = 5.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> str:
        """Retry :meth:`authenticate` until a token is issued.

        Raises:
            AuthenticationFailed: Immediately on a non-retryable failure, on a
                persistent HTTP 400, or once ``max_attempts`` is exhausted.
        """
        logger.info("Waiting for NiFi authentication to be ready...")
        last: AuthenticationFailed | None = None
        for attempt in range(1, max_attempts + 1):
            try:
                return self.authenticate()
            except AuthenticationFailed as exc:
                if not exc.retryable:
                    raise
                if exc.status == 400 and attempt > _BAD_REQUEST_GRACE:
                    raise AuthenticationFailed(
                        "Persistent HTTP 400: authentication is not properly configured",
                        retryable=False,
                        status=400,
                    ) from exc
                logger.debug("Auth check attempt %d/%d: %s", attempt, max_attempts, exc)
                last = exc
            if attempt < max_attempts:
                sleep(poll_interval)

        raise AuthenticationFailed(
            f"Authentication did not become ready in time ({max_attempts} attempts): {last}",
            retryable=False,
            status=last.status if last else None,
        )

    # ── flow-level queries ──────────────────────────────────────────────

    def get_root_process_group_id(self) -> str:
        """Retrieve the root process group ID."""
        data = self._api_get("/flow/process-groups/root")
        # NiFi accepts the literal alias "root" wherever a group ID is expected.
        pg_id: str = (data.get("processGroupFlow") or {}).get("id") or data.get("id") or "root"
        logger.info("Root process group ID: %s", pg_id)
        return pg_id

    def get_version(self) -> str | None:
        """Return the NiFi version string, or None if it cannot be determined."""
        try:
            data = self._api_get("/flow/about")
        except (NiFiRequestFailed, MalformedResponse) as exc:
            logger.debug("Could not detect NiFi version: %s", exc)
            return None
        version = (data.get("about") or {}).get("version") or data.get("niFiVersion")
        logger.debug("NiFi version: %s", version)
        return version

    # ── creation ────────────────────────────────────────────────────────

    def upload_process_group(
        self, parent_id: str, name: str, flow_path: Path, position: Position
    ) -> dict[str, Any] | None:
        """Create a process group from a flow file in one multipart upload.

        Returns:
            The created process-group entity, or None when NiFi rejects the
            upload (older versions lack the endpoint).
        """
        with flow_path.open("rb") as fh:
            resp = self._request(
                "POST",
                f"/process-groups/{parent_id}/process-groups/upload",
                data={
                    "groupName": name,
                    "positionX": str(position.x),
                    "positionY": str(position.y),
                    "clientId": "flowsync",
                },
                files={"file": (flow_path.name, fh, "application/json")},
            )

        if resp.status_code not in (200, 201):
            logger.debug("Direct upload not available (HTTP %d)", resp.status_code)
            return None
        try:
            return resp.json()
        except ValueError:
            return {}

    def create_process_group(
        self, parent_id: str, name: str, position: Position, comments: str = ""
    ) -> dict[str, Any]:
        """Create an empty child process group and return the raw entity."""
        payload = {
            "revision": {"version": 0},
            "component": {
                "name": name,
                "position": position.to_dict(),
                "comments": comments,
            },
        }
        return self._api_post(f"/process-groups/{parent_id}/process-groups", payload)

    def create_processor(self, pg_id: str, processor: ProcessorDef) -> dict[str, Any]:
        """Create a processor mirroring ``processor`` and return the raw entity."""
        config: dict[str, Any] = {
            "properties": processor.properties,
            "schedulingPeriod": processor.scheduling_period,
            "schedulingStrategy": processor.scheduling_strategy,
            "concurrentlySchedulableTaskCount": 1,
            "comments": processor.comments,
            "autoTerminatedRelationships": list(processor.auto_terminated_relationships),
        }

        component: dict[str, Any] = {
            "type": processor.type,
            "name": processor.name,
            "position": processor.position.to_dict(),
            "config": config,
        }
        if processor.bundle:
            component["bundle"] = processor.bundle

        payload = {"revision": {"version": 0}, "component": component}
        return self._api_post(f"/process-groups/{pg_id}/processors", payload)

    def create_connection(
        self,
        pg_id: str,
        source_id: str,
        dest_id: str,
        relationships: list[str],
        name: str = "",
        back_pressure_count: int = 10000,
        back_pressure_size: str = "1 GB",
        flow_file_expiration: str = "0 sec",
    ) -> dict[str, Any]:
        """Connect two processors inside ``pg_id`` and return the raw entity."""
        payload: dict[str, Any] = {
            "revision": {"clientId": "flowsync", "version": 0},
            "component": {
                "name": name,
                "source": {"id": source_id, "groupId": pg_id, "type": "PROCESSOR"},
                "destination": {"id": dest_id, "groupId": pg_id, "type": "PROCESSOR"},
                "selectedRelationships": relationships,
                "backPressureObjectThreshold": back_pressure_count,
                "backPressureDataSizeThreshold": back_pressure_size,
                "flowFileExpiration": flow_file_expiration,
            },
        }
        return self._api_post(f"/process-groups/{pg_id}/connections", payload)

    def create_label(self, pg_id: str, label: LabelDef) -> dict[str, Any]:
        payload = {
            "revision": {"version": 0},
            "component": {
                "label": label.text,
                "position": label.position.to_dict(),
                "width": label.width,
                "height": label.height,
                "style": label.style,
            },
        }
        return self._api_post(f"/process-groups/{pg_id}/labels", payload)

    # ── listing ─────────────────────────────────────────────────────────

    def _api_get_list(self, pg_id: str, kind: str) -> list[dict[str, Any]]:
        path = f"/process-groups/{pg_id}/{kind}"
        items = self._api_get(path).get(kind, [])
        if not isinstance(items, list) or not all(isinstance(item, dict) for item in items):
            raise MalformedResponse(f"Expected a list of {kind} from {path}, got {type(items).__name__}")
        return items

    def list_processors(self, pg_id: str) -> list[dict[str, Any]]:
        """Return list of existing processors in a process group."""
        return self._api_get_list(pg_id, "processors")

    def list_connections(self, pg_id: str) -> list[dict[str, Any]]:
        return self._api_get_list(pg_id, "connections")

    def list_labels(self, pg_id: str) -> list[dict[str, Any]]:
        return self._api_get_list(pg_id, "labels")

    def close(self) -> None:
        self.session.close()
