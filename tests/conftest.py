"""Shared fixtures for the flowsync test suite.

Provides canned Registry documents, a helper for building real
``requests.Response`` objects, and ``SimulatedNiFi``: an in-memory stand-in
for the NiFi REST API that plugs into ``NiFiClient`` as its session.
"""

from __future__ import annotations

import itertools
import json
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

import pytest
import requests

from flowsync.config import FlowSyncConfig

# ---------------------------------------------------------------------------
# Response helpers
# ---------------------------------------------------------------------------


def make_response(status: int = 200, body: Any = None, *, text: str | None = None, url: str = "") -> requests.Response:
    """Build a real Response with a JSON ``body`` or raw ``text``."""
    resp = requests.Response()
    resp.status_code = status
    if text is not None:
        resp._content = text.encode("utf-8")
    elif body is not None:
        resp._content = json.dumps(body).encode("utf-8")
    else:
        resp._content = b""
    resp.encoding = "utf-8"
    resp.url = url
    return resp


def route(responses: dict[tuple[str, str], Any]):
    """Side effect for a mocked ``Session.request`` dispatching on (method, path).

    Values may be a Response, an exception instance to raise, or a list of
    either, consumed one per call.
    """

    def _dispatch(method: str, url: str, **kwargs: Any) -> requests.Response:
        key = (method, urlsplit(url).path)
        if key not in responses:
            return make_response(404, text=f"no route for {key}", url=url)
        value = responses[key]
        if isinstance(value, list):
            value = value.pop(0)
        if isinstance(value, Exception):
            raise value
        value.url = url
        return value

    return _dispatch


# ---------------------------------------------------------------------------
# Simulated NiFi
# ---------------------------------------------------------------------------


class SimulatedNiFi(requests.Session):
    """Just enough of the NiFi REST API to exercise FlowImporter.

    Args:
        upload_status: Status returned by the direct-upload endpoint.
        id_shape: Where processor-creation responses carry the new ID:
            ``"id"``, ``"component"``, ``"revision"`` or ``"none"``.
        failing_processors: Processor names whose creation returns HTTP 500.
        token_statuses: Statuses returned by ``/access/token`` before it
            finally issues a token.
        null_lists: Component kinds whose GET listing answers with ``null``.
    """

    ROOT_ID = "root-pg"

    def __init__(
        self,
        *,
        upload_status: int = 404,
        id_shape: str = "id",
        failing_processors: tuple[str, ...] = (),
        token_statuses: tuple[int, ...] = (),
        null_lists: tuple[str, ...] = (),
    ) -> None:
        super().__init__()
        self.upload_status = upload_status
        self.id_shape = id_shape
        self.failing_processors = set(failing_processors)
        self.token_statuses = list(token_statuses)
        self.null_lists = set(null_lists)
        self.groups: dict[str, dict[str, list[dict[str, Any]]]] = {}
        self.group_names: dict[str, str] = {}
        self.calls: list[tuple[str, str]] = []
        self.payloads: list[tuple[str, dict[str, Any]]] = []
        self._ids = itertools.count(1)

    def _new_id(self, prefix: str) -> str:
        return f"{prefix}-{next(self._ids):04d}"

    def _new_group(self, name: str) -> str:
        pg_id = self._new_id("pg")
        self.groups[pg_id] = {"processors": [], "connections": [], "labels": []}
        self.group_names[pg_id] = name
        return pg_id

    def request(self, method: str, url: str, **kwargs: Any) -> requests.Response:  # type: ignore[override]
        path = urlsplit(url).path.removeprefix("/nifi-api")
        self.calls.append((method, path))
        payload = kwargs.get("json")
        if payload is not None:
            self.payloads.append((path, payload))
        status, body = self._handle(method, path.strip("/").split("/"), kwargs)
        if isinstance(body, str):
            return make_response(status, text=body, url=url)
        return make_response(status, body, url=url)

    def _handle(self, method: str, parts: list[str], kwargs: dict[str, Any]) -> tuple[int, Any]:
        if parts == ["access", "token"]:
            if self.token_statuses:
                return self.token_statuses.pop(0), "not ready"
            return 201, "token-abc"
        if parts == ["access", "config"]:
            return 200, {"config": {"supportsLogin": True}}
        if parts == ["flow", "process-groups", "root"]:
            return 200, {"processGroupFlow": {"id": self.ROOT_ID}}
        if parts == ["flow", "about"]:
            return 200, {"about": {"version": "1.23.2"}}

        if parts[0] != "process-groups" or len(parts) < 3:
            return 404, "not found"
        pg_id, kind = parts[1], parts[2]

        if kind == "process-groups" and len(parts) == 4 and parts[3] == "upload":
            if self.upload_status not in (200, 201):
                return self.upload_status, "upload not supported"
            new_pg = self._new_group(kwargs["data"]["groupName"])
            return self.upload_status, {"id": new_pg, "component": {"id": new_pg}}

        if kind == "process-groups" and method == "POST":
            new_pg = self._new_group(kwargs["json"]["component"]["name"])
            return 201, {"id": new_pg, "component": {"id": new_pg, "name": self.group_names[new_pg]}}

        if pg_id not in self.groups:
            return 404, f"unknown process group {pg_id}"
        group = self.groups[pg_id]

        if method == "GET":
            if kind in self.null_lists:
                return 200, {kind: None}
            return 200, {kind: list(group.get(kind, []))}

        component = kwargs["json"]["component"]
        if kind == "processors":
            return self._create_processor(group, component)
        if kind == "connections":
            known = {p["id"] for p in group["processors"]}
            if component["source"]["id"] not in known or component["destination"]["id"] not in known:
                return 400, "connection endpoint not found"
            entity = {"id": self._new_id("conn"), "component": component}
            group["connections"].append(entity)
            return 201, entity
        if kind == "labels":
            entity = {"id": self._new_id("label"), "component": component}
            group["labels"].append(entity)
            return 201, entity
        return 404, "not found"

    def _create_processor(self, group: dict[str, list[dict[str, Any]]], component: dict[str, Any]) -> tuple[int, Any]:
        name = component["name"]
        if name in self.failing_processors:
            return 500, f"cannot create {name}"
        new_id = self._new_id("proc")
        group["processors"].append({"id": new_id, "component": {**component, "id": new_id}})

        shapes = {
            "id": {"id": new_id, "component": {"id": new_id, "name": name}},
            "component": {"component": {"id": new_id, "name": name}},
            "revision": {"revision": {"version": 1, "componentId": new_id}, "component": {"name": name}},
            "none": {"revision": {"version": 1}, "component": {"name": name}},
        }
        return 201, shapes[self.id_shape]


# ---------------------------------------------------------------------------
# Flow document fixtures
# ---------------------------------------------------------------------------


def _processor(identifier: str, name: str, kind: str, x: float, y: float) -> dict[str, Any]:
    return {
        "identifier": identifier,
        "name": name,
        "type": f"org.apache.nifi.processors.standard.{kind}",
        "bundle": {"group": "org.apache.nifi", "artifact": "nifi-standard-nar", "version": "1.23.2"},
        "position": {"x": x, "y": y},
        "properties": {"Log Level": "info", "Attribute to Log": None},
        "schedulingPeriod": "1 min",
        "schedulingStrategy": "TIMER_DRIVEN",
        "comments": "",
        "autoTerminatedRelationships": [],
    }


@pytest.fixture()
def snapshot_document() -> dict[str, Any]:
    """A Registry snapshot export with three processors, two connections and a label."""
    return {
        "snapshotMetadata": {"bucketIdentifier": "bucket-1", "flowIdentifier": "flow-1", "version": 3},
        "flowContents": {
            "identifier": "group-old",
            "name": "My Flow",
            "processors": [
                _processor("old-gen", "Generate", "GenerateFlowFile", 0, 0),
                _processor("old-upd", "Update", "UpdateAttribute", 0, 200),
                _processor("old-log", "Log", "LogAttribute", 0, 400),
            ],
            "connections": [
                {"source": {"id": "old-gen"}, "destination": {"id": "old-upd"}, "selectedRelationships": ["success"]},
                {"source": {"id": "old-upd"}, "destination": {"id": "old-log"}, "selectedRelationships": ["success"]},
            ],
            "labels": [
                {"label": "Demo flow", "position": {"x": -200, "y": 0}, "width": 300, "height": 80, "style": {"font-size": "14px"}},
            ],
        },
    }


@pytest.fixture()
def flows_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "flows"
    directory.mkdir()
    return directory


@pytest.fixture()
def flow_file(flows_dir: Path, snapshot_document: dict[str, Any]) -> Path:
    """``snapshot_document`` written to ``flows/My_Flow.json``."""
    path = flows_dir / "My_Flow.json"
    path.write_text(json.dumps(snapshot_document, indent=2), encoding="utf-8")
    return path


@pytest.fixture()
def config(flows_dir: Path) -> FlowSyncConfig:
    """Config with zero delays so importer tests never sleep."""
    return FlowSyncConfig(
        flows_dir=flows_dir,
        nifi_password="secret",
        ready_attempts=3,
        auth_attempts=3,
        poll_interval=0,
        settle_delay=0,
        lookup_delay=0,
    )


@pytest.fixture()
def simulated_nifi() -> SimulatedNiFi:
    return SimulatedNiFi()
