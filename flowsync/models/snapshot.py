"""Typed view of an exported flow document.

A Registry snapshot export keeps the canvas under ``flowContents``; older
flow definitions use ``rootGroup``. Only the top-level processors,
connections and labels are modelled, since those are what a componentwise
import rebuilds.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from flowsync.exceptions import InvalidFlowDocument

_CONTENT_KEYS = ("flowContents", "rootGroup")


@dataclass(frozen=True)
class Position:
    x: float = 0.0
    y: float = 0.0

    @classmethod
    def from_raw(cls, raw: dict[str, Any] | None) -> Position:
        raw = raw or {}
        return cls(x=float(raw.get("x") or 0.0), y=float(raw.get("y") or 0.0))

    def to_dict(self) -> dict[str, float]:
        return {"x": self.x, "y": self.y}


@dataclass(frozen=True)
class ProcessorDef:
    """A processor as it appears in the source document (Registry-scoped ID)."""

    identifier: str
    name: str
    type: str
    bundle: dict[str, Any] = field(default_factory=dict)
    position: Position = field(default_factory=Position)
    properties: dict[str, str | None] = field(default_factory=dict)
    scheduling_period: str = "0 sec"
    scheduling_strategy: str = "TIMER_DRIVEN"
    comments: str = ""
    auto_terminated_relationships: tuple[str, ...] = ()

    @classmethod
    def from_raw(cls, raw: dict[str, Any]) -> ProcessorDef:
        identifier = raw.get("identifier") or raw.get("id")
        if not identifier:
            raise InvalidFlowDocument(f"Processor '{raw.get('name', '?')}' has no identifier")
        if not raw.get("type"):
            raise InvalidFlowDocument(f"Processor '{raw.get('name', identifier)}' has no type")
        return cls(
            identifier=str(identifier),
            name=raw.get("name") or str(identifier),
            type=raw["type"],
            bundle=dict(raw.get("bundle") or {}),
            position=Position.from_raw(raw.get("position")),
            properties=dict(raw.get("properties") or {}),
            scheduling_period=raw.get("schedulingPeriod") or "0 sec",
            scheduling_strategy=raw.get("schedulingStrategy") or "TIMER_DRIVEN",
            comments=raw.get("comments") or "",
            auto_terminated_relationships=tuple(raw.get("autoTerminatedRelationships") or ()),
        )


@dataclass(frozen=True)
class ConnectionDef:
    """A processor-to-processor connection referencing old processor IDs."""

    source_id: str
    destination_id: str
    selected_relationships: tuple[str, ...] = ()
    name: str = ""

    @classmethod
    def from_raw(cls, raw: dict[str, Any]) -> ConnectionDef:
        source = (raw.get("source") or {}).get("id")
        destination = (raw.get("destination") or {}).get("id")
        if not source or not destination:
            raise InvalidFlowDocument("Connection is missing a source or destination id")
        return cls(
            source_id=str(source),
            destination_id=str(destination),
            selected_relationships=tuple(raw.get("selectedRelationships") or ()),
            name=raw.get("name") or "",
        )

    @property
    def label(self) -> str:
        return f"{self.source_id} -> {self.destination_id}"


@dataclass(frozen=True)
class LabelDef:
    text: str
    position: Position = field(default_factory=Position)
    width: float = 150.0
    height: float = 150.0
    style: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_raw(cls, raw: dict[str, Any]) -> LabelDef:
        return cls(
            text=raw.get("label") or "",
            position=Position.from_raw(raw.get("position")),
            width=float(raw.get("width") or 150.0),
            height=float(raw.get("height") or 150.0),
            style=dict(raw.get("style") or {}),
        )


@dataclass(frozen=True)
class FlowSnapshot:
    """Processors, connections and labels of one flow document."""

    processors: tuple[ProcessorDef, ...]
    connections: tuple[ConnectionDef, ...]
    labels: tuple[LabelDef, ...]

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> FlowSnapshot:
        """Parse and validate a flow document.

        Raises:
            InvalidFlowDocument: If no contents section exists, a component is
                malformed, or a connection references a processor identifier
                that is not defined in the same document.
        """
        contents = flow_contents(document)
        try:
            processors = tuple(ProcessorDef.from_raw(p) for p in contents.get("processors") or [])
            connections = tuple(ConnectionDef.from_raw(c) for c in contents.get("connections") or [])
            labels = tuple(LabelDef.from_raw(lbl) for lbl in contents.get("labels") or [])
        except (AttributeError, TypeError, ValueError) as exc:
            raise InvalidFlowDocument(f"Malformed component in flow document: {exc}") from exc

        known = {p.identifier for p in processors}
        for conn in connections:
            for endpoint in (conn.source_id, conn.destination_id):
                if endpoint not in known:
                    raise InvalidFlowDocument(
                        f"Connection {conn.label} references unknown processor {endpoint}"
                    )

        return cls(processors=processors, connections=connections, labels=labels)

    @property
    def processor_names(self) -> dict[str, str]:
        return {p.identifier: p.name for p in self.processors}


def flow_contents(document: Any) -> dict[str, Any]:
    """Return the canvas section of a flow document."""
    if not isinstance(document, dict):
        raise InvalidFlowDocument("Flow document must be a JSON object")
    for key in _CONTENT_KEYS:
        contents = document.get(key)
        if isinstance(contents, dict):
            return contents
    raise InvalidFlowDocument(
        f"Flow document has none of {', '.join(_CONTENT_KEYS)}; found keys: {sorted(document)}"
    )


def load_flow_document(path: Path) -> dict[str, Any]:
    """Load a flow JSON file, raising InvalidFlowDocument on any parse problem."""
    if not path.is_file():
        raise InvalidFlowDocument(f"Flow file not found: {path}")
    try:
        with path.open("r", encoding="utf-8") as fh:
            document = json.load(fh)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise InvalidFlowDocument(f"Invalid JSON in {path}: {exc}") from exc
    if not isinstance(document, dict):
        raise InvalidFlowDocument(f"Flow file {path} does not contain a JSON object")
    return document
