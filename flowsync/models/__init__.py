"""Domain models for Registry export and NiFi import."""

from flowsync.models.registry import Bucket, Flow, VersionMeta
from flowsync.models.results import (
    ExportSummary,
    ImportMethod,
    ImportResult,
    ImportRunSummary,
    ImportState,
)
from flowsync.models.snapshot import (
    ConnectionDef,
    FlowSnapshot,
    LabelDef,
    Position,
    ProcessorDef,
    flow_contents,
    load_flow_document,
)

__all__ = [
    "Bucket",
    "ConnectionDef",
    "ExportSummary",
    "Flow",
    "FlowSnapshot",
    "ImportMethod",
    "ImportResult",
    "ImportRunSummary",
    "ImportState",
    "LabelDef",
    "Position",
    "ProcessorDef",
    "VersionMeta",
    "flow_contents",
    "load_flow_document",
]
