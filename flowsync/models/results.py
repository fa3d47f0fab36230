"""Immutable summaries returned by export and import operations."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path


@dataclass(frozen=True)
class ExportSummary:
    """Outcome of exporting every flow in every bucket.

    Callers must check :attr:`succeeded` rather than the files on disk: a
    partially failed run still leaves the successfully exported flows written.
    """

    total_buckets: int = 0
    total_flows: int = 0
    exported: int = 0
    failed: int = 0
    bucket_errors: int = 0
    written: tuple[Path, ...] = ()
    output_dir: Path | None = None

    @property
    def succeeded(self) -> bool:
        if self.total_buckets == 0:
            return True
        if self.bucket_errors > 0:
            return False
        if self.total_flows == 0:
            return True
        if self.exported == 0:
            return False
        return self.failed == 0


class ImportMethod(StrEnum):
    DIRECT = "direct"
    COMPONENTWISE = "componentwise"


class ImportState(StrEnum):
    """Steps of a single flow import, in the order they are reached."""

    START = "START"
    AUTHENTICATED = "AUTHENTICATED"
    ROOT_RESOLVED = "ROOT_RESOLVED"
    DIRECT_UPLOAD_ATTEMPTED = "DIRECT_UPLOAD_ATTEMPTED"
    PG_CREATED = "PG_CREATED"
    PROCESSORS_CREATED = "PROCESSORS_CREATED"
    CONNECTIONS_CREATED = "CONNECTIONS_CREATED"
    LABELS_CREATED = "LABELS_CREATED"
    VERIFIED = "VERIFIED"
    DONE = "DONE"
    FAILED = "FAILED"


@dataclass(frozen=True)
class ImportResult:
    """Outcome of importing one flow document into a target process group."""

    flow_name: str
    method: ImportMethod
    process_group_id: str | None = None
    created_processor_count: int = 0
    created_connection_count: int = 0
    created_label_count: int = 0
    expected_processor_count: int = 0
    expected_connection_count: int = 0
    expected_label_count: int = 0
    unmapped_processors: tuple[str, ...] = ()
    skipped_connections: int = 0
    warnings: tuple[str, ...] = ()
    states: tuple[ImportState, ...] = ()

    @property
    def complete(self) -> bool:
        """True when every component in the source document was recreated."""
        if self.method is ImportMethod.DIRECT:
            return True
        return (
            self.created_processor_count == self.expected_processor_count
            and self.created_connection_count == self.expected_connection_count
            and self.created_label_count == self.expected_label_count
        )


@dataclass(frozen=True)
class ImportRunSummary:
    """Outcome of importing a batch of flow files."""

    results: tuple[ImportResult, ...] = ()
    failures: dict[str, str] = field(default_factory=dict)

    @property
    def imported(self) -> int:
        return len(self.results)

    @property
    def failed(self) -> int:
        return len(self.failures)

    @property
    def succeeded(self) -> bool:
        return self.failed == 0
