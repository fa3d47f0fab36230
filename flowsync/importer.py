"""Import flow documents into a live NiFi instance.

Each import first tries NiFi's one-shot process-group upload. When that
endpoint is unavailable the flow is rebuilt component by component inside a
new process group:

    START -> AUTHENTICATED -> ROOT_RESOLVED -> DIRECT_UPLOAD_ATTEMPTED
          -> DONE                                   (direct upload accepted)
          -> PG_CREATED -> PROCESSORS_CREATED -> CONNECTIONS_CREATED
             -> LABELS_CREATED -> VERIFIED -> DONE  (componentwise)

Authentication and process-group creation failures abort the import.
Individual processor, connection and label failures are logged and skipped;
components created before a failure are left in place.
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any

from flowsync.clients.nifi import NiFiClient
from flowsync.config import FlowSyncConfig
from flowsync.exceptions import (
    ComponentCreationFailed,
    FlowSyncError,
    InvalidFlowDocument,
    MalformedResponse,
    NiFiRequestFailed,
    ProcessGroupCreationFailed,
    VerificationMismatch,
)
from flowsync.models.results import ImportMethod, ImportResult, ImportRunSummary, ImportState
from flowsync.models.snapshot import FlowSnapshot, Position, ProcessorDef, load_flow_document

logger = logging.getLogger(__name__)

# Creation responses differ across NiFi versions; tried in order.
_ID_EXTRACTORS: tuple[Callable[[dict[str, Any]], Any], ...] = (
    lambda entity: entity.get("id"),
    lambda entity: (entity.get("component") or {}).get("id"),
    lambda entity: (entity.get("revision") or {}).get("componentId"),
)

_JITTER_BASE = 100
_JITTER_RANGE = 400


def extract_id(entity: Any) -> str | None:
    """Return the first non-empty ID found by the extractor chain."""
    if not isinstance(entity, dict):
        return None
    for extractor in _ID_EXTRACTORS:
        value = extractor(entity)
        if value and value != "null":
            return str(value)
    return None


class IdMapping:
    """Old (Registry-scoped) processor ID to the ID NiFi assigned on creation."""

    def __init__(self) -> None:
        self._ids: dict[str, str] = {}

    def record(self, old_id: str, new_id: str) -> None:
        self._ids[old_id] = new_id

    def resolve(self, old_id: str) -> str | None:
        return self._ids.get(old_id)

    def new_ids(self) -> set[str]:
        return set(self._ids.values())

    def __len__(self) -> int:
        return len(self._ids)

    def __contains__(self, old_id: object) -> bool:
        return old_id in self._ids


class FlowImporter:
    """Imports flow JSON files into NiFi through a :class:`NiFiClient`.

    Args:
        client: Authenticated (or authenticatable) NiFi client.
        config: Supplies polling limits and the settle/lookup delays.
        sleep: Sleep function, injectable for tests.
        rng: Random source for process-group placement.
    """

    def __init__(
        self,
        client: NiFiClient,
        config: FlowSyncConfig,
        *,
        sleep: Callable[[float], None] = time.sleep,
        rng: random.Random | None = None,
    ) -> None:
        self.client = client
        self.config = config
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._root_id: str | None = None

    def connect(self) -> str:
        """Wait for NiFi and its authentication to be ready, then resolve the root group.

        Raises:
            NiFiUnavailable: If NiFi never answers.
            AuthenticationFailed: If a token cannot be obtained.
        """
        cfg = self.config
        self.client.wait_for_ready(cfg.ready_attempts, cfg.poll_interval, sleep=self._sleep)
        self.client.wait_for_auth(cfg.auth_attempts, cfg.poll_interval, sleep=self._sleep)

        self._root_id = self.client.get_root_process_group_id()
        version = self.client.get_version()
        if version:
            logger.info("NiFi version: %s", version)
        return self._root_id

    def _jittered_position(self) -> Position:
        return Position(
            x=float(_JITTER_BASE + self._rng.randrange(_JITTER_RANGE)),
            y=float(_JITTER_BASE + self._rng.randrange(_JITTER_RANGE)),
        )

    # ── single flow ─────────────────────────────────────────────────────

    def import_flow(self, path: Path, target_pg_id: str | None = None) -> ImportResult:
        """Import one flow file as a new process group under ``target_pg_id``.

        Args:
            path: Flow JSON file; the file stem becomes the group name.
            target_pg_id: Parent process group; defaults to the root group.

        Raises:
            InvalidFlowDocument: If the file is not a usable flow document.
            AuthenticationFailed: If no token can be obtained.
            ProcessGroupCreationFailed: If the componentwise target group
                cannot be created.
            NiFiUnavailable: On lost connectivity.
        """
        states = [ImportState.START]
        name = path.stem
        logger.info("Importing: %s (%s)", name, path)

        try:
            return self._import(path, name, target_pg_id, states)
        except FlowSyncError:
            states.append(ImportState.FAILED)
            logger.error("Import of '%s' failed: %s", name, " -> ".join(states))
            raise

    def _import(
        self, path: Path, name: str, target_pg_id: str | None, states: list[ImportState]
    ) -> ImportResult:
        document = load_flow_document(path)

        if not self.client.authenticated:
            self.client.authenticate()
        states.append(ImportState.AUTHENTICATED)

        if target_pg_id is None:
            if self._root_id is None:
                self._root_id = self.client.get_root_process_group_id()
            target_pg_id = self._root_id
        states.append(ImportState.ROOT_RESOLVED)

        logger.info("  Method 1: direct flow upload...")
        uploaded = self.client.upload_process_group(target_pg_id, name, path, self._jittered_position())
        states.append(ImportState.DIRECT_UPLOAD_ATTEMPTED)
        if uploaded is not None:
            states.append(ImportState.DONE)
            logger.info("  Direct upload successful")
            return ImportResult(
                flow_name=name,
                method=ImportMethod.DIRECT,
                process_group_id=extract_id(uploaded),
                states=tuple(states),
            )

        logger.info("  Method 2: component-by-component import...")
        snapshot = FlowSnapshot.from_document(document)
        if not snapshot.processors:
            raise InvalidFlowDocument(f"No processors found in flow definition {path}")
        return self._import_components(name, target_pg_id, snapshot, states)

    # ── componentwise ───────────────────────────────────────────────────

    def _create_process_group(self, parent_id: str, name: str) -> str:
        try:
            entity = self.client.create_process_group(parent_id, name, self._jittered_position())
        except (NiFiRequestFailed, MalformedResponse) as exc:
            raise ProcessGroupCreationFailed(f"Failed to create process group '{name}': {exc}") from exc

        pg_id = (entity.get("component") or {}).get("id") or entity.get("id")
        if not pg_id:
            raise ProcessGroupCreationFailed(f"Failed to extract process group ID for '{name}'")
        logger.info("  Process group created: %s", pg_id)
        return pg_id

    def _lookup_processor_id(self, pg_id: str, name: str, taken: set[str]) -> str | None:
        self._sleep(self.config.lookup_delay)
        try:
            existing = self.client.list_processors(pg_id)
        except (NiFiRequestFailed, MalformedResponse) as exc:
            logger.warning("  Processor lookup for '%s' failed: %s", name, exc)
            return None
        for entity in existing:
            candidate = extract_id(entity)
            if (entity.get("component") or {}).get("name") == name and candidate not in taken:
                return candidate
        return None

    def _create_processor(self, pg_id: str, processor: ProcessorDef, mapping: IdMapping) -> str:
        try:
            entity = self.client.create_processor(pg_id, processor)
        except (NiFiRequestFailed, MalformedResponse) as exc:
            raise ComponentCreationFailed("processor", processor.name, str(exc)) from exc

        new_id = extract_id(entity)
        if new_id is None:
            logger.warning("  Failed to extract ID from response, querying NiFi for: %s", processor.name)
            new_id = self._lookup_processor_id(pg_id, processor.name, mapping.new_ids())
        if new_id is None:
            raise ComponentCreationFailed("processor", processor.name, "ID unknown, skipping mapping")
        return new_id

    def _import_components(
        self, name: str, parent_id: str, snapshot: FlowSnapshot, states: list[ImportState]
    ) -> ImportResult:
        pg_id = self._create_process_group(parent_id, name)
        states.append(ImportState.PG_CREATED)

        # Processors
        logger.info("  Found %d processor(s) to import", len(snapshot.processors))
        mapping = IdMapping()
        unmapped: list[str] = []
        for processor in snapshot.processors:
            try:
                new_id = self._create_processor(pg_id, processor, mapping)
            except ComponentCreationFailed as exc:
                logger.error("  %s", exc)
                unmapped.append(processor.name)
                continue
            mapping.record(processor.identifier, new_id)
            logger.info("  Created processor '%s': %s -> %s", processor.name, processor.identifier, new_id)
        states.append(ImportState.PROCESSORS_CREATED)

        warnings: list[str] = []
        if not mapping:
            warnings.append("No processor ID mappings were created")
            logger.warning("  No processor ID mappings were created")

        self._sleep(self.config.settle_delay)

        # Connections
        created_connections = skipped = 0
        names = snapshot.processor_names
        for conn in snapshot.connections:
            source = mapping.resolve(conn.source_id)
            destination = mapping.resolve(conn.destination_id)
            if source is None or destination is None:
                missing = conn.source_id if source is None else conn.destination_id
                logger.error(
                    "  Skipping connection %s: processor '%s' (%s) is unmapped",
                    conn.label,
                    names.get(missing, missing),
                    missing,
                )
                skipped += 1
                continue
            try:
                self.client.create_connection(
                    pg_id, source, destination, list(conn.selected_relationships), name=conn.name
                )
            except (NiFiRequestFailed, MalformedResponse) as exc:
                logger.error("  %s", ComponentCreationFailed("connection", conn.label, str(exc)))
                continue
            created_connections += 1
            logger.info(
                "  Connected %s -[%s]-> %s",
                source[:8],
                ",".join(conn.selected_relationships),
                destination[:8],
            )
        states.append(ImportState.CONNECTIONS_CREATED)

        # Labels
        created_labels = 0
        for index, label in enumerate(snapshot.labels, start=1):
            try:
                self.client.create_label(pg_id, label)
            except (NiFiRequestFailed, MalformedResponse) as exc:
                logger.error("  %s", ComponentCreationFailed("label", f"#{index}", str(exc)))
                continue
            created_labels += 1
        if snapshot.labels:
            logger.info("  Created %d/%d label(s)", created_labels, len(snapshot.labels))
        states.append(ImportState.LABELS_CREATED)

        warnings.extend(
            self._verify(
                pg_id,
                processors=len(mapping),
                connections=len(snapshot.connections),
                labels=len(snapshot.labels),
            )
        )
        states.append(ImportState.VERIFIED)
        states.append(ImportState.DONE)

        return ImportResult(
            flow_name=name,
            method=ImportMethod.COMPONENTWISE,
            process_group_id=pg_id,
            created_processor_count=len(mapping),
            created_connection_count=created_connections,
            created_label_count=created_labels,
            expected_processor_count=len(snapshot.processors),
            expected_connection_count=len(snapshot.connections),
            expected_label_count=len(snapshot.labels),
            unmapped_processors=tuple(unmapped),
            skipped_connections=skipped,
            warnings=tuple(warnings),
            states=tuple(states),
        )

    def _verify(self, pg_id: str, **expected: int) -> list[str]:
        """Compare live component counts with ``expected``; returns warning messages."""
        listers = {
            "processors": self.client.list_processors,
            "connections": self.client.list_connections,
            "labels": self.client.list_labels,
        }
        warnings = []
        for kind, count in expected.items():
            try:
                actual = len(listers[kind](pg_id))
            except (NiFiRequestFailed, MalformedResponse) as exc:
                message = f"Verification of {kind} skipped: {exc}"
                logger.warning("  %s", message)
                warnings.append(message)
                continue
            singular = kind.rstrip("s")
            if actual != count:
                mismatch = VerificationMismatch(singular, count, actual)
                logger.warning("  %s", mismatch)
                warnings.append(str(mismatch))
            else:
                logger.info("  Verification: %d %s(s) exist in process group", actual, singular)
        return warnings

    # ── batch ───────────────────────────────────────────────────────────

    def import_many(self, paths: Iterable[Path], target_pg_id: str | None = None) -> ImportRunSummary:
        """Connect once, then import each file, counting per-flow failures.

        Readiness, authentication and root-resolution failures abort the
        batch; any failure of a single flow is logged and the batch goes on.
        """
        paths = list(paths)
        if not paths:
            logger.warning("No flow files selected")
            return ImportRunSummary()

        root_id = self.connect()
        target = target_pg_id or root_id

        results: list[ImportResult] = []
        failures: dict[str, str] = {}
        for path in paths:
            try:
                result = self.import_flow(path, target)
            except FlowSyncError as exc:
                failures[path.stem] = str(exc)
                continue
            results.append(result)
            logger.info("Flow '%s' imported (%s)", result.flow_name, result.method)

        summary = ImportRunSummary(results=tuple(results), failures=failures)
        logger.info("=" * 70)
        logger.info("Import Summary")
        logger.info("  Successfully imported: %d", summary.imported)
        logger.info("  Failed:                %d", summary.failed)
        for flow_name, reason in failures.items():
            logger.info("    %s: %s", flow_name, reason)
        logger.info("=" * 70)
        return summary
