"""Export flow definitions from the NiFi Registry into the flow store.

For each flow the latest version is resolved numerically, its snapshot is
downloaded and validated as JSON, and the pretty-printed document is written
to ``<output_dir>/<Safe_Name>.json``. Per-flow failures during a full export
are logged and counted; the run continues with the next flow.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from flowsync import gitops
from flowsync.clients.registry import RegistryClient
from flowsync.exceptions import FlowSyncError
from flowsync.models.registry import Bucket, Flow, VersionMeta
from flowsync.models.results import ExportSummary
from flowsync.store import FlowStore, sanitize_name
from flowsync.versions import latest, sort_versions

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FlowVersions:
    flow: Flow
    versions: tuple[VersionMeta, ...]


@dataclass(frozen=True)
class BucketCatalog:
    bucket: Bucket
    flows: tuple[FlowVersions, ...]

    @property
    def version_count(self) -> int:
        return sum(len(entry.versions) for entry in self.flows)


class FlowExporter:
    """Pulls flows from a :class:`RegistryClient` into a :class:`FlowStore`."""

    def __init__(self, registry: RegistryClient, store: FlowStore) -> None:
        self.registry = registry
        self.store = store

    # ── listing ─────────────────────────────────────────────────────────

    def list_buckets(self) -> list[Bucket]:
        return self.registry.list_buckets()

    def list_flows(self, bucket_id: str) -> list[Flow]:
        return self.registry.list_flows(bucket_id)

    def version_catalog(self) -> list[BucketCatalog]:
        """Every bucket with its flows and their versions, newest version first."""
        catalog = []
        for bucket in self.registry.list_buckets():
            entries = tuple(
                FlowVersions(flow, tuple(sort_versions(self.registry.list_versions(bucket.id, flow.id))))
                for flow in self.registry.list_flows(bucket.id)
            )
            catalog.append(BucketCatalog(bucket, entries))
        return catalog

    # ── export ──────────────────────────────────────────────────────────

    def _export(self, flow: Flow) -> tuple[Path, VersionMeta]:
        meta = latest(self.registry.list_versions(flow.bucket_id, flow.id))
        logger.debug("Exporting flow '%s' version %d...", flow.name, meta.version)

        snapshot = self.registry.get_version_snapshot(flow.bucket_id, flow.id, meta.version)
        # An all-punctuation name sanitizes to nothing; fall back to the ID.
        name = flow.name if sanitize_name(flow.name) else flow.id
        path = self.store.write(name, snapshot)

        logger.info("  Exported '%s' -> %s (v%d)", flow.name, path, meta.version)
        return path, meta

    def export_flow(self, bucket_id: str, flow_id: str, commit: bool = False) -> Path:
        """Export the latest version of one flow.

        Args:
            bucket_id: Registry bucket identifier.
            flow_id: Registry flow identifier.
            commit: Also snapshot the file into a backup generation and
                commit both to Git.

        Returns:
            Path of the written JSON file.

        Raises:
            FlowNotFound: If the bucket has no flow with ``flow_id``.
            NoVersionsFound: If the flow has no versions.
            RegistryUnavailable, RegistryRequestFailed, MalformedResponse:
                On transport or response problems; nothing is written.
        """
        flow = self.registry.get_flow(bucket_id, flow_id)
        path, meta = self._export(flow)

        if commit:
            self._commit(
                [path],
                [
                    f"Export NiFi flow: {flow.name} (v{meta.version})",
                    "Exported from NiFi Registry",
                    f"Flow: {flow.name}",
                    f"Version: {meta.version}",
                    f"Timestamp: {_utc_now()}",
                ],
            )
        return path

    def export_all_flows(self, commit: bool = False) -> ExportSummary:
        """Export the latest version of every flow in every bucket.

        Failing to list buckets aborts the run. A bucket whose flow listing
        fails is skipped and counted in ``bucket_errors``; a flow that fails
        to export is skipped and counted in ``failed``.
        """
        logger.info("Starting export of all flows...")
        buckets = self.registry.list_buckets()

        total_flows = exported = failed = bucket_errors = 0
        written: list[Path] = []

        if not buckets:
            logger.warning("No buckets found in Registry (normal for a fresh installation)")

        for bucket in buckets:
            logger.info("-" * 70)
            logger.info("BUCKET: %s", bucket.name)
            try:
                flows = self.registry.list_flows(bucket.id)
            except FlowSyncError as exc:
                logger.error("Skipping bucket '%s' due to fetch error: %s", bucket.name, exc)
                bucket_errors += 1
                continue

            if not flows:
                logger.info("  No flows in this bucket")
                continue
            logger.info("  Found %d flow(s)", len(flows))

            for flow in flows:
                total_flows += 1
                try:
                    path, _ = self._export(flow)
                except (FlowSyncError, OSError) as exc:
                    logger.error("  Failed to export flow '%s' (%s): %s", flow.name, flow.id, exc)
                    failed += 1
                    continue
                exported += 1
                if path in written:
                    logger.warning(
                        "  Flow '%s' (%s) overwrote %s, written earlier in this run", flow.name, flow.id, path
                    )
                    continue
                written.append(path)

        summary = ExportSummary(
            total_buckets=len(buckets),
            total_flows=total_flows,
            exported=exported,
            failed=failed,
            bucket_errors=bucket_errors,
            written=tuple(written),
            output_dir=self.store.output_dir,
        )
        _log_summary(summary)

        if commit and written:
            self._commit(
                written,
                [
                    f"Export {exported} NiFi flow(s) from Registry",
                    f"Buckets: {summary.total_buckets}, flows: {total_flows}, failed: {failed}",
                    f"Timestamp: {_utc_now()}",
                ],
            )
        return summary

    def _commit(self, paths: list[Path], messages: list[str]) -> None:
        # The generation holds the whole exported set, not only this run's files.
        generation = self.store.create_backup(self.store.list_flow_files(self.store.output_dir))
        gitops.commit_files([*paths, generation], messages, cwd=self.store.output_dir)


def _utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


def _log_summary(summary: ExportSummary) -> None:
    logger.info("=" * 70)
    logger.info("Export %s", "complete" if summary.succeeded else "FAILED")
    logger.info("  Buckets:        %d", summary.total_buckets)
    logger.info("  Flows found:    %d", summary.total_flows)
    logger.info("  Exported:       %d", summary.exported)
    logger.info("  Failed:         %d", summary.failed)
    if summary.bucket_errors:
        logger.info("  Bucket errors:  %d", summary.bucket_errors)
    logger.info("  Output dir:     %s", summary.output_dir)
    logger.info("=" * 70)
