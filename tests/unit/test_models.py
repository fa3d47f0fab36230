"""Unit tests for Registry records, flow snapshot parsing and result summaries.

Validates parsing of Registry JSON, structural validation of flow documents,
and the success policy of export/import summaries.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from flowsync.exceptions import InvalidFlowDocument
from flowsync.models import (
    Bucket,
    ExportSummary,
    Flow,
    FlowSnapshot,
    ImportMethod,
    ImportResult,
    ImportRunSummary,
    Position,
    VersionMeta,
    flow_contents,
    load_flow_document,
)


# =========================================================================
# Registry records
# =========================================================================


class TestRegistryRecords:
    """Tests for Bucket, Flow and VersionMeta parsing."""

    def test_bucket_uses_identifier(self) -> None:
        """Registry 'identifier' becomes the bucket id."""
        bucket = Bucket.from_api({"identifier": "b-1", "name": "Main", "description": "prod"})
        assert bucket == Bucket(id="b-1", name="Main", description="prod")

    def test_bucket_accepts_id(self) -> None:
        """'id' is accepted when 'identifier' is absent."""
        assert Bucket.from_api({"id": "b-2", "name": "Other"}).id == "b-2"

    def test_missing_identifier_rejected(self) -> None:
        """A record without any identifier raises ValueError."""
        with pytest.raises(ValueError):
            Bucket.from_api({"name": "nameless"})

    def test_flow_parent_from_payload(self) -> None:
        """bucketIdentifier in the payload wins over the caller's bucket id."""
        flow = Flow.from_api({"identifier": "f-1", "name": "Ingest", "bucketIdentifier": "b-9"}, bucket_id="b-1")
        assert flow.bucket_id == "b-9"

    def test_flow_parent_fallback(self) -> None:
        """Without bucketIdentifier the caller's bucket id is used."""
        assert Flow.from_api({"identifier": "f-1", "name": "Ingest"}, bucket_id="b-1").bucket_id == "b-1"

    def test_version_meta(self) -> None:
        """Version metadata keeps number, comments and epoch-millis timestamp."""
        meta = VersionMeta.from_api({"version": 4, "comments": "fix", "timestamp": 1700000000000, "author": "bob"})
        assert (meta.version, meta.comments, meta.timestamp, meta.author) == (4, "fix", 1700000000000, "bob")

    @pytest.mark.parametrize("raw", [{}, {"version": True}, {"version": "abc"}])
    def test_bad_version_rejected(self, raw: dict[str, Any]) -> None:
        """Missing, boolean or non-numeric version numbers raise ValueError."""
        with pytest.raises(ValueError):
            VersionMeta.from_api(raw)

    def test_records_are_frozen(self) -> None:
        """Records are immutable."""
        with pytest.raises(AttributeError):
            Bucket(id="b", name="n").name = "changed"  # type: ignore[misc]


# =========================================================================
# Flow documents
# =========================================================================


class TestFlowSnapshot:
    """Tests for FlowSnapshot.from_document and document loading."""

    def test_parses_components(self, snapshot_document: dict[str, Any]) -> None:
        """Processors, connections and labels are parsed from flowContents."""
        snapshot = FlowSnapshot.from_document(snapshot_document)
        assert [p.name for p in snapshot.processors] == ["Generate", "Update", "Log"]
        assert snapshot.connections[0].source_id == "old-gen"
        assert snapshot.connections[0].selected_relationships == ("success",)
        assert snapshot.labels[0].text == "Demo flow"
        assert snapshot.labels[0].position == Position(-200.0, 0.0)

    def test_processor_defaults(self) -> None:
        """Scheduling fields default to '0 sec' / TIMER_DRIVEN."""
        document = {"flowContents": {"processors": [{"identifier": "p", "type": "x.Y"}]}}
        processor = FlowSnapshot.from_document(document).processors[0]
        assert processor.scheduling_period == "0 sec"
        assert processor.scheduling_strategy == "TIMER_DRIVEN"
        assert processor.name == "p"

    def test_root_group_layout(self, snapshot_document: dict[str, Any]) -> None:
        """Documents using rootGroup instead of flowContents are accepted."""
        document = {"rootGroup": snapshot_document["flowContents"]}
        assert len(FlowSnapshot.from_document(document).processors) == 3

    def test_dangling_connection_rejected(self, snapshot_document: dict[str, Any]) -> None:
        """A connection to an undefined processor is a malformed document."""
        snapshot_document["flowContents"]["connections"].append(
            {"source": {"id": "old-log"}, "destination": {"id": "ghost"}, "selectedRelationships": []}
        )
        with pytest.raises(InvalidFlowDocument, match="ghost"):
            FlowSnapshot.from_document(snapshot_document)

    def test_processor_without_type_rejected(self) -> None:
        """Processors must declare a type."""
        with pytest.raises(InvalidFlowDocument):
            FlowSnapshot.from_document({"flowContents": {"processors": [{"identifier": "p"}]}})

    def test_missing_contents_rejected(self) -> None:
        """A document with neither flowContents nor rootGroup is rejected."""
        with pytest.raises(InvalidFlowDocument):
            flow_contents({"snapshotMetadata": {}})

    def test_load_invalid_json(self, tmp_path: Path) -> None:
        """Unparseable files raise InvalidFlowDocument."""
        path = tmp_path / "broken.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(InvalidFlowDocument):
            load_flow_document(path)

    def test_load_non_object(self, tmp_path: Path) -> None:
        """A JSON array is not a flow document."""
        path = tmp_path / "list.json"
        path.write_text(json.dumps([1, 2]), encoding="utf-8")
        with pytest.raises(InvalidFlowDocument):
            load_flow_document(path)

    def test_load_missing_file(self, tmp_path: Path) -> None:
        """A missing file raises InvalidFlowDocument."""
        with pytest.raises(InvalidFlowDocument):
            load_flow_document(tmp_path / "absent.json")


# =========================================================================
# Summaries
# =========================================================================


class TestExportSummary:
    """Tests for the export success policy."""

    def test_zero_buckets_is_success(self) -> None:
        """A Registry with no buckets exports successfully."""
        assert ExportSummary(total_buckets=0).succeeded

    def test_empty_buckets_is_success(self) -> None:
        """Buckets without flows export successfully."""
        assert ExportSummary(total_buckets=2, total_flows=0).succeeded

    def test_none_exported_is_failure(self) -> None:
        """Flows found but none exported is a failure."""
        assert not ExportSummary(total_buckets=1, total_flows=3, exported=0, failed=3).succeeded

    def test_partial_is_failure(self) -> None:
        """Any per-flow failure fails the run."""
        assert not ExportSummary(total_buckets=1, total_flows=3, exported=2, failed=1).succeeded

    def test_all_exported_is_success(self) -> None:
        """Every flow exported is a success."""
        assert ExportSummary(total_buckets=1, total_flows=3, exported=3).succeeded

    def test_bucket_error_is_failure(self) -> None:
        """A bucket whose flows could not be listed fails the run."""
        assert not ExportSummary(total_buckets=2, total_flows=1, exported=1, bucket_errors=1).succeeded


class TestImportSummaries:
    """Tests for ImportResult and ImportRunSummary."""

    def test_componentwise_complete(self) -> None:
        """complete is True only when every count matches."""
        result = ImportResult(
            flow_name="f",
            method=ImportMethod.COMPONENTWISE,
            created_processor_count=2,
            expected_processor_count=2,
            created_connection_count=0,
            expected_connection_count=1,
        )
        assert not result.complete

    def test_direct_is_complete(self) -> None:
        """Direct uploads are complete by construction."""
        assert ImportResult(flow_name="f", method=ImportMethod.DIRECT).complete

    def test_run_summary(self) -> None:
        """Failures make the run unsuccessful; an empty run succeeds."""
        ok = ImportResult(flow_name="a", method=ImportMethod.DIRECT)
        assert ImportRunSummary().succeeded
        assert ImportRunSummary(results=(ok,)).imported == 1
        failed = ImportRunSummary(results=(ok,), failures={"b": "boom"})
        assert failed.failed == 1
        assert not failed.succeeded
