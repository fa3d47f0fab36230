"""CLI entrypoint for exporting NiFi Registry flows to Git and importing them into NiFi.

Usage::

    flowsync --registry-url http://localhost:18080 export-all --auto-commit
    flowsync --nifi-url https://localhost:8443 import --pattern 'MyUseCase*'
"""

from __future__ import annotations

import dataclasses
import logging
import sys
from collections.abc import Iterator
from contextlib import closing, contextmanager
from pathlib import Path

import click

from flowsync.clients.nifi import NiFiClient
from flowsync.clients.registry import RegistryClient
from flowsync.config import FlowSyncConfig
from flowsync.exceptions import ConfigurationError, FlowSyncError
from flowsync.exporter import FlowExporter
from flowsync.importer import FlowImporter
from flowsync.store import FlowStore
from flowsync.versions import format_version

logger = logging.getLogger(__name__)

_SOURCES = ("latest", "flows", "all-backups")


# ── Wiring ──────────────────────────────────────────────────────────────


def _registry(config: FlowSyncConfig) -> RegistryClient:
    return RegistryClient(
        config.registry_url,
        timeout=config.request_timeout,
        health_timeout=config.health_timeout,
    )


def _store(config: FlowSyncConfig) -> FlowStore:
    return FlowStore(config.flows_dir, backups_root=config.backups_root, output_dir=config.export_dir)


@contextmanager
def _exporter(config: FlowSyncConfig) -> Iterator[FlowExporter]:
    with closing(_registry(config)) as registry:
        registry.check_available()
        yield FlowExporter(registry, _store(config))


def _nifi(config: FlowSyncConfig) -> NiFiClient:
    if not config.nifi_password:
        raise ConfigurationError("NIFI_PASSWORD is not set")
    return NiFiClient(
        config.nifi_url,
        config.nifi_username,
        config.nifi_password,
        timeout=config.request_timeout,
        verify_ssl=config.verify_ssl,
    )


@contextmanager
def _exit_on_error() -> Iterator[None]:
    """Turn flowsync errors into a logged message and exit code 1."""
    try:
        yield
    except FlowSyncError as exc:
        logger.error("%s: %s", type(exc).__name__, exc)
        sys.exit(1)


# ── CLI definition ──────────────────────────────────────────────────────


@click.group("flowsync")
@click.option("--registry-url", default=None, help="NiFi Registry URL (overrides REGISTRY_URL env var).")
@click.option("--nifi-url", default=None, help="NiFi URL (overrides NIFI_URL env var).")
@click.option(
    "--flows-dir",
    default=None,
    type=click.Path(file_okay=False, path_type=Path),
    help="Flow JSON directory (overrides FLOWS_DIR env var).",
)
@click.option("--debug", is_flag=True, default=False, help="Enable debug logging.")
@click.pass_context
def cli(
    ctx: click.Context,
    registry_url: str | None,
    nifi_url: str | None,
    flows_dir: Path | None,
    debug: bool,
) -> None:
    """Synchronize NiFi flow definitions between a Registry, Git and NiFi."""
    config = FlowSyncConfig.from_env()

    # CLI overrides take precedence over env vars
    overrides: dict[str, object] = {}
    if registry_url:
        overrides["registry_url"] = registry_url.rstrip("/")
    if nifi_url:
        overrides["nifi_url"] = nifi_url.rstrip("/")
    if flows_dir:
        overrides["flows_dir"] = flows_dir
    if debug:
        overrides["log_level"] = "DEBUG"
    config = dataclasses.replace(config, **overrides)

    config.configure_logging()
    ctx.obj = config


# ── Registry listing ────────────────────────────────────────────────────


@cli.command("list-buckets")
@click.pass_obj
def list_buckets(config: FlowSyncConfig) -> None:
    """List Registry buckets."""
    with _exit_on_error(), _exporter(config) as exporter:
        buckets = exporter.list_buckets()

    if not buckets:
        click.echo("No buckets found in Registry")
        return
    for bucket in buckets:
        line = f"{bucket.name}  ({bucket.id})"
        click.echo(f"{line}  - {bucket.description}" if bucket.description else line)


@cli.command("list-flows")
@click.option("--bucket-id", required=True, help="Registry bucket identifier.")
@click.pass_obj
def list_flows(config: FlowSyncConfig, bucket_id: str) -> None:
    """List the flows of one bucket."""
    with _exit_on_error(), _exporter(config) as exporter:
        flows = exporter.list_flows(bucket_id)

    if not flows:
        click.echo("No flows in this bucket")
        return
    for flow in flows:
        click.echo(f"{flow.name}  ({flow.id})")


@cli.command("list-versions")
@click.pass_obj
def list_versions(config: FlowSyncConfig) -> None:
    """List every flow version in every bucket, newest first."""
    with _exit_on_error(), _exporter(config) as exporter:
        catalog = exporter.version_catalog()

    total_flows = total_versions = 0
    for entry in catalog:
        click.echo(f"BUCKET: {entry.bucket.name} ({entry.bucket.id})")
        if not entry.flows:
            click.echo("  No flows in this bucket")
        for flow_versions in entry.flows:
            total_flows += 1
            total_versions += len(flow_versions.versions)
            click.echo(f"  FLOW: {flow_versions.flow.name} ({flow_versions.flow.id})")
            for index, meta in enumerate(flow_versions.versions):
                click.echo(f"    {format_version(meta, is_latest=index == 0)}")

    click.echo(f"Total: {len(catalog)} bucket(s), {total_flows} flow(s), {total_versions} version(s)")


# ── Export ──────────────────────────────────────────────────────────────


@cli.command("export")
@click.option("--bucket-id", required=True, help="Registry bucket identifier.")
@click.option("--flow-id", required=True, help="Registry flow identifier.")
@click.option("--auto-commit", is_flag=True, default=False, help="Back up and commit the exported file to Git.")
@click.pass_obj
def export(config: FlowSyncConfig, bucket_id: str, flow_id: str, auto_commit: bool) -> None:
    """Export the latest version of one flow."""
    with _exit_on_error(), _exporter(config) as exporter:
        path = exporter.export_flow(bucket_id, flow_id, commit=auto_commit)
    click.echo(str(path))


@cli.command("export-all")
@click.option("--auto-commit", is_flag=True, default=False, help="Back up and commit exported files to Git.")
@click.pass_obj
def export_all(config: FlowSyncConfig, auto_commit: bool) -> None:
    """Export the latest version of every flow in every bucket."""
    with _exit_on_error(), _exporter(config) as exporter:
        summary = exporter.export_all_flows(commit=auto_commit)

    click.echo(
        f"Buckets: {summary.total_buckets}  Flows: {summary.total_flows}  "
        f"Exported: {summary.exported}  Failed: {summary.failed}"
    )
    if not summary.succeeded:
        sys.exit(1)


@cli.command("backup")
@click.pass_obj
def backup(config: FlowSyncConfig) -> None:
    """Copy the current flow set into a new backup generation."""
    store = _store(config)
    if not store.list_flow_files(store.flows_dir):
        logger.error("No flow files to back up in %s", store.flows_dir)
        sys.exit(1)
    click.echo(str(store.create_backup()))


# ── Import ──────────────────────────────────────────────────────────────


@cli.command("import")
@click.option("--flow-name", default=None, help="Import a single flow by file name (without .json).")
@click.option("--pattern", default=None, help="Import flows whose file name matches a glob (without .json).")
@click.option(
    "--source",
    type=click.Choice(_SOURCES, case_sensitive=False),
    default="latest",
    show_default=True,
    help="Latest backup generation, the flows directory, or all generations merged.",
)
@click.option("--target-pg", default=None, help="Parent process group ID (defaults to root).")
@click.pass_obj
def import_flows(
    config: FlowSyncConfig,
    flow_name: str | None,
    pattern: str | None,
    source: str,
    target_pg: str | None,
) -> None:
    """Import flow files into NiFi as new process groups."""
    if flow_name and pattern:
        raise click.UsageError("--flow-name and --pattern are mutually exclusive")

    store = _store(config)
    with _exit_on_error(), closing(_nifi(config)) as client:
        if source == "all-backups":
            files = store.read_all_backup_sets()
        elif source == "flows":
            files = store.list_flow_files(store.flows_dir)
        else:
            files = store.read_latest_backup_set()
        selected = store.select(files, name=flow_name, pattern=pattern)

        logger.info("Selected %d flow file(s) from %s source", len(selected), source)
        summary = FlowImporter(client, config).import_many(selected, target_pg)

    if not summary.succeeded:
        sys.exit(1)


# ── Setup ───────────────────────────────────────────────────────────────


@cli.command("create-bucket")
@click.argument("name")
@click.option("--description", default="", help="Bucket description.")
@click.pass_obj
def create_bucket(config: FlowSyncConfig, name: str, description: str) -> None:
    """Create a Registry bucket (an existing bucket is not an error)."""
    with _exit_on_error(), closing(_registry(config)) as registry:
        registry.check_available()
        bucket = registry.create_bucket(name, description)

    if bucket is not None:
        click.echo(f"{bucket.name}  ({bucket.id})")


if __name__ == "__main__":
    cli()
