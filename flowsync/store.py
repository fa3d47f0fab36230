"""Filesystem persistence for exported flow documents.

Layout::

    <flows_dir>/<Safe_Name>.json              primary flow set
    <backups_root>/<YYYYMMDDTHHMMSSZ>/*.json  backup generations

Backup generations are never deleted here. Restoring from "all backups"
folds generations oldest to newest into a map keyed by file name, so the
newest copy of each flow wins.
"""

from __future__ import annotations

import fnmatch
import json
import logging
import os
import re
import shutil
import tempfile
from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from flowsync.exceptions import FlowStoreError

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s")
_UNSAFE = re.compile(r"[^A-Za-z0-9_-]")
_GENERATION_FORMAT = "%Y%m%dT%H%M%SZ"


def sanitize_name(name: str) -> str:
    """Turn a flow display name into a file stem.

    Whitespace becomes ``_`` and anything outside ``[A-Za-z0-9_-]`` is
    dropped; case is preserved. ``"My Flow #1"`` becomes ``"My_Flow_1"``.
    """
    return _UNSAFE.sub("", _WHITESPACE.sub("_", name))


def _generation_key(path: Path) -> tuple[str, int]:
    stem, _, suffix = path.name.partition("_")
    return (stem, int(suffix) if suffix.isdigit() else 0)


class FlowStore:
    """Reads and writes flow JSON files and their backup generations."""

    def __init__(
        self,
        flows_dir: Path,
        backups_root: Path | None = None,
        output_dir: Path | None = None,
    ) -> None:
        self.flows_dir = Path(flows_dir)
        self.backups_root = Path(backups_root) if backups_root else self.flows_dir / "backups"
        self.output_dir = Path(output_dir) if output_dir else self.flows_dir

    # ── writing ─────────────────────────────────────────────────────────

    def write(self, name: str, document: Any) -> Path:
        """Pretty-print ``document`` to ``<output_dir>/<sanitized name>.json``.

        The file is written to a temporary sibling first and moved into
        place, so a failed write never leaves a truncated file behind.
        """
        safe_name = sanitize_name(name)
        if not safe_name:
            raise FlowStoreError(f"Flow name {name!r} has no usable characters for a file name")

        self.output_dir.mkdir(parents=True, exist_ok=True)
        target = self.output_dir / f"{safe_name}.json"
        payload = json.dumps(document, indent=2, ensure_ascii=False) + "\n"

        fd, tmp_name = tempfile.mkstemp(prefix=f".{safe_name}.", suffix=".tmp", dir=self.output_dir)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
            os.replace(tmp_name, target)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

        logger.debug("Wrote %s (%d bytes)", target, len(payload))
        return target

    # ── listing ─────────────────────────────────────────────────────────

    @staticmethod
    def list_flow_files(directory: Path) -> list[Path]:
        """``*.json`` files directly under ``directory``, sorted by name."""
        if not directory.is_dir():
            return []
        return sorted(p for p in directory.glob("*.json") if p.is_file())

    def backup_generations(self) -> list[Path]:
        """Backup generation directories, oldest first."""
        if not self.backups_root.is_dir():
            return []
        return sorted((p for p in self.backups_root.iterdir() if p.is_dir()), key=_generation_key)

    # ── backups ─────────────────────────────────────────────────────────

    def create_backup(self, paths: Iterable[Path] | None = None, now: datetime | None = None) -> Path:
        """Copy a flow set into a new timestamped backup generation.

        Args:
            paths: Files to back up; defaults to the primary flow set.
            now: Generation timestamp; defaults to the current UTC time.

        Returns:
            The new generation directory.
        """
        files = list(paths) if paths is not None else self.list_flow_files(self.flows_dir)
        stamp = (now or datetime.now(timezone.utc)).strftime(_GENERATION_FORMAT)

        self.backups_root.mkdir(parents=True, exist_ok=True)
        generation = self.backups_root / stamp
        counter = 0
        while generation.exists():
            counter += 1
            generation = self.backups_root / f"{stamp}_{counter}"
        generation.mkdir()

        for src in files:
            shutil.copy2(src, generation / src.name)

        logger.info("Backup created: %s (%d file(s))", generation, len(files))
        return generation

    def read_latest_backup_set(self) -> list[Path]:
        """Flow files of the newest generation, or the primary set if there is none."""
        generations = self.backup_generations()
        if not generations:
            logger.info("No backups found in %s, using %s", self.backups_root, self.flows_dir)
            return self.list_flow_files(self.flows_dir)

        latest = generations[-1]
        logger.info("Latest backup found: %s", latest.name)
        return self.list_flow_files(latest)

    def read_all_backup_sets(self) -> list[Path]:
        """Union of every generation; on a file-name collision the newest copy wins."""
        merged: dict[str, Path] = {}
        for generation in self.backup_generations():
            files = self.list_flow_files(generation)
            logger.debug("Backup %s: %d file(s)", generation.name, len(files))
            for path in files:
                merged[path.name] = path
        return [merged[name] for name in sorted(merged)]

    # ── selection ───────────────────────────────────────────────────────

    @staticmethod
    def select(files: list[Path], name: str | None = None, pattern: str | None = None) -> list[Path]:
        """Filter flow files by exact name or glob pattern (both without ``.json``).

        Raises:
            FlowStoreError: If a name or pattern is given and nothing matches.
        """
        if name:
            selected = [p for p in files if p.name == f"{name}.json"]
            wanted = f"{name}.json"
        elif pattern:
            selected = [p for p in files if fnmatch.fnmatchcase(p.name, f"{pattern}.json")]
            wanted = f"pattern '{pattern}.json'"
        else:
            return list(files)

        if not selected:
            available = ", ".join(p.name for p in files) or "(none)"
            raise FlowStoreError(f"No flow matches {wanted}. Available flows: {available}")
        return selected
