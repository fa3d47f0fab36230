"""Commit exported flow files to the surrounding Git work tree."""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Sequence
from pathlib import Path

from flowsync.exceptions import GitCommandFailed

logger = logging.getLogger(__name__)


def _git(args: list[str], cwd: Path) -> subprocess.CompletedProcess[str]:
    return subprocess.run(["git", *args], cwd=cwd, capture_output=True, text=True)


def is_work_tree(cwd: Path) -> bool:
    try:
        result = _git(["rev-parse", "--is-inside-work-tree"], cwd)
    except FileNotFoundError:
        logger.warning("git executable not found")
        return False
    return result.returncode == 0 and result.stdout.strip() == "true"


def commit_files(paths: Sequence[Path], messages: Sequence[str], cwd: Path) -> bool:
    """Stage ``paths`` and commit them with one ``-m`` paragraph per message.

    Returns:
        True if a commit was created. False when ``cwd`` is not inside a Git
        work tree or nothing changed; both are logged and otherwise ignored.

    Raises:
        GitCommandFailed: If ``git add`` or ``git commit`` fails.
    """
    if not paths:
        return False
    if not is_work_tree(cwd):
        logger.warning("Not a Git repository (%s). Skipping commit.", cwd)
        return False

    added = _git(["add", "--", *(str(p) for p in paths)], cwd)
    if added.returncode != 0:
        raise GitCommandFailed(f"git add failed: {added.stderr.strip()}")

    if _git(["diff", "--staged", "--quiet"], cwd).returncode == 0:
        logger.warning("No changes to commit")
        return False

    args = ["commit"]
    for message in messages:
        args += ["-m", message]
    committed = _git(args, cwd)
    if committed.returncode != 0:
        raise GitCommandFailed(f"git commit failed: {committed.stderr.strip() or committed.stdout.strip()}")

    logger.info("Changes committed to Git: %s", messages[0] if messages else "")
    return True
