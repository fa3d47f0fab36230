"""Centralized configuration loaded from environment variables."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

_TRUTHY = {"1", "true", "yes", "on"}


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUTHY


@dataclass(frozen=True)
class FlowSyncConfig:
    """Configuration for Registry export and NiFi import runs.

    All values are loaded from environment variables with defaults matching
    the local Docker Compose stack (Registry on 18080, NiFi on 8443).
    CLI flags override individual fields via ``dataclasses.replace``.
    """

    registry_url: str = "http://localhost:18080"
    nifi_url: str = "https://localhost:8443"
    nifi_username: str = "admin"
    nifi_password: str = field(default="", repr=False)
    flows_dir: Path = Path("flows")
    output_dir: Path | None = None
    backup_dir: Path | None = None
    verify_ssl: bool = False

    request_timeout: float = 15.0
    health_timeout: float = 5.0
    ready_attempts: int = 60
    auth_attempts: int = 20
    poll_interval: float = 5.0

    # NiFi indexes new processors asynchronously; connections created too
    # soon after their endpoints can be rejected.
    settle_delay: float = 2.0
    lookup_delay: float = 1.0

    log_level: str = "INFO"

    @property
    def export_dir(self) -> Path:
        """Directory that exported flow JSON files are written to."""
        return self.output_dir if self.output_dir is not None else self.flows_dir

    @property
    def backups_root(self) -> Path:
        """Root directory holding timestamped backup generations."""
        return self.backup_dir if self.backup_dir is not None else self.flows_dir / "backups"

    @classmethod
    def from_env(cls) -> FlowSyncConfig:
        """Build configuration from environment variables."""
        flows_dir = Path(os.environ.get("FLOWS_DIR", "flows"))
        output_dir = os.environ.get("OUTPUT_DIR")
        backup_dir = os.environ.get("BACKUP_DIR")

        log_level = os.environ.get("LOG_LEVEL", "INFO")
        if _env_bool("DEBUG", False):
            log_level = "DEBUG"

        return cls(
            registry_url=os.environ.get("REGISTRY_URL", "http://localhost:18080").rstrip("/"),
            nifi_url=os.environ.get("NIFI_URL", "https://localhost:8443").rstrip("/"),
            nifi_username=os.environ.get("NIFI_USERNAME", "admin"),
            nifi_password=os.environ.get("NIFI_PASSWORD", ""),
            flows_dir=flows_dir,
            output_dir=Path(output_dir) if output_dir else None,
            backup_dir=Path(backup_dir) if backup_dir else None,
            verify_ssl=_env_bool("NIFI_VERIFY_SSL", False),
            request_timeout=float(os.environ.get("REQUEST_TIMEOUT", "15")),
            health_timeout=float(os.environ.get("HEALTH_TIMEOUT", "5")),
            ready_attempts=int(os.environ.get("READY_ATTEMPTS", "60")),
            auth_attempts=int(os.environ.get("AUTH_ATTEMPTS", "20")),
            poll_interval=float(os.environ.get("POLL_INTERVAL", "5")),
            settle_delay=float(os.environ.get("SETTLE_DELAY", "2")),
            lookup_delay=float(os.environ.get("LOOKUP_DELAY", "1")),
            log_level=log_level,
        )

    def configure_logging(self) -> None:
        """Set up structured logging based on configured level."""
        logging.basicConfig(
            level=getattr(logging, self.log_level.upper(), logging.INFO),
            format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S",
        )
