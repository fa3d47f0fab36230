"""Error taxonomy for Registry export and NiFi import operations.

Fatal errors (connectivity, authentication, structural problems at the start
of an operation) propagate to the caller. ``ComponentCreationFailed`` and
``VerificationMismatch`` are raised or built inside the importer's per-item
loops and are logged there; they never escape ``FlowImporter.import_flow``.
"""

from __future__ import annotations


class FlowSyncError(Exception):
    """Base class for every error raised by flowsync."""


class ConfigurationError(FlowSyncError):
    """Raised when required settings (e.g. NiFi credentials) are missing."""


# ── Transport ───────────────────────────────────────────────────────────


class ServiceUnavailable(FlowSyncError):
    """Raised when a service cannot be reached (connect error or timeout)."""


class RegistryUnavailable(ServiceUnavailable):
    """The NiFi Registry could not be reached."""


class NiFiUnavailable(ServiceUnavailable):
    """The NiFi instance could not be reached or never became ready."""


class RequestFailed(FlowSyncError):
    """Raised on a non-2xx HTTP response."""

    def __init__(self, method: str, url: str, status: int, body: str = "") -> None:
        self.method = method
        self.url = url
        self.status = status
        self.body = body
        super().__init__(f"{method} {url} failed (HTTP {status}): {body[:200]}")


class RegistryRequestFailed(RequestFailed):
    """A Registry endpoint answered with a 4xx/5xx status."""


class NiFiRequestFailed(RequestFailed):
    """A NiFi endpoint answered with a 4xx/5xx status."""


class MalformedResponse(FlowSyncError):
    """Raised when a response body is not JSON or not of the expected shape."""


# ── Registry / export ───────────────────────────────────────────────────


class NoVersionsFound(FlowSyncError):
    """Raised when a flow has no versions to choose from."""


class FlowNotFound(FlowSyncError):
    """Raised when a flow ID does not exist in the given bucket."""


class FlowStoreError(FlowSyncError):
    """Raised for flow-store lookups that match nothing on disk."""


# ── Import ──────────────────────────────────────────────────────────────


class InvalidFlowDocument(FlowSyncError):
    """Raised when a flow file is not parseable or structurally invalid."""


class AuthenticationFailed(FlowSyncError):
    """Raised when the NiFi token exchange fails.

    ``retryable`` is True while NiFi is still starting up (cluster election,
    HTTP 409, connection refused) and False for rejected credentials.
    """

    def __init__(self, message: str, *, retryable: bool, status: int | None = None) -> None:
        self.retryable = retryable
        self.status = status
        super().__init__(message)


class ProcessGroupCreationFailed(FlowSyncError):
    """Raised when the target process group for an import cannot be created."""


class ComponentCreationFailed(FlowSyncError):
    """A single processor, connection or label could not be created."""

    def __init__(self, kind: str, name: str, reason: str = "") -> None:
        self.kind = kind
        self.name = name
        self.reason = reason
        detail = f": {reason}" if reason else ""
        super().__init__(f"Failed to create {kind} '{name}'{detail}")


class VerificationMismatch(FlowSyncError):
    """Post-import component count differs from what was expected."""

    def __init__(self, kind: str, expected: int, actual: int) -> None:
        self.kind = kind
        self.expected = expected
        self.actual = actual
        super().__init__(f"Verification: expected {expected} {kind}(s), found {actual}")


class GitCommandFailed(FlowSyncError):
    """Raised when ``git add`` or ``git commit`` exits non-zero."""
