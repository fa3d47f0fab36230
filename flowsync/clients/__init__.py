"""HTTP clients for the NiFi Registry and NiFi REST APIs."""

from flowsync.clients.nifi import NiFiClient
from flowsync.clients.registry import RegistryClient

__all__ = ["NiFiClient", "RegistryClient"]
