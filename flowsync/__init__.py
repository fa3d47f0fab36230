"""Synchronize NiFi flow definitions between a NiFi Registry, Git and NiFi."""

__version__ = "1.0.0"
