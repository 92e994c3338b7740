"""Prometheus exporter for UniFi Network controllers."""

__version__ = "0.3.0"
