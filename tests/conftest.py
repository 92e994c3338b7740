"""Shared test fixtures and configuration."""

import pytest
from unifi_exporter.config import ExporterConfig


@pytest.fixture
def test_config():
    """Create an ExporterConfig with sensible defaults for testing."""
    return ExporterConfig(
        controller_url="https://unifi.test",
        api_token="test-token",
        site=None,
        poll_interval=300.0,
        request_timeout=5.0,
        verify_tls=False,
        fetch_concurrency=4,
        prune_stale_devices=False,
        listen_host="127.0.0.1",
        listen_port=8080,
        log_level="INFO",
    )
