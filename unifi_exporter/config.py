"""Configuration helpers for the UniFi exporter."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional

DEFAULT_ENV_PATH = Path(__file__).resolve().parent / "unifi.env"

DEFAULT_CONTROLLER_URL = "https://192.168.3.254"
DEFAULT_POLL_INTERVAL = 300.0
# requests applies this to the connect and to each read, not the whole call.
DEFAULT_REQUEST_TIMEOUT = 10.0
DEFAULT_LISTEN_HOST = "0.0.0.0"
DEFAULT_LISTEN_PORT = 8080


@dataclass
class ExporterConfig:
    """Configuration for the exporter process."""

    controller_url: str
    api_token: str
    site: Optional[str]
    poll_interval: float
    request_timeout: float
    verify_tls: bool
    fetch_concurrency: int
    prune_stale_devices: bool
    listen_host: str
    listen_port: int
    log_level: str


def load_env_file(path: Path) -> None:
    """Populate :mod:`os.environ` with KEY=VALUE pairs from ``path``."""

    if not path.exists():
        return
    for raw_line in path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if line.lower().startswith("export "):
            line = line[7:].strip()
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        os.environ.setdefault(key.strip(), value.strip().strip("'\""))


def load_environment(explicit: Optional[str] = None) -> Optional[Path]:
    """Load the first existing env file among the usual candidates.

    Returns the path that was loaded, if any.
    """
    env_file = explicit or os.environ.get("UNIFI_EXPORTER_ENV_FILE")
    candidates = []
    if env_file:
        candidates.append(Path(env_file))
    candidates.append(Path.cwd() / ".env")
    candidates.append(DEFAULT_ENV_PATH)

    seen: set[Path] = set()
    for candidate in candidates:
        resolved = candidate.resolve()
        if resolved in seen:
            continue
        seen.add(resolved)
        if resolved.exists():
            load_env_file(resolved)
            return resolved
    return None


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


REDACTED = "***redacted***"


def build_config(overrides: Optional[Mapping[str, Any]] = None) -> ExporterConfig:
    """Construct an :class:`ExporterConfig`.

    Values in ``overrides`` (typically parsed command line flags) win over
    environment variables, which win over the built-in defaults. ``None``
    entries in ``overrides`` are treated as "not given".
    """

    explicit = {key: value for key, value in (overrides or {}).items() if value is not None}

    def pick(field: str, fallback: Any) -> Any:
        return explicit[field] if field in explicit else fallback

    site = (pick("site", os.environ.get("UNIFI_SITE")) or "").strip()
    cfg = ExporterConfig(
        controller_url=pick(
            "controller_url", os.environ.get("UNIFI_API_ENDPOINT", DEFAULT_CONTROLLER_URL)
        ),
        api_token=pick("api_token", os.environ.get("UNIFI_API_TOKEN", "")),
        site=site or None,
        poll_interval=float(
            pick("poll_interval", _env_float("UNIFI_POLL_INTERVAL", DEFAULT_POLL_INTERVAL))
        ),
        request_timeout=float(
            pick("request_timeout", _env_float("UNIFI_REQUEST_TIMEOUT", DEFAULT_REQUEST_TIMEOUT))
        ),
        verify_tls=bool(pick("verify_tls", _env_bool("UNIFI_VERIFY_TLS", False))),
        fetch_concurrency=int(pick("fetch_concurrency", _env_int("UNIFI_FETCH_CONCURRENCY", 4))),
        prune_stale_devices=bool(
            pick("prune_stale_devices", _env_bool("UNIFI_PRUNE_STALE_DEVICES", False))
        ),
        listen_host=pick("listen_host", os.environ.get("EXPORTER_HOST", DEFAULT_LISTEN_HOST)),
        listen_port=int(pick("listen_port", _env_int("EXPORTER_PORT", DEFAULT_LISTEN_PORT))),
        log_level=pick("log_level", os.environ.get("UNIFI_LOG_LEVEL", "INFO")),
    )

    if not cfg.api_token:
        raise RuntimeError(
            "UNIFI_API_TOKEN not provided. Please pass --token or set UNIFI_API_TOKEN"
        )
    if not cfg.controller_url:
        raise RuntimeError("UNIFI_API_ENDPOINT must not be empty")
    if cfg.poll_interval <= 0:
        raise RuntimeError("UNIFI_POLL_INTERVAL must be greater than zero")
    if cfg.request_timeout <= 0:
        raise RuntimeError("UNIFI_REQUEST_TIMEOUT must be greater than zero")
    if cfg.fetch_concurrency < 1:
        raise RuntimeError("UNIFI_FETCH_CONCURRENCY must be at least 1")
    if not 1 <= cfg.listen_port <= 65535:
        raise RuntimeError(f"EXPORTER_PORT must be between 1 and 65535, got {cfg.listen_port}")

    return cfg


def redact_config(cfg: ExporterConfig) -> dict:
    """Return a sanitized view of ``cfg`` suitable for logging."""

    return {
        "controller_url": cfg.controller_url,
        "api_token": REDACTED if cfg.api_token else None,
        "site": cfg.site,
        "poll_interval": cfg.poll_interval,
        "request_timeout": cfg.request_timeout,
        "verify_tls": cfg.verify_tls,
        "fetch_concurrency": cfg.fetch_concurrency,
        "prune_stale_devices": cfg.prune_stale_devices,
        "listen_host": cfg.listen_host,
        "listen_port": cfg.listen_port,
        "log_level": cfg.log_level,
    }
