"""FastAPI application exposing the latest metrics snapshot."""

from __future__ import annotations

import logging
from typing import Dict, Optional

from fastapi import FastAPI, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST

from . import __version__
from .config import ExporterConfig, build_config, load_environment
from .service import ExporterService

LOGGER = logging.getLogger("unifi_exporter.app")

METRICS_PATH = "/metrics"


def _configure_logging(level_name: str) -> None:
    level = getattr(logging, level_name.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def create_app(
    config: Optional[ExporterConfig] = None,
    service: Optional[ExporterService] = None,
) -> FastAPI:
    """Build the app.

    With no arguments (``uvicorn --factory``) configuration is read from the
    environment at startup. A failing first discovery aborts startup, so the
    port is never bound.
    """

    async def _lifespan(app: FastAPI):
        cfg = config
        svc = service
        if cfg is None:
            load_environment()
            cfg = build_config()
            _configure_logging(cfg.log_level)
        if svc is None:
            svc = ExporterService(cfg)
        await svc.start()
        app.state.config = cfg
        app.state.service = svc
        LOGGER.info("Exposing unifi metrics on %s", METRICS_PATH)
        try:
            yield
        finally:
            LOGGER.info("Shutting down exporter")
            await svc.stop()

    app = FastAPI(title="UniFi Exporter", version=__version__, lifespan=_lifespan)

    @app.get("/", response_model=Dict[str, str])
    async def root() -> Dict[str, str]:
        return {"service": "unifi-exporter", "status": "ok"}

    @app.get(METRICS_PATH)
    async def metrics(request: Request) -> Response:
        svc: Optional[ExporterService] = getattr(request.app.state, "service", None)
        body = svc.get_snapshot_text() if svc is not None else ""
        return Response(content=body, media_type=CONTENT_TYPE_LATEST)

    return app


__all__ = ["create_app"]
