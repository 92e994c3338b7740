"""Asynchronous background service orchestrating controller polling."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Union

from .cache import SnapshotCache
from .config import ExporterConfig, redact_config
from .metrics import MetricObservation, map_device
from .models import Device, DeviceStatistics
from .registry import MetricsRegistry
from .session import SiteSession
from .unifi_client import AuthExpiredError, UnifiClient, UnifiError

LOGGER = logging.getLogger("unifi_exporter.service")


class PollerState(str, Enum):
    IDLE = "idle"
    DISCOVERING = "discovering"
    FETCHING = "fetching"
    RENDERING = "rendering"
    PUBLISHING = "publishing"
    SLEEPING = "sleeping"
    HANDLING_FAILURE = "handling_failure"


class CycleOutcome(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


@dataclass
class CycleResult:
    timestamp: datetime
    duration: float = 0.0
    outcome: CycleOutcome = CycleOutcome.FAILED
    devices_total: int = 0
    devices_failed: int = 0
    observations: int = 0
    published: bool = False
    reauthenticated: bool = False
    error: Optional[str] = None
    failed_devices: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.outcome is not CycleOutcome.FAILED

    def as_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "duration": self.duration,
            "outcome": self.outcome.value,
            "devices_total": self.devices_total,
            "devices_failed": self.devices_failed,
            "failed_devices": list(self.failed_devices),
            "observations": self.observations,
            "published": self.published,
            "reauthenticated": self.reauthenticated,
            "error": self.error,
        }


StatsOutcome = Union[DeviceStatistics, BaseException]


class ExporterService:
    """Poll the controller on a fixed interval and keep the latest snapshot.

    The only state shared with the HTTP layer is the snapshot cache, read
    through :meth:`get_snapshot_text`.
    """

    def __init__(self, config: ExporterConfig, client: Optional[UnifiClient] = None) -> None:
        self._config = config
        self._client = client or UnifiClient(config)
        self._session = SiteSession(self._client, config.site)
        self._registry = MetricsRegistry()
        self._cache = SnapshotCache()

        self._cycle_lock = asyncio.Lock()
        self._background_task: Optional[asyncio.Task[None]] = None
        self._stop_event = asyncio.Event()

        self._state = PollerState.IDLE
        self._last_result: Optional[CycleResult] = None
        self._consecutive_failures = 0

    # ------------------------------------------------------------------
    def bootstrap(self) -> None:
        """Validate the credential and discover the site.

        Blocking. Any :class:`UnifiError` propagates: at process start there
        is nothing useful to serve without a site.
        """
        LOGGER.info("Starting exporter with config %s", redact_config(self._config))
        LOGGER.info("Authenticating with controller at %s", self._client.base_url)
        self._session.check_liveness()
        self._session.ensure_ready()
        LOGGER.info("Authenticated")

    async def start(self) -> None:
        if self._background_task and not self._background_task.done():
            return
        self._stop_event.clear()
        if not self._session.is_ready:
            await asyncio.to_thread(self.bootstrap)
        self._background_task = asyncio.create_task(self._run_loop(), name="unifi-poller")

    async def stop(self) -> None:
        if self._background_task is None:
            await asyncio.to_thread(self._client.close)
            return
        self._stop_event.set()
        self._background_task.cancel()
        try:
            await self._background_task
        except asyncio.CancelledError:  # pragma: no cover - expected during shutdown
            pass
        finally:
            self._background_task = None
            self._stop_event = asyncio.Event()
            await asyncio.to_thread(self._client.close)

    # ------------------------------------------------------------------
    def get_snapshot_text(self) -> str:
        return self._cache.get_snapshot_text()

    def get_latest_result(self) -> Optional[CycleResult]:
        return self._last_result

    @property
    def state(self) -> PollerState:
        return self._state

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    def is_running(self) -> bool:
        return self._background_task is not None and not self._background_task.done()

    # ------------------------------------------------------------------
    async def run_cycle(self) -> CycleResult:
        """Run one discover/fetch/render/publish cycle.

        Cycles never overlap. Controller failures are recorded on the
        returned result; only unexpected exceptions propagate.
        """
        async with self._cycle_lock:
            start = time.monotonic()
            result = CycleResult(timestamp=datetime.now(timezone.utc))
            try:
                await self._run_cycle(result)
            finally:
                result.duration = time.monotonic() - start
                self._update_state(result)
            return result

    async def _run_cycle(self, result: CycleResult) -> None:
        self._state = PollerState.DISCOVERING
        try:
            await asyncio.to_thread(self._session.ensure_ready)
            devices = await self._discover_devices(result)
        except UnifiError as exc:
            result.error = str(exc)
            LOGGER.warning("Cycle aborted during discovery: %s", exc)
            return

        result.devices_total = len(devices)
        LOGGER.info("Discovered %d device(s)", len(devices))
        for device in devices:
            LOGGER.debug("- %s (%s) [%s]", device.label, device.model, device.state)

        self._state = PollerState.FETCHING
        outcomes = await self._fetch_all(devices)

        self._state = PollerState.RENDERING
        observations = self._map_outcomes(devices, outcomes, result)
        result.observations = len(observations)
        if not observations:
            result.error = "no device statistics collected"
            LOGGER.warning("No observations collected this cycle; keeping previous snapshot")
            return

        if self._config.prune_stale_devices:
            self._registry.prune(device.label for device in devices)
        # Listed devices only show what they reported this cycle.
        self._registry.forget(device.label for device in devices)
        self._registry.record_all(observations)
        text = self._registry.render()

        self._state = PollerState.PUBLISHING
        self._cache.publish(text, as_of=result.timestamp)
        result.published = True
        result.outcome = CycleOutcome.PARTIAL if result.devices_failed else CycleOutcome.SUCCESS
        LOGGER.info(
            "Metrics cache updated (%d series, %d/%d devices)",
            len(observations),
            result.devices_total - result.devices_failed,
            result.devices_total,
        )

    async def _discover_devices(self, result: CycleResult) -> List[Device]:
        try:
            return await asyncio.to_thread(self._session.list_devices)
        except AuthExpiredError as exc:
            self._state = PollerState.HANDLING_FAILURE
            result.reauthenticated = True
            LOGGER.warning("Session expired (%s), re-authenticating...", exc)
            await self._revalidate()
            self._state = PollerState.DISCOVERING
            return await asyncio.to_thread(self._session.list_devices)

    async def _revalidate(self) -> None:
        """Probe liveness once; on failure rediscover the site from scratch."""
        try:
            await asyncio.to_thread(self._session.check_liveness)
        except UnifiError as exc:
            LOGGER.warning("Liveness check failed (%s); resetting session", exc)
            self._session.reset()
            await asyncio.to_thread(self._session.ensure_ready)
        else:
            LOGGER.info("Liveness check passed; retrying device list")

    async def _fetch_all(self, devices: Sequence[Device]) -> List[StatsOutcome]:
        semaphore = asyncio.Semaphore(self._config.fetch_concurrency)

        async def fetch(device: Device) -> DeviceStatistics:
            async with semaphore:
                return await asyncio.to_thread(self._session.fetch_statistics, device.id)

        return await asyncio.gather(*(fetch(device) for device in devices), return_exceptions=True)

    def _map_outcomes(
        self,
        devices: Sequence[Device],
        outcomes: Sequence[StatsOutcome],
        result: CycleResult,
    ) -> List[MetricObservation]:
        observations: List[MetricObservation] = []
        for device, outcome in zip(devices, outcomes):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, UnifiError):
                LOGGER.warning("Skipping device %s: %s", device.label, outcome)
            elif isinstance(outcome, BaseException):
                LOGGER.error(
                    "Skipping device %s after unexpected error",
                    device.label,
                    exc_info=outcome,
                )
            else:
                observations.extend(map_device(device, outcome))
                continue
            result.devices_failed += 1
            result.failed_devices.append(device.label)
        return observations

    def _update_state(self, result: CycleResult) -> None:
        self._last_result = result
        if result.success:
            self._consecutive_failures = 0
        else:
            self._consecutive_failures += 1
            LOGGER.warning(
                "Poll cycle failed (%d consecutive): %s",
                self._consecutive_failures,
                result.error,
            )

    async def _run_loop(self) -> None:
        LOGGER.info("Starting background polling loop (interval=%ss)", self._config.poll_interval)
        try:
            while not self._stop_event.is_set():
                self._state = PollerState.IDLE
                try:
                    await self.run_cycle()
                except Exception as exc:
                    LOGGER.exception("Background poll failed: %s", exc)
                self._state = PollerState.SLEEPING
                try:
                    await asyncio.wait_for(
                        self._stop_event.wait(), timeout=self._config.poll_interval
                    )
                except asyncio.TimeoutError:
                    continue
        finally:
            self._state = PollerState.IDLE
            LOGGER.info("Background polling loop stopped")


__all__ = [
    "CycleOutcome",
    "CycleResult",
    "ExporterService",
    "PollerState",
]
