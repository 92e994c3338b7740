"""Site session: the discovered site identifier plus site-scoped calls."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import List, Optional, Union

from .models import Device, DeviceStatistics
from .unifi_client import SessionNotReadyError, UnifiClient

LOGGER = logging.getLogger("unifi_exporter.session")


@dataclass(frozen=True)
class Uninitialized:
    """No site has been discovered yet (or the session was reset)."""


@dataclass(frozen=True)
class Ready:
    site_id: str


SessionState = Union[Uninitialized, Ready]


class SiteSession:
    """Resolve the site once and scope device requests to it.

    The site id is discovered lazily by :meth:`ensure_ready` and cached until
    :meth:`reset`. Site-scoped requests made while uninitialized raise
    :class:`SessionNotReadyError` instead of hitting the controller.
    """

    def __init__(self, client: UnifiClient, site_selector: Optional[str] = None) -> None:
        self._client = client
        self._site_selector = site_selector
        self._state: SessionState = Uninitialized()
        self._lock = threading.Lock()

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return isinstance(self._state, Ready)

    @property
    def site_id(self) -> str:
        state = self._state
        if not isinstance(state, Ready):
            raise SessionNotReadyError("Site has not been discovered yet")
        return state.site_id

    def ensure_ready(self) -> str:
        """Discover the site id if needed and return it."""
        with self._lock:
            state = self._state
            if isinstance(state, Ready):
                return state.site_id
            site_id = self._client.resolve_site_id(self._site_selector)
            self._state = Ready(site_id)
            LOGGER.info("Using site %s", site_id)
            return site_id

    def reset(self) -> None:
        """Forget the discovered site so the next :meth:`ensure_ready` re-discovers it."""
        with self._lock:
            if isinstance(self._state, Ready):
                LOGGER.info("Resetting session (site %s)", self._state.site_id)
            self._state = Uninitialized()

    # ------------------------------------------------------------------
    def check_liveness(self) -> None:
        self._client.check_liveness()

    def list_devices(self) -> List[Device]:
        return self._client.list_devices(self.site_id)

    def fetch_statistics(self, device_id: str) -> DeviceStatistics:
        return self._client.fetch_statistics(self.site_id, device_id)


__all__ = ["Ready", "SessionState", "SiteSession", "Uninitialized"]
