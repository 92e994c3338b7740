"""HTTP client for the UniFi Network integration API."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Type, TypeVar
from urllib.parse import quote

import requests
import urllib3
from pydantic import BaseModel, ValidationError
from requests import exceptions as requests_exceptions
from urllib3 import exceptions as urllib3_exceptions

from .config import ExporterConfig
from .models import Device, DevicePage, DeviceStatistics, Site, SitePage

LOGGER = logging.getLogger("unifi_exporter.unifi_client")

API_PATH_INFO = "/proxy/network/integration/v1/info"
API_PATH_SITES = "/proxy/network/integration/v1/sites"
API_PATH_DEVICES = "/proxy/network/integration/v1/sites/{site_id}/devices"
API_PATH_STATISTICS = (
    "/proxy/network/integration/v1/sites/{site_id}/devices/{device_id}/statistics/latest"
)

API_KEY_HEADER = "X-API-KEY"
AUTH_STATUSES = (401, 403)
PAGE_SIZE = 200
MAX_PAGES = 100
MAX_BODY_CHARS = 512

ModelT = TypeVar("ModelT", bound=BaseModel)


class UnifiError(RuntimeError):
    """Base class for failures talking to the controller."""


class TransportError(UnifiError):
    """Raised when the controller cannot be reached or does not answer in time."""


class AuthExpiredError(UnifiError):
    """Raised when the controller rejects the API key (HTTP 401/403)."""

    def __init__(self, status: int, path: str) -> None:
        super().__init__(f"Controller rejected credentials for {path} (status {status})")
        self.status = status
        self.path = path


class RemoteError(UnifiError):
    """Raised for any other non-2xx answer from the controller."""

    def __init__(self, status: int, body: str, path: str = "") -> None:
        self.status = status
        self.body = body
        self.path = path
        super().__init__(f"Controller returned {status} for {path}: {body[:MAX_BODY_CHARS]}")


class MalformedResponseError(UnifiError):
    """Raised when a response body is not the JSON document we expect."""


class NoSiteFoundError(MalformedResponseError):
    """Raised when site discovery yields no usable site identifier."""


class SessionNotReadyError(UnifiError):
    """Raised when a site-scoped request is attempted before discovery."""


def _check_exception_chain(exc: BaseException, condition: Callable[[BaseException], bool]) -> bool:
    """Walk the exception chain and check if any exception matches the condition."""
    if condition(exc):
        return True

    cause = getattr(exc, "__cause__", None)
    if cause and cause is not exc and _check_exception_chain(cause, condition):
        return True

    context = getattr(exc, "__context__", None)
    if context and context is not exc and _check_exception_chain(context, condition):
        return True

    return False


def _is_connection_error(exc: BaseException) -> bool:
    """Return ``True`` if ``exc`` (or its causes) represent a network failure."""
    def is_network_exception(e: BaseException) -> bool:
        return isinstance(
            e,
            (
                requests_exceptions.RequestException,
                urllib3_exceptions.HTTPError,
                ConnectionError,
                TimeoutError,
            ),
        )

    return _check_exception_chain(exc, is_network_exception)


def _is_auth_status(status_code: int) -> bool:
    return status_code in AUTH_STATUSES


def _parse(model: Type[ModelT], payload: Any, what: str) -> ModelT:
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise MalformedResponseError(f"Unexpected {what} payload: {exc}") from exc


class UnifiClient:
    """Thin wrapper around :mod:`requests` for the three controller endpoints.

    Every call is a single GET; ``request_timeout`` bounds the connect and
    each read separately, not the total. Nothing is retried here.
    Failures surface as one of :class:`TransportError`,
    :class:`AuthExpiredError`, :class:`RemoteError` or
    :class:`MalformedResponseError` so the caller can decide what to do.
    """

    def __init__(self, config: ExporterConfig, session: Optional[requests.Session] = None) -> None:
        self._config = config
        self._base_url = config.controller_url.rstrip("/")
        self._session = session or requests.Session()
        self._session.headers.update(
            {
                API_KEY_HEADER: config.api_token,
                "Accept": "application/json",
            }
        )
        self._session.verify = config.verify_tls
        if not config.verify_tls:
            # On-premises controllers ship self-signed certificates.
            urllib3.disable_warnings(urllib3_exceptions.InsecureRequestWarning)
            LOGGER.warning(
                "TLS certificate verification disabled for %s", self._base_url
            )

    @property
    def base_url(self) -> str:
        return self._base_url

    def close(self) -> None:
        """Close the underlying HTTP session."""
        try:
            self._session.close()
        except Exception as exc:  # pragma: no cover - best effort cleanup
            LOGGER.debug("Failed to close HTTP session: %s", exc)

    # ------------------------------------------------------------------
    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> requests.Response:
        url = f"{self._base_url}{path}"
        LOGGER.debug("GET %s params=%s", url, params)
        try:
            response = self._session.get(
                url,
                params=params,
                timeout=self._config.request_timeout,
            )
        except Exception as exc:
            if _is_connection_error(exc):
                raise TransportError(
                    f"Unable to reach controller at {self._base_url} ({path}): {exc}"
                ) from exc
            raise

        status = response.status_code
        if _is_auth_status(status):
            raise AuthExpiredError(status, path)
        if not 200 <= status < 300:
            raise RemoteError(status, (response.text or "").strip(), path)
        return response

    def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        response = self._get(path, params=params)
        try:
            return response.json()
        except ValueError as exc:
            raise MalformedResponseError(f"Response from {path} is not valid JSON") from exc

    # ------------------------------------------------------------------
    def check_liveness(self) -> None:
        """Probe the info endpoint; returns only if the API key is accepted."""
        self._get(API_PATH_INFO)

    def list_sites(self) -> List[Site]:
        payload = self._get_json(API_PATH_SITES)
        return _parse(SitePage, payload, "site list").data

    def resolve_site_id(self, selector: Optional[str] = None) -> str:
        """Return the identifier of the site devices are listed under.

        Without ``selector`` the first listed site wins, otherwise the site
        whose id, internal reference or name equals ``selector``.
        """
        sites = self.list_sites()
        if not sites:
            raise NoSiteFoundError("Controller returned no sites")
        if selector:
            site = next((s for s in sites if s.matches(selector)), None)
            if site is None:
                raise NoSiteFoundError(f"Site {selector!r} not found on controller")
        else:
            site = sites[0]
        if not site.id:
            raise NoSiteFoundError("Site entry has no 'id' field")
        return site.id

    def list_devices(self, site_id: str) -> List[Device]:
        """Return every adopted device of ``site_id``, following pagination."""
        path = API_PATH_DEVICES.format(site_id=quote(site_id, safe=""))
        devices: List[Device] = []
        offset = 0
        for _ in range(MAX_PAGES):
            payload = self._get_json(path, params={"offset": offset, "limit": PAGE_SIZE})
            page = _parse(DevicePage, payload, "device list")
            devices.extend(page.data)
            offset += len(page.data)
            if not page.data:
                break
            if page.total_count is not None:
                if offset >= page.total_count:
                    break
            elif len(page.data) < (page.limit or PAGE_SIZE):
                break
        else:
            LOGGER.warning("Stopped device pagination after %d pages", MAX_PAGES)
        return devices

    def fetch_statistics(self, site_id: str, device_id: str) -> DeviceStatistics:
        path = API_PATH_STATISTICS.format(
            site_id=quote(site_id, safe=""),
            device_id=quote(device_id, safe=""),
        )
        payload = self._get_json(path)
        return _parse(DeviceStatistics, payload, "device statistics")


__all__ = [
    "AuthExpiredError",
    "MalformedResponseError",
    "NoSiteFoundError",
    "RemoteError",
    "SessionNotReadyError",
    "TransportError",
    "UnifiClient",
    "UnifiError",
]
