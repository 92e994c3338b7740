"""Typed views of the UniFi integration API payloads."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ApiModel(BaseModel):
    """Base for wire payloads: camelCase aliases, unknown fields ignored."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)


class Site(ApiModel):
    id: Optional[str] = None
    internal_reference: Optional[str] = Field(default=None, alias="internalReference")
    name: Optional[str] = None

    def matches(self, selector: str) -> bool:
        return selector in (self.id, self.internal_reference, self.name)


class SitePage(ApiModel):
    offset: Optional[int] = None
    limit: Optional[int] = None
    count: Optional[int] = None
    total_count: Optional[int] = Field(default=None, alias="totalCount")
    data: List[Site] = Field(default_factory=list)


class Device(ApiModel):
    id: str
    name: Optional[str] = None
    model: Optional[str] = None
    state: Optional[str] = None
    ip_address: Optional[str] = Field(default=None, alias="ipAddress")
    mac_address: Optional[str] = Field(default=None, alias="macAddress")
    features: Optional[List[str]] = None
    interfaces: Optional[List[str]] = None

    @property
    def label(self) -> str:
        """Value used for the ``device`` metric label."""
        return self.name or self.id


class DevicePage(ApiModel):
    offset: Optional[int] = None
    limit: Optional[int] = None
    count: Optional[int] = None
    total_count: Optional[int] = Field(default=None, alias="totalCount")
    data: List[Device] = Field(default_factory=list)


class Uplink(ApiModel):
    tx_bps: Optional[int] = Field(default=None, alias="txRateBps")
    rx_bps: Optional[int] = Field(default=None, alias="rxRateBps")


class RadioStatistics(ApiModel):
    frequency_ghz: Optional[float] = Field(default=None, alias="frequencyGHz")
    tx_retries_pct: Optional[float] = Field(default=None, alias="txRetriesPct")


class InterfaceStatistics(ApiModel):
    radios: Optional[List[RadioStatistics]] = None


class DeviceStatistics(ApiModel):
    """Latest statistics of a single adopted device.

    Every field is optional: access points, switches and gateways report
    different subsets, and a device that is offline may report nothing.
    """

    uptime_seconds: Optional[int] = Field(default=None, alias="uptimeSec")
    last_heartbeat: Optional[datetime] = Field(default=None, alias="lastHeartbeatAt")
    next_heartbeat: Optional[datetime] = Field(default=None, alias="nextHeartbeatAt")
    load_avg_1m: Optional[float] = Field(default=None, alias="loadAverage1Min")
    load_avg_5m: Optional[float] = Field(default=None, alias="loadAverage5Min")
    load_avg_15m: Optional[float] = Field(default=None, alias="loadAverage15Min")
    cpu_pct: Optional[float] = Field(default=None, alias="cpuUtilizationPct")
    memory_pct: Optional[float] = Field(default=None, alias="memoryUtilizationPct")
    uplink: Optional[Uplink] = None
    interfaces: Optional[InterfaceStatistics] = None


__all__ = [
    "Device",
    "DevicePage",
    "DeviceStatistics",
    "InterfaceStatistics",
    "RadioStatistics",
    "Site",
    "SitePage",
    "Uplink",
]
