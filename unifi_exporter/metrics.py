"""Mapping of device statistics onto named gauge observations."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from .models import Device, DeviceStatistics

METRIC_NAMESPACE = "unifi_device"
DEVICE_LABEL = "device"


def to_float(value: object, default: Optional[float] = None) -> Optional[float]:
    """Convert a value to float, returning ``default`` for ``None`` or junk."""
    if value is None:
        return default
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default


@dataclass(frozen=True)
class MetricDefinition:
    suffix: str
    documentation: str
    extract: Callable[[DeviceStatistics], object]

    @property
    def name(self) -> str:
        return f"{METRIC_NAMESPACE}_{self.suffix}"


@dataclass(frozen=True)
class MetricObservation:
    metric_name: str
    device_label: str
    value: float


def _uplink_tx(stats: DeviceStatistics) -> object:
    return stats.uplink.tx_bps if stats.uplink else None


def _uplink_rx(stats: DeviceStatistics) -> object:
    return stats.uplink.rx_bps if stats.uplink else None


# Registration order is also the rendering order.
DEVICE_METRICS: Tuple[MetricDefinition, ...] = (
    MetricDefinition("cpu_utilization_pct", "CPU usage (%)", lambda s: s.cpu_pct),
    MetricDefinition("memory_utilization_pct", "Memory usage (%)", lambda s: s.memory_pct),
    MetricDefinition("uptime_seconds", "Uptime in seconds", lambda s: s.uptime_seconds),
    MetricDefinition("load_average_1min", "Load avg over 1min", lambda s: s.load_avg_1m),
    MetricDefinition("load_average_5min", "Load avg over 5min", lambda s: s.load_avg_5m),
    MetricDefinition("load_average_15min", "Load avg over 15min", lambda s: s.load_avg_15m),
    MetricDefinition("uplink_tx_rate_bps", "Uplink TX rate in bps", _uplink_tx),
    MetricDefinition("uplink_rx_rate_bps", "Uplink RX rate in bps", _uplink_rx),
)


def map_device(device: Device, stats: DeviceStatistics) -> List[MetricObservation]:
    """Turn one device's statistics into observations, one per known metric.

    Fields the controller did not report are left out rather than zeroed.
    """
    label = device.label
    observations: List[MetricObservation] = []
    for definition in DEVICE_METRICS:
        value = to_float(definition.extract(stats))
        if value is None:
            continue
        observations.append(MetricObservation(definition.name, label, value))
    return observations


__all__ = [
    "DEVICE_LABEL",
    "DEVICE_METRICS",
    "METRIC_NAMESPACE",
    "MetricDefinition",
    "MetricObservation",
    "map_device",
    "to_float",
]
