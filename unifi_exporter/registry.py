"""Gauge registry and exposition-format rendering."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Sequence, Set

from prometheus_client import CollectorRegistry, Gauge, generate_latest

from .metrics import DEVICE_LABEL, DEVICE_METRICS, MetricDefinition, MetricObservation

LOGGER = logging.getLogger("unifi_exporter.registry")


class MetricsRegistry:
    """Hold one gauge per metric name, labelled by device.

    Gauges are registered once when the registry is built; recording only
    overwrites values. :meth:`forget` clears a device before its fresh
    values are recorded. Series of devices that stop being listed keep
    their last value unless :meth:`prune` is called.
    """

    def __init__(self, definitions: Sequence[MetricDefinition] = DEVICE_METRICS) -> None:
        self._registry = CollectorRegistry(auto_describe=True)
        self._gauges: Dict[str, Gauge] = {}
        self._labels: Set[str] = set()
        for definition in definitions:
            self._gauges[definition.name] = Gauge(
                definition.name,
                definition.documentation,
                [DEVICE_LABEL],
                registry=self._registry,
            )

    @property
    def metric_names(self) -> List[str]:
        return list(self._gauges)

    @property
    def device_labels(self) -> Set[str]:
        return set(self._labels)

    def record_all(self, observations: Iterable[MetricObservation]) -> int:
        """Upsert every observation; returns how many values were set."""
        recorded = 0
        for observation in observations:
            gauge = self._gauges.get(observation.metric_name)
            if gauge is None:
                raise ValueError(f"Unknown metric {observation.metric_name!r}")
            gauge.labels(**{DEVICE_LABEL: observation.device_label}).set(observation.value)
            self._labels.add(observation.device_label)
            recorded += 1
        return recorded

    def forget(self, labels: Iterable[str]) -> None:
        """Remove every series of the given device labels."""
        for label in set(labels) & self._labels:
            for gauge in self._gauges.values():
                try:
                    gauge.remove(label)
                except KeyError:
                    # The device never reported this particular metric.
                    continue
            self._labels.discard(label)

    def prune(self, keep: Iterable[str]) -> List[str]:
        """Drop every series whose device label is not in ``keep``."""
        removed = sorted(self._labels - set(keep))
        self.forget(removed)
        if removed:
            LOGGER.info("Removed stale series for %d device(s): %s", len(removed), ", ".join(removed))
        return removed

    def render(self) -> str:
        return generate_latest(self._registry).decode("utf-8")


__all__ = ["MetricsRegistry"]
