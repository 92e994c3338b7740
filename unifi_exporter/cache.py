"""Latest rendered exposition text, shared between the poller and scrapes."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional


@dataclass(frozen=True)
class Snapshot:
    text: str
    as_of: datetime


class SnapshotCache:
    """Single-writer, many-reader holder of the current :class:`Snapshot`.

    Publishing replaces the whole immutable snapshot with one reference
    assignment, so readers see either the previous or the new text and never
    wait on the writer. The lock only serializes writers.
    """

    def __init__(self) -> None:
        self._snapshot: Optional[Snapshot] = None
        self._write_lock = threading.Lock()

    def publish(self, text: str, as_of: Optional[datetime] = None) -> Snapshot:
        snapshot = Snapshot(text=text, as_of=as_of or datetime.now(timezone.utc))
        with self._write_lock:
            self._snapshot = snapshot
        return snapshot

    def get_snapshot(self) -> Optional[Snapshot]:
        return self._snapshot

    def get_snapshot_text(self) -> str:
        snapshot = self._snapshot
        return snapshot.text if snapshot is not None else ""


__all__ = ["Snapshot", "SnapshotCache"]
