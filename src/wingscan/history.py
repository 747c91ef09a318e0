"""Bounded most-recent-first history of classification results."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from wingscan.ranking import format_label

if TYPE_CHECKING:
    from datetime import datetime

    from wingscan.ml.classifier import Prediction

logger = logging.getLogger(__name__)

HISTORY_CAPACITY: int = 5


@dataclass(frozen=True)
class HistoryEntry:
    """Top label of one completed classification and when it was captured."""

    label: str
    timestamp: str

    def __str__(self) -> str:
        return f"{self.label} • {self.timestamp}"


class HistoryLedger:
    """Most-recent-first log that evicts from the tail past ``capacity``."""

    def __init__(self, capacity: int = HISTORY_CAPACITY, time_format: str = "%H:%M") -> None:
        if capacity < 1:
            raise ValueError("History capacity must be at least 1")
        self._capacity = capacity
        self._time_format = time_format
        self._entries: deque[HistoryEntry] = deque()

    @property
    def capacity(self) -> int:
        return self._capacity

    def record(self, best: Prediction, capture_time: datetime) -> HistoryEntry:
        """Prepend an entry for ``best`` and drop the oldest beyond capacity."""
        entry = HistoryEntry(
            label=format_label(best.label),
            timestamp=capture_time.strftime(self._time_format),
        )
        self._entries.appendleft(entry)
        while len(self._entries) > self._capacity:
            evicted = self._entries.pop()
            logger.debug("Evicted history entry %s", evicted)
        return entry

    def entries(self) -> tuple[HistoryEntry, ...]:
        """Return a read-only snapshot, newest first."""
        return tuple(self._entries)

    def __len__(self) -> int:
        return len(self._entries)


@dataclass
class SessionState:
    """Process-scoped state owned by one orchestrator: history and scan counter."""

    history: HistoryLedger = field(default_factory=HistoryLedger)
    completed_scans: int = 0

    def record_success(self, best: Prediction | None, capture_time: datetime) -> None:
        """Account for one completed classification with a non-empty result."""
        if best is None:
            return
        self.history.record(best, capture_time)
        self.completed_scans += 1
