"""Tests for the history ledger and session state."""

from __future__ import annotations

from datetime import datetime

import pytest

from wingscan.history import HistoryEntry, HistoryLedger, SessionState
from wingscan.ml.classifier import Prediction

_NOON = datetime(2026, 5, 1, 12, 7)


class TestHistoryLedger:
    def test_record_formats_label_and_time(self) -> None:
        ledger = HistoryLedger()

        entry = ledger.record(Prediction("red admiral, vanessa atalanta", 0.8), _NOON)

        assert entry == HistoryEntry(label="Red Admiral", timestamp="12:07")
        assert str(entry) == "Red Admiral • 12:07"

    def test_most_recent_first_and_bounded(self) -> None:
        ledger = HistoryLedger()
        labels = [f"species {i}" for i in range(8)]

        for minute, label in enumerate(labels):
            ledger.record(Prediction(label, 0.5), _NOON.replace(minute=minute))

        entries = ledger.entries()
        assert len(entries) == 5
        assert [e.label for e in entries] == ["Species 7", "Species 6", "Species 5", "Species 4", "Species 3"]
        assert entries[0].timestamp == "12:07"

    def test_custom_time_format(self) -> None:
        ledger = HistoryLedger(time_format="%I:%M %p")
        entry = ledger.record(Prediction("monarch", 0.5), datetime(2026, 5, 1, 15, 30))
        assert entry.timestamp == "03:30 PM"

    def test_entries_are_a_snapshot(self) -> None:
        ledger = HistoryLedger()
        snapshot = ledger.entries()
        ledger.record(Prediction("monarch", 0.5), _NOON)
        assert snapshot == ()
        assert len(ledger) == 1

    def test_capacity_must_be_positive(self) -> None:
        with pytest.raises(ValueError, match="at least 1"):
            HistoryLedger(capacity=0)


class TestSessionState:
    def test_record_success_counts_and_records(self) -> None:
        state = SessionState()
        state.record_success(Prediction("monarch", 0.9), _NOON)
        assert state.completed_scans == 1
        assert [e.label for e in state.history.entries()] == ["Monarch"]

    def test_record_success_without_prediction_is_noop(self) -> None:
        state = SessionState()
        state.record_success(None, _NOON)
        assert state.completed_scans == 0
        assert len(state.history) == 0
