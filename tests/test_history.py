"""Tests for the bounded transcription history."""

import json
import threading

import pytest

from voxscribe.core.settings.history import HistoryStore
from voxscribe.core.types import TranscriptionResult


def make_result(text, timestamp=1.0):
    return TranscriptionResult(
        text=text,
        confidence=0.9,
        duration_seconds=1.0,
        processing_time_ms=10,
        timestamp=timestamp,
        model_used="Whisper Tiny",
    )


class TestHistoryStore:
    """Tests for in-memory history behaviour."""

    def test_newest_first(self):
        """Test entries are listed newest first."""
        store = HistoryStore()
        store.append(make_result("first"))
        store.append(make_result("second"))

        assert [r.text for r in store.list()] == ["second", "first"]

    def test_capacity_evicts_oldest(self):
        """Test the oldest entry is dropped once capacity is reached."""
        store = HistoryStore(capacity=3)
        for i in range(5):
            store.append(make_result(f"entry {i}"))

        assert [r.text for r in store.list()] == ["entry 4", "entry 3", "entry 2"]
        assert len(store) == 3

    def test_never_exceeds_default_capacity(self):
        """Test the default capacity caps the list at 50."""
        store = HistoryStore()
        for i in range(120):
            store.append(make_result(str(i)))

        assert len(store.list()) == 50

    def test_list_returns_copy(self):
        """Test mutating the returned list leaves the store intact."""
        store = HistoryStore()
        store.append(make_result("kept"))

        snapshot = store.list()
        snapshot.clear()

        assert len(store.list()) == 1

    def test_clear(self):
        """Test clear removes every entry."""
        store = HistoryStore()
        store.append(make_result("gone"))
        store.clear()

        assert store.list() == []

    def test_invalid_capacity(self):
        """Test a capacity below one is rejected."""
        with pytest.raises(ValueError):
            HistoryStore(capacity=0)

    def test_concurrent_appends(self):
        """Test appends from several threads are all kept."""
        store = HistoryStore(capacity=1000)

        def worker(n):
            for i in range(100):
                store.append(make_result(f"{n}-{i}"))

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(store) == 400


class TestHistoryPersistence:
    """Tests for the JSON history file."""

    def test_persists_and_reloads(self, tmp_path):
        """Test a new store reads back entries in order."""
        path = tmp_path / "history.json"
        store = HistoryStore(path=path)
        store.append(make_result("older", timestamp=1.0))
        store.append(make_result("newer", timestamp=2.0))

        reloaded = HistoryStore(path=path)

        assert [r.text for r in reloaded.list()] == ["newer", "older"]
        assert reloaded.list()[0].timestamp == 2.0

    def test_reload_respects_capacity(self, tmp_path):
        """Test reloading keeps only the newest entries that fit."""
        path = tmp_path / "history.json"
        store = HistoryStore(path=path)
        for i in range(10):
            store.append(make_result(str(i)))

        reloaded = HistoryStore(capacity=4, path=path)

        assert [r.text for r in reloaded.list()] == ["9", "8", "7", "6"]

    def test_clear_rewrites_file(self, tmp_path):
        """Test clear writes an empty list to disk."""
        path = tmp_path / "history.json"
        store = HistoryStore(path=path)
        store.append(make_result("x"))
        store.clear()

        assert json.loads(path.read_text()) == []

    def test_corrupt_file_starts_fresh(self, tmp_path):
        """Test an unreadable file yields an empty history."""
        path = tmp_path / "history.json"
        path.write_text("{not json")

        store = HistoryStore(path=path)

        assert store.list() == []
