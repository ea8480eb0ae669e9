"""Bounded, newest-first store of finalised transcriptions."""

import json
import threading
from collections import deque
from pathlib import Path
from typing import Deque, List, Optional

from ...utils.logger import get_logger
from ..types import TranscriptionResult
from .config import MAX_HISTORY_ENTRIES

logger = get_logger(__name__)


class HistoryStore:
    def __init__(
        self, capacity: int = MAX_HISTORY_ENTRIES, path: Optional[Path] = None
    ):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self.path = Path(path) if path is not None else None
        self._lock = threading.Lock()
        self._entries: Deque[TranscriptionResult] = deque(maxlen=capacity)

        if self.path is not None:
            self._load()

    def append(self, result: TranscriptionResult) -> None:
        with self._lock:
            self._entries.appendleft(result)
            self._save()

    def list(self) -> List[TranscriptionResult]:
        with self._lock:
            return list(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._save()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _load(self) -> None:
        if not self.path.exists():
            return

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            records = [TranscriptionResult.from_dict(item) for item in data]
        except (json.JSONDecodeError, OSError, TypeError, KeyError, ValueError) as e:
            logger.warning(f"Could not load history: {e}. Starting fresh.")
            return

        # File is stored newest first; deque keeps the first `capacity` entries.
        self._entries.extend(records[: self.capacity])

    def _save(self) -> None:
        if self.path is None:
            return

        data = [record.to_dict() for record in self._entries]
        try:
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
        except OSError as e:
            logger.error(f"Could not save history: {e}")
