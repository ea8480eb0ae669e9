import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

import numpy as np


class SessionStatus(Enum):
    IDLE = "idle"
    RECORDING = "recording"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def is_active(self) -> bool:
        return self in (SessionStatus.RECORDING, SessionStatus.PROCESSING)


@dataclass
class SessionState:
    """Mutable state of the current session. Only the controller writes it."""

    status: SessionStatus = SessionStatus.IDLE
    audio: Optional[np.ndarray] = None
    sample_rate: int = 0
    text: str = ""
    started_at: Optional[float] = None
    error: Optional[BaseException] = None

    @property
    def error_message(self) -> Optional[str]:
        return str(self.error) if self.error is not None else None

    def snapshot(self) -> "SessionSnapshot":
        audio_seconds = 0.0
        if self.audio is not None and self.sample_rate > 0:
            audio_seconds = len(self.audio) / float(self.sample_rate)
        return SessionSnapshot(
            status=self.status,
            text=self.text,
            started_at=self.started_at,
            audio_seconds=audio_seconds,
            error_message=self.error_message,
        )


@dataclass(frozen=True)
class SessionSnapshot:
    status: SessionStatus
    text: str = ""
    started_at: Optional[float] = None
    audio_seconds: float = 0.0
    error_message: Optional[str] = None
    taken_at: float = field(default_factory=time.time)
