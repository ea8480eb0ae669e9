import time
from dataclasses import asdict, dataclass, field
from typing import Optional


@dataclass(frozen=True)
class TranscriptionResult:
    """
    Finalized output of one completed session or one transcribed file.

    ``confidence`` is engine-native: values produced by different engines are
    not comparable and are never normalized.
    """

    text: str
    confidence: float
    duration_seconds: float
    processing_time_ms: int
    detected_language: Optional[str] = None
    timestamp: float = field(default_factory=time.time)
    model_used: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "TranscriptionResult":
        return cls(
            text=data["text"],
            confidence=float(data.get("confidence", 0.0)),
            duration_seconds=float(data.get("duration_seconds", 0.0)),
            processing_time_ms=int(data.get("processing_time_ms", 0)),
            detected_language=data.get("detected_language"),
            timestamp=float(data.get("timestamp", 0.0)),
            model_used=data.get("model_used"),
        )


@dataclass(frozen=True)
class StreamingChunk:
    # Increment to append when is_final is False, full replacement otherwise.
    text: str
    is_final: bool
    duration_seconds: float
    confidence: Optional[float] = None
    detected_language: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "text": self.text,
            "is_final": self.is_final,
            "duration_seconds": self.duration_seconds,
        }


@dataclass(frozen=True)
class FileTranscriptionResult:
    file_path: str
    file_name: str
    transcription: Optional[TranscriptionResult] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.transcription is not None

    def to_dict(self) -> dict:
        return {
            "file_path": self.file_path,
            "file_name": self.file_name,
            "transcription": (
                self.transcription.to_dict() if self.transcription else None
            ),
            "error": self.error,
        }
