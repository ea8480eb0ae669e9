"""
Event surface emitted toward the UI boundary.

Producers call a single ``on_event(name, payload)`` callback; the boundary
(``voxscribe.app`` / ``voxscribe.bridge``) decides how to deliver it.
"""

from dataclasses import asdict, dataclass
from typing import Any, Callable, Optional

from ..utils.logger import get_logger

logger = get_logger(__name__)

RECORDING_STATUS = "recording-status"
TRANSCRIPTION_CHUNK = "transcription-chunk"
MODEL_DOWNLOAD_PROGRESS = "model-download-progress"
MODEL_DOWNLOAD_COMPLETE = "model-download-complete"
MIC_LEVEL = "mic-level"
FILE_TRANSCRIPTION_PROGRESS = "file-transcription-progress"

ALL_EVENTS = (
    RECORDING_STATUS,
    TRANSCRIPTION_CHUNK,
    MODEL_DOWNLOAD_PROGRESS,
    MODEL_DOWNLOAD_COMPLETE,
    MIC_LEVEL,
    FILE_TRANSCRIPTION_PROGRESS,
)

EventCallback = Callable[[str, Any], None]


@dataclass(frozen=True)
class DownloadProgress:
    model_id: str
    downloaded: int
    total: int
    percent: float

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class FileTranscriptionProgress:
    current: int
    total: int
    file_name: str
    status: str  # decoding | transcribing | completed

    def to_dict(self) -> dict:
        return asdict(self)


def emit(on_event: Optional[EventCallback], name: str, payload: Any) -> None:
    """Deliver an event, logging listener failures instead of propagating them."""
    if on_event is None:
        return
    try:
        on_event(name, payload)
    except Exception as e:
        logger.exception(f"Event listener failed for '{name}': {e}")
