"""
Qt delivery of core events.

Core events are raised on capture, decode and download threads. Re-emitting
them as signals lets a Qt front end receive them on its own thread through
queued connections.
"""

from typing import Any

from PySide6.QtCore import QObject, Signal

from .core import events
from .utils.logger import get_logger

logger = get_logger(__name__)


class QtEventBridge(QObject):
    recording_status = Signal(str)
    transcription_chunk = Signal(object)  # StreamingChunk
    model_download_progress = Signal(object)  # DownloadProgress
    model_download_complete = Signal(str)
    mic_level = Signal(list)
    file_transcription_progress = Signal(object)  # FileTranscriptionProgress

    def __init__(self, parent=None):
        super().__init__(parent)
        self._signals = {
            events.RECORDING_STATUS: self.recording_status,
            events.TRANSCRIPTION_CHUNK: self.transcription_chunk,
            events.MODEL_DOWNLOAD_PROGRESS: self.model_download_progress,
            events.MODEL_DOWNLOAD_COMPLETE: self.model_download_complete,
            events.MIC_LEVEL: self.mic_level,
            events.FILE_TRANSCRIPTION_PROGRESS: self.file_transcription_progress,
        }

    def emit(self, name: str, payload: Any) -> None:
        """Event callback suitable for ``DictationApp(on_event=bridge.emit)``."""
        signal = self._signals.get(name)
        if signal is None:
            logger.warning(f"Unknown event '{name}' dropped")
            return
        signal.emit(payload)
