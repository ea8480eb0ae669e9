"""
Sequential transcription of pre-recorded audio files.

Files are decoded one after another against a single engine lease so the
loaded model is never contended. A failing file is reported in its own
result and never aborts the rest of the batch.
"""

import os
from typing import List, Optional, Sequence

from ...utils.logger import get_logger
from ..audio.audio_processor import SUPPORTED_FORMATS, is_supported, load_audio_file
from ..events import (
    FILE_TRANSCRIPTION_PROGRESS,
    EventCallback,
    FileTranscriptionProgress,
    emit,
)
from ..settings.history import HistoryStore
from ..types import FileTranscriptionResult
from .models.registry import ModelRegistry

logger = get_logger(__name__)


class BatchTranscriber:
    def __init__(
        self,
        registry: ModelRegistry,
        on_event: Optional[EventCallback] = None,
        history: Optional[HistoryStore] = None,
    ):
        self.registry = registry
        self.on_event = on_event
        self.history = history

    @staticmethod
    def supported_formats() -> List[str]:
        return list(SUPPORTED_FORMATS)

    def _progress(self, current: int, total: int, file_name: str, status: str) -> None:
        emit(
            self.on_event,
            FILE_TRANSCRIPTION_PROGRESS,
            FileTranscriptionProgress(current, total, file_name, status),
        )

    def transcribe_files(
        self,
        paths: Sequence[str],
        language_hint: Optional[str] = None,
        dictionary_hints: Sequence[str] = (),
    ) -> List[FileTranscriptionResult]:
        total = len(paths)
        results: List[FileTranscriptionResult] = []
        if total == 0:
            return results

        model_id, engine = self.registry.acquire_engine()
        logger.info(f"Transcribing {total} file(s) with {model_id}")

        try:
            for index, path in enumerate(paths, start=1):
                file_name = os.path.basename(path) or "unknown"
                self._progress(index, total, file_name, "decoding")

                if not is_supported(path):
                    results.append(
                        FileTranscriptionResult(
                            path, file_name, error="Unsupported audio format"
                        )
                    )
                    continue

                try:
                    audio, sample_rate = load_audio_file(path)
                except Exception as e:
                    logger.warning(f"Could not load {file_name}: {e}")
                    results.append(FileTranscriptionResult(path, file_name, error=str(e)))
                    continue

                self._progress(index, total, file_name, "transcribing")

                try:
                    result = engine.decode(
                        audio,
                        sample_rate,
                        language_hint=language_hint,
                        dictionary_hints=dictionary_hints,
                    )
                except Exception as e:
                    logger.warning(f"Transcription of {file_name} failed: {e}")
                    results.append(FileTranscriptionResult(path, file_name, error=str(e)))
                    continue

                if self.history is not None:
                    self.history.append(result)
                results.append(
                    FileTranscriptionResult(path, file_name, transcription=result)
                )
        finally:
            self.registry.release(model_id)

        self._progress(total, total, "", "completed")
        return results
