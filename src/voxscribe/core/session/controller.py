"""
Recording session lifecycle.

A single controller owns at most one session at a time and drives it through
Idle -> Recording -> Processing -> Completed/Error. Every transition happens
under one re-entrant lock; long operations (stopping the capture, decoding)
run outside of it and re-check that their session is still current before
publishing anything.
"""

import threading
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional

import numpy as np

from ...utils.logger import get_logger
from ..asr.backends import EngineAdapter
from ..asr.models.registry import ModelRegistry
from ..audio.audio_processor import prepare_for_engine
from ..audio.recorder import AudioCapture
from ..errors import (
    AlreadyRecording,
    AudioCaptureError,
    DecodeError,
    NotRecording,
    SessionCancelled,
    VoxScribeError,
)
from ..events import (
    MIC_LEVEL,
    RECORDING_STATUS,
    TRANSCRIPTION_CHUNK,
    EventCallback,
    emit,
)
from ..settings.config import MIN_RECORDING_SECONDS, TARGET_SAMPLE_RATE
from ..settings.history import HistoryStore
from ..settings.settings import SessionConfig
from ..types import StreamingChunk, TranscriptionResult
from .state import SessionSnapshot, SessionState, SessionStatus

logger = get_logger(__name__)

CaptureFactory = Callable[..., AudioCapture]


@dataclass(eq=False)
class _Session:
    config: SessionConfig
    model_id: str
    engine: EngineAdapter
    streaming: bool
    capture: Optional[AudioCapture] = None
    worker: Optional[threading.Thread] = None
    final_chunk: Optional[StreamingChunk] = None
    stream_error: Optional[BaseException] = None
    cancelled: threading.Event = field(default_factory=threading.Event)
    stopping: bool = False
    released: bool = False


class SessionController:
    def __init__(
        self,
        registry: ModelRegistry,
        history: HistoryStore,
        capture_factory: CaptureFactory = AudioCapture,
        on_event: Optional[EventCallback] = None,
        min_recording_seconds: float = MIN_RECORDING_SECONDS,
    ):
        self.registry = registry
        self.history = history
        self.capture_factory = capture_factory
        self.on_event = on_event
        self.min_recording_seconds = min_recording_seconds

        self._lock = threading.RLock()
        self._state = SessionState()
        self._session: Optional[_Session] = None

    # -- queries -------------------------------------------------------------

    @property
    def status(self) -> SessionStatus:
        with self._lock:
            return self._state.status

    @property
    def error_message(self) -> Optional[str]:
        with self._lock:
            return self._state.error_message

    def snapshot(self) -> SessionSnapshot:
        with self._lock:
            return self._state.snapshot()

    # -- commands ------------------------------------------------------------

    def start(self, config: Optional[SessionConfig] = None) -> None:
        config = config or SessionConfig()

        with self._lock:
            if self._state.status.is_active:
                raise AlreadyRecording()

            previous, self._session = self._session, None
            self._state = SessionState()

        if previous is not None:
            self._teardown(previous)

        with self._lock:
            # Another start() may have won the race while the lock was released
            if self._state.status.is_active:
                raise AlreadyRecording()

            model_id, engine = self.registry.acquire_engine()
            streaming = config.streaming_enabled and bool(
                getattr(engine, "supports_streaming", False)
            )
            session = _Session(
                config=config, model_id=model_id, engine=engine, streaming=streaming
            )

            try:
                capture = self.capture_factory(
                    sample_rate=config.sample_rate,
                    on_level=lambda bands: self._on_level(session, bands),
                    on_error=lambda message: self._on_capture_error(session, message),
                    stream_frames=streaming,
                )
                capture.open(config.device_id)
                capture.start()
            except Exception:
                self._release(session)
                raise

            session.capture = capture
            self._session = session
            self._state = SessionState(
                status=SessionStatus.RECORDING,
                sample_rate=config.sample_rate,
                started_at=time.time(),
            )

            if streaming:
                session.worker = threading.Thread(
                    target=self._run_streaming,
                    args=(session,),
                    name="streaming-decode",
                    daemon=True,
                )
                session.worker.start()

            logger.info(
                f"Recording started with {model_id} "
                f"({'streaming' if streaming else 'batch'} decode)"
            )
            self._emit_status(SessionStatus.RECORDING)

    def stop(self) -> TranscriptionResult:
        with self._lock:
            status = self._state.status
            if status == SessionStatus.ERROR and self._state.error is not None:
                raise self._state.error
            if status != SessionStatus.RECORDING:
                raise NotRecording()

            session = self._session
            session.stopping = True
            self._state.status = SessionStatus.PROCESSING
            self._emit_status(SessionStatus.PROCESSING)

        stopped_at = time.perf_counter()
        try:
            pcm = session.capture.stop()
            if session.worker is not None:
                session.worker.join()
            result = self._finalize(session, pcm, stopped_at)
        except Exception as e:
            with self._lock:
                if self._session is not session:
                    raise SessionCancelled() from e
                self._fail(e)
            raise
        finally:
            self._release(session)

        with self._lock:
            if self._session is not session:
                logger.info("Session was reset while processing, discarding result")
                raise SessionCancelled()

            self.history.append(result)
            self._state.status = SessionStatus.COMPLETED
            self._state.text = result.text
            emit(
                self.on_event,
                TRANSCRIPTION_CHUNK,
                StreamingChunk(
                    text=result.text,
                    is_final=True,
                    duration_seconds=result.duration_seconds,
                    confidence=result.confidence,
                    detected_language=result.detected_language,
                ),
            )
            self._emit_status(SessionStatus.COMPLETED)

        logger.info(
            f"Transcription completed in {result.processing_time_ms}ms: "
            f"'{result.text[:50]}{'...' if len(result.text) > 50 else ''}'"
        )
        return result

    def reset_recording_state(self) -> None:
        with self._lock:
            session, self._session = self._session, None
            was_idle = self._state.status == SessionStatus.IDLE
            self._state = SessionState()
            if session is not None:
                session.cancelled.set()

        if session is not None:
            logger.info("Resetting recording session")
            self._teardown(session)

        if not was_idle or session is not None:
            self._emit_status(SessionStatus.IDLE)

    def clear_error(self) -> None:
        with self._lock:
            if self._state.status not in (SessionStatus.ERROR, SessionStatus.COMPLETED):
                return
            session, self._session = self._session, None
            self._state = SessionState()

        if session is not None:
            self._teardown(session)
        self._emit_status(SessionStatus.IDLE)

    # -- internals -----------------------------------------------------------

    def _finalize(
        self, session: _Session, pcm: Optional[np.ndarray], stopped_at: float
    ) -> TranscriptionResult:
        sample_rate = session.config.sample_rate

        with self._lock:
            if self._session is session:
                self._state.audio = pcm

        if pcm is None or len(pcm) == 0:
            raise DecodeError("No audio captured")

        duration = len(pcm) / float(sample_rate)
        if duration < self.min_recording_seconds:
            raise DecodeError(
                f"Recording too short ({duration:.2f}s < {self.min_recording_seconds}s)"
            )

        if session.streaming:
            if session.stream_error is not None:
                raise session.stream_error
            chunk = session.final_chunk
            if chunk is None:
                raise DecodeError("Streaming decode ended without a final result")
            result = TranscriptionResult(
                text=chunk.text.strip(),
                confidence=chunk.confidence if chunk.confidence is not None else 0.0,
                duration_seconds=duration,
                processing_time_ms=int((time.perf_counter() - stopped_at) * 1000),
                detected_language=chunk.detected_language,
                model_used=session.engine.model_label,
            )
        else:
            audio = prepare_for_engine(pcm, sample_rate)
            result = session.engine.decode(
                audio,
                TARGET_SAMPLE_RATE,
                language_hint=session.config.language_hint,
                dictionary_hints=session.config.dictionary_hints,
            )

        if not result.text.strip():
            raise DecodeError("No speech detected")
        return result

    def _run_streaming(self, session: _Session) -> None:
        chunks = session.engine.decode_streaming(
            session.capture.frames(),
            session.config.sample_rate,
            language_hint=session.config.language_hint,
            dictionary_hints=session.config.dictionary_hints,
        )
        try:
            for chunk in chunks:
                if session.cancelled.is_set():
                    break
                if chunk.is_final:
                    session.final_chunk = chunk
                    break
                with self._lock:
                    if self._session is not session or session.cancelled.is_set():
                        break
                    self._state.text += chunk.text
                    emit(self.on_event, TRANSCRIPTION_CHUNK, chunk)
        except Exception as e:
            logger.exception(f"Streaming decode failed: {e}")
            session.stream_error = (
                e if isinstance(e, VoxScribeError) else DecodeError(str(e))
            )
        finally:
            chunks.close()

    def _on_level(self, session: _Session, bands: List[float]) -> None:
        if self._session is session:
            emit(self.on_event, MIC_LEVEL, bands)

    def _on_capture_error(self, session: _Session, message: str) -> None:
        with self._lock:
            if self._session is not session:
                return
            if self._state.status != SessionStatus.RECORDING:
                return
            session.cancelled.set()
            self._fail(AudioCaptureError(message))
        self._release(session)

    def _fail(self, error: BaseException) -> None:
        logger.error(f"Session failed: {error}")
        self._state.status = SessionStatus.ERROR
        self._state.error = error
        self._emit_status(SessionStatus.ERROR)

    def _teardown(self, session: _Session) -> None:
        session.cancelled.set()
        if session.capture is not None:
            try:
                session.capture.stop()
            except VoxScribeError as e:
                logger.warning(f"Error while stopping capture: {e}")
        # An in-flight stop() still decodes on the engine and releases it itself
        if not session.stopping:
            self._release(session)

    def _release(self, session: _Session) -> None:
        with self._lock:
            if session.released:
                return
            session.released = True
        self.registry.release(session.model_id)

    def _emit_status(self, status: SessionStatus) -> None:
        emit(self.on_event, RECORDING_STATUS, status.value)
