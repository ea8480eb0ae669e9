import queue
import threading
import time
from dataclasses import dataclass
from typing import Callable, Iterator, List, Optional

import numpy as np
import sounddevice as sd

from ...utils.logger import get_logger
from ..errors import AlreadyCapturing, AudioCaptureError, DeviceUnavailable
from ..settings.config import (
    LEVEL_INTERVAL_SECONDS,
    MAX_BUFFER_SECONDS,
    SPECTRUM_BAND_COUNT,
    TARGET_SAMPLE_RATE,
)
from .audio_processor import to_mono

logger = get_logger(__name__)

_END_OF_STREAM = None


@dataclass
class AudioDevice:
    name: str
    index: int
    channels: int
    default_sample_rate: float
    is_default: bool = False


class AudioCapture:
    """
    Microphone capture for a single recording session.

    Frames are buffered for the final decode and, when ``stream_frames`` is
    set, also queued for a concurrent streaming decode. Level summaries are
    throttled to ``level_interval`` and delivered from the PortAudio thread.
    """

    def __init__(
        self,
        sample_rate: int = TARGET_SAMPLE_RATE,
        channels: int = 1,
        on_level: Optional[Callable[[List[float]], None]] = None,
        on_error: Optional[Callable[[str], None]] = None,
        stream_frames: bool = False,
        level_interval: float = LEVEL_INTERVAL_SECONDS,
        max_buffer_seconds: float = MAX_BUFFER_SECONDS,
    ):
        self.sample_rate = sample_rate
        self.channels = channels
        self.on_level = on_level
        self.on_error = on_error
        self.stream_frames = stream_frames
        self.level_interval = level_interval

        self._max_buffer_samples = int(max_buffer_seconds * sample_rate)
        self._device_index: Optional[int] = None
        self._device_name: Optional[str] = None
        self._opened = False
        self._stream: Optional[sd.InputStream] = None
        self._audio_buffer: List[np.ndarray] = []
        self._buffered_samples = 0
        self._frames: "queue.Queue[Optional[np.ndarray]]" = queue.Queue()
        self._lock = threading.Lock()
        self._is_recording = False
        self._stopping = False
        self._error_reported = False
        self._overflow_warned = False
        self._last_level_at = float("-inf")

        self._spectrum_frames: Optional[int] = None
        self._spectrum_rate: Optional[float] = None
        self._spectrum_bins: List[tuple[int, int]] = []
        self._spectrum_band_count = SPECTRUM_BAND_COUNT
        self._window: Optional[np.ndarray] = None

    @property
    def is_recording(self) -> bool:
        return self._is_recording

    @property
    def device_name(self) -> Optional[str]:
        return self._device_name

    def open(self, device_id: Optional[str] = None) -> None:
        if device_id is not None:
            index = self._get_device_index(device_id)
            if index is None:
                raise DeviceUnavailable(f"Device '{device_id}' not found")
        else:
            index = None
            try:
                default = sd.query_devices(kind="input")
            except (sd.PortAudioError, ValueError) as e:
                raise DeviceUnavailable(f"No default input device: {e}") from e
            device_id = default["name"]

        try:
            sd.check_input_settings(
                device=index, channels=self.channels, samplerate=self.sample_rate
            )
        except (sd.PortAudioError, ValueError) as e:
            raise DeviceUnavailable(f"Audio device error: {e}") from e

        self._device_index = index
        self._device_name = device_id
        self._opened = True
        logger.info(f"Audio device opened: {device_id}")

    def start(self) -> None:
        if self._is_recording:
            raise AlreadyCapturing()
        if not self._opened:
            self.open()

        self._audio_buffer = []
        self._buffered_samples = 0
        self._frames = queue.Queue()
        self._stopping = False
        self._error_reported = False
        self._overflow_warned = False
        self._last_level_at = float("-inf")

        try:
            self._stream = sd.InputStream(
                samplerate=self.sample_rate,
                channels=self.channels,
                device=self._device_index,
                dtype="float32",
                callback=self._audio_callback,
                finished_callback=self._on_stream_finished,
            )
            self._stream.start()
        except sd.PortAudioError as e:
            self._stream = None
            raise AudioCaptureError(f"Failed to start recording: {e}") from e

        self._is_recording = True
        logger.info(
            f"Starting audio capture: {self.sample_rate}Hz, {self.channels} channel(s)"
        )

    def stop(self) -> Optional[np.ndarray]:
        """Stop capture and return the buffered mono PCM, or None if empty."""
        self._stopping = True
        self._is_recording = False

        stream, self._stream = self._stream, None
        if stream is not None:
            try:
                stream.stop()
                stream.close()
            except sd.PortAudioError as e:
                logger.warning(f"Error while closing audio stream: {e}")

        self._frames.put(_END_OF_STREAM)

        self._opened = False

        with self._lock:
            chunks, self._audio_buffer = self._audio_buffer, []
            self._buffered_samples = 0

        if not chunks:
            return None

        return np.concatenate(chunks, axis=0)

    def frames(self) -> Iterator[np.ndarray]:
        """Yield captured mono blocks in arrival order until capture stops."""
        while True:
            frame = self._frames.get()
            if frame is _END_OF_STREAM:
                return
            yield frame

    def _audio_callback(self, indata: np.ndarray, frames: int, time_info, status) -> None:
        if status:
            # Over/underflow flags only; the stream keeps running
            logger.debug(f"Audio callback status: {status}")
        if not self._is_recording or self._stopping:
            return

        try:
            self._handle_block(indata)
        except Exception as e:
            self._report_error(f"Audio callback failed: {e}")
            raise sd.CallbackAbort from e

    def _handle_block(self, indata: np.ndarray) -> None:
        mono = to_mono(indata).astype(np.float32, copy=True)

        with self._lock:
            if self._buffered_samples + len(mono) > self._max_buffer_samples:
                if not self._overflow_warned:
                    logger.warning("Audio buffer limit reached, dropping new frames")
                    self._overflow_warned = True
                return
            self._audio_buffer.append(mono)
            self._buffered_samples += len(mono)

        if self.stream_frames:
            self._frames.put(mono)

        if self.on_level is not None:
            now = time.monotonic()
            if now - self._last_level_at >= self.level_interval:
                self._last_level_at = now
                try:
                    self.on_level(self._compute_spectrum_bands(mono, self.sample_rate))
                except Exception as e:
                    logger.warning(f"Level listener failed: {e}")

    def _on_stream_finished(self) -> None:
        if self._stopping:
            return
        self._report_error("Audio stream stopped unexpectedly (device disconnected?)")

    def _report_error(self, message: str) -> None:
        if self._error_reported:
            return
        self._error_reported = True
        self._is_recording = False
        self._frames.put(_END_OF_STREAM)
        logger.error(f"Audio capture error: {message}")
        if self.on_error is not None:
            self.on_error(message)

    def _get_device_index(self, device_name: str) -> Optional[int]:
        for device in self.list_devices():
            if device.name == device_name:
                return device.index
        return None

    def _compute_spectrum_bands(
        self, mono: np.ndarray, sample_rate: float
    ) -> List[float]:
        frames = mono.shape[0]
        if frames < 8:
            return [0.0] * self._spectrum_band_count

        if self._window is None or self._window.shape[0] != frames:
            self._window = np.hanning(frames)

        mag = np.abs(np.fft.rfft(mono * self._window))
        if mag.size == 0:
            return [0.0] * self._spectrum_band_count

        bands = self._get_spectrum_bins(frames, sample_rate)
        log_mag = np.log1p(mag)
        max_mag = float(np.max(log_mag))
        if max_mag <= 0.0:
            return [0.0] * self._spectrum_band_count

        energies: List[float] = []
        for start, end in bands:
            if end <= start:
                energies.append(0.0)
                continue
            band_energy = float(np.mean(log_mag[start:end])) / max_mag
            energies.append(min(1.0, max(0.0, band_energy)))
        return energies

    def _get_spectrum_bins(
        self, frames: int, sample_rate: float
    ) -> List[tuple[int, int]]:
        if self._spectrum_frames == frames and self._spectrum_rate == sample_rate:
            return self._spectrum_bins

        low_freq = 80.0
        high_freq = min(8000.0, (sample_rate / 2.0) * 0.95)
        if high_freq <= low_freq:
            high_freq = low_freq * 2.0

        edges = np.logspace(
            np.log10(low_freq),
            np.log10(high_freq),
            num=self._spectrum_band_count + 1,
        )
        freqs = np.fft.rfftfreq(frames, 1.0 / sample_rate)

        bins: List[tuple[int, int]] = []
        for idx in range(self._spectrum_band_count):
            start = int(np.searchsorted(freqs, edges[idx], side="left"))
            end = int(np.searchsorted(freqs, edges[idx + 1], side="right"))
            if end <= start:
                end = min(start + 1, len(freqs))
            bins.append((start, end))

        self._spectrum_frames = frames
        self._spectrum_rate = sample_rate
        self._spectrum_bins = bins
        return bins

    @staticmethod
    def list_devices() -> List[AudioDevice]:
        devices = []

        try:
            default_input = sd.default.device[0]
        except (TypeError, IndexError):
            default_input = None

        for i, device in enumerate(sd.query_devices()):
            if device["max_input_channels"] > 0:
                devices.append(
                    AudioDevice(
                        name=device["name"],
                        index=i,
                        channels=device["max_input_channels"],
                        default_sample_rate=device["default_samplerate"],
                        is_default=(i == default_input),
                    )
                )

        return devices
