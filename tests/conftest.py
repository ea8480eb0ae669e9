"""
Shared fixtures: fake capture devices, fake engines and a registry backed by
temporary model directories, so session tests never touch audio hardware or
real models.
"""

import os
import queue
import struct
import threading
import time

import numpy as np
import pytest

from voxscribe.core.asr.models.registry import ModelInfo, ModelRegistry
from voxscribe.core.settings.history import HistoryStore
from voxscribe.core.types import StreamingChunk, TranscriptionResult

TEST_CATALOG = [
    ModelInfo(
        id="whisper-tiny",
        name="Whisper Tiny",
        type="whisper",
        family="whisper",
        size_bytes=1000,
        url="https://example.com/whisper-tiny.tar.bz2",
        bundled=True,
    ),
    ModelInfo(
        id="whisper-small",
        name="Whisper Small",
        type="whisper",
        family="whisper",
        size_bytes=5000,
        url="https://example.com/whisper-small.tar.bz2",
    ),
    ModelInfo(
        id="whisper-medium",
        name="Whisper Medium",
        type="whisper",
        family="whisper",
        size_bytes=9000,
        url="https://example.com/whisper-medium.tar.bz2",
    ),
    ModelInfo(
        id="vosk-en",
        name="Vosk English",
        type="vosk",
        family="vosk",
        size_bytes=2000,
        url="https://example.com/vosk-en.zip",
    ),
]


def make_model_dir(base, model_id, model_type):
    """Create the minimal file layout a model of ``model_type`` needs."""
    path = os.path.join(str(base), model_id)
    if model_type == "whisper":
        os.makedirs(path, exist_ok=True)
        for name in ("tiny-encoder.onnx", "tiny-decoder.onnx", "tiny-tokens.txt"):
            open(os.path.join(path, name), "w").close()
    elif model_type == "transducer":
        os.makedirs(path, exist_ok=True)
        for name in ("encoder.onnx", "decoder.onnx", "joiner.onnx", "tokens.txt"):
            open(os.path.join(path, name), "w").close()
    elif model_type == "vosk":
        os.makedirs(os.path.join(path, "am"), exist_ok=True)
        os.makedirs(os.path.join(path, "conf"), exist_ok=True)
        open(os.path.join(path, "am", "final.mdl"), "w").close()
        open(os.path.join(path, "conf", "model.conf"), "w").close()
    return path


def wait_for(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()


# -- capture -----------------------------------------------------------------


class FakeCapture:
    """Stands in for AudioCapture; tests push audio with feed()."""

    def __init__(
        self,
        sample_rate=16000,
        channels=1,
        on_level=None,
        on_error=None,
        stream_frames=False,
        **kwargs,
    ):
        self.sample_rate = sample_rate
        self.on_level = on_level
        self.on_error = on_error
        self.stream_frames = stream_frames
        self.device_id = None
        self.open_error = None
        self.started = False
        self.stop_calls = 0
        self._buffer = []
        self._frames = queue.Queue()

    def open(self, device_id=None):
        if self.open_error is not None:
            raise self.open_error
        self.device_id = device_id

    def start(self):
        self.started = True

    def feed(self, samples):
        samples = np.asarray(samples, dtype=np.float32)
        self._buffer.append(samples)
        if self.stream_frames:
            self._frames.put(samples)
        if self.on_level is not None:
            self.on_level([0.5] * 8)

    def fail(self, message):
        self._frames.put(None)
        self.on_error(message)

    def stop(self):
        self.stop_calls += 1
        if self.stop_calls > 1:
            return None
        self._frames.put(None)
        if not self._buffer:
            return None
        return np.concatenate(self._buffer)

    def frames(self):
        while True:
            frame = self._frames.get()
            if frame is None:
                return
            yield frame


class CaptureFactory:
    def __init__(self):
        self.instances = []
        self.open_error = None

    def __call__(self, **kwargs):
        capture = FakeCapture(**kwargs)
        capture.open_error = self.open_error
        self.instances.append(capture)
        return capture

    @property
    def last(self):
        return self.instances[-1]


# -- engines -----------------------------------------------------------------


class FakeBatchEngine:
    supports_streaming = False
    name = "Fake"

    def __init__(self, label="Fake Model", text="hello world"):
        self.model_label = label
        self.text = text
        self.error = None
        self.is_loaded = False
        self.decode_calls = []
        self.gate = None
        self.decode_started = threading.Event()

    def load(self):
        self.is_loaded = True

    def unload(self):
        self.is_loaded = False

    def decode(self, pcm, sample_rate=16000, language_hint=None, dictionary_hints=()):
        self.decode_calls.append(
            {
                "samples": len(pcm),
                "sample_rate": sample_rate,
                "language_hint": language_hint,
                "dictionary_hints": tuple(dictionary_hints),
                "mean": float(np.mean(pcm)) if len(pcm) else 0.0,
            }
        )
        self.decode_started.set()
        if self.gate is not None:
            self.gate.wait(timeout=5)
        if self.error is not None:
            raise self.error
        return TranscriptionResult(
            text=self.text,
            confidence=0.9,
            duration_seconds=len(pcm) / float(sample_rate),
            processing_time_ms=5,
            model_used=self.model_label,
        )


class FakeStreamingEngine(FakeBatchEngine):
    supports_streaming = True
    name = "FakeStream"

    def __init__(self, label="Fake Stream Model", words=None):
        super().__init__(label=label)
        self.words = words or ["one", "two", "three"]
        self.closed = False
        self.stream_error = None

    def decode_streaming(
        self, frames, sample_rate=16000, language_hint=None, dictionary_hints=()
    ):
        emitted = []
        samples = 0
        try:
            for index, frame in enumerate(frames):
                samples += len(frame)
                if self.stream_error is not None:
                    raise self.stream_error
                if index < len(self.words):
                    word = self.words[index]
                    text = f" {word}" if emitted else word
                    emitted.append(word)
                    yield StreamingChunk(
                        text=text,
                        is_final=False,
                        duration_seconds=samples / float(sample_rate),
                    )
            yield StreamingChunk(
                text=" ".join(emitted),
                is_final=True,
                duration_seconds=samples / float(sample_rate),
                confidence=0.8,
            )
        finally:
            self.closed = True


class EngineFactory:
    def __init__(self):
        self.created = {}

    def __call__(self, model_type, model_path, label):
        if model_type == "vosk":
            engine = FakeStreamingEngine(label=label)
        else:
            engine = FakeBatchEngine(label=label)
        self.created.setdefault(label, []).append(engine)
        return engine


# -- fixtures ----------------------------------------------------------------


@pytest.fixture
def bundled_dir(tmp_path):
    path = tmp_path / "bundled"
    make_model_dir(path, "whisper-tiny", "whisper")
    return path


@pytest.fixture
def models_dir(tmp_path):
    path = tmp_path / "models"
    path.mkdir()
    return path


@pytest.fixture
def engine_factory():
    return EngineFactory()


@pytest.fixture
def registry(models_dir, bundled_dir, engine_factory):
    reg = ModelRegistry(
        models_dir=str(models_dir),
        bundled_dir=str(bundled_dir),
        catalog=TEST_CATALOG,
        engine_factory=engine_factory,
    )
    yield reg
    reg.shutdown()


@pytest.fixture
def history():
    return HistoryStore(capacity=50)


@pytest.fixture
def capture_factory():
    return CaptureFactory()


@pytest.fixture
def events():
    received = []

    def on_event(name, payload):
        received.append((name, payload))

    on_event.received = received
    return on_event


def wav_bytes(channels=1, sample_rate=16000, samples=b"\x00\x00" * 160):
    """Build a PCM16 WAV file by hand so headers can be made invalid."""
    block_align = channels * 2
    fmt = struct.pack(
        "<HHIIHH", 1, channels, sample_rate, sample_rate * block_align, block_align, 16
    )
    body = (
        b"WAVE"
        + b"fmt "
        + struct.pack("<I", len(fmt))
        + fmt
        + b"data"
        + struct.pack("<I", len(samples))
        + samples
    )
    return b"RIFF" + struct.pack("<I", len(body)) + body


MALFORMED_WAVS = {
    "truncated-header": b"RIFF\x24\x00\x00\x00WAVEfmt \x10\x00",
    "zero-channels": wav_bytes(channels=0),
    "zero-sample-rate": wav_bytes(sample_rate=0),
}
