"""Tests for sequential file transcription."""

import numpy as np
import pytest
import scipy.io.wavfile as wav

from conftest import MALFORMED_WAVS
from voxscribe.core.asr.batch_transcriber import BatchTranscriber
from voxscribe.core.errors import DecodeError
from voxscribe.core.events import FILE_TRANSCRIPTION_PROGRESS


@pytest.fixture
def transcriber(registry, events, history):
    return BatchTranscriber(registry, on_event=events, history=history)


@pytest.fixture
def wav_file(tmp_path):
    def make(name, seconds=1.0, rate=16000):
        path = tmp_path / name
        wav.write(path, rate, np.zeros(int(seconds * rate), dtype=np.int16))
        return str(path)

    return make


def progress(events):
    return [
        (p.current, p.total, p.file_name, p.status)
        for name, p in events.received
        if name == FILE_TRANSCRIPTION_PROGRESS
    ]


class TestBatchTranscriber:
    """Tests for BatchTranscriber."""

    def test_mixed_batch_keeps_order_and_contains_errors(
        self, transcriber, wav_file, tmp_path
    ):
        """Test results follow input order with failures kept per file."""
        corrupt = tmp_path / "corrupt.wav"
        corrupt.write_bytes(b"not a wav file")
        paths = [
            wav_file("a.wav"),
            str(corrupt),
            str(tmp_path / "notes.txt"),
            wav_file("b.wav", rate=48000),
        ]

        results = transcriber.transcribe_files(paths)

        assert [r.file_path for r in results] == paths
        assert [r.ok for r in results] == [True, False, False, True]
        assert results[0].transcription.text == "hello world"
        assert "Failed to decode" in results[1].error
        assert results[2].error == "Unsupported audio format"
        assert results[3].error is None

    def test_progress_events(self, transcriber, wav_file, events, tmp_path):
        """Test decoding and transcribing events precede one completed event."""
        paths = [wav_file("a.wav"), str(tmp_path / "b.txt")]

        transcriber.transcribe_files(paths)

        assert progress(events) == [
            (1, 2, "a.wav", "decoding"),
            (1, 2, "a.wav", "transcribing"),
            (2, 2, "b.txt", "decoding"),
            (2, 2, "", "completed"),
        ]

    def test_decode_failure_does_not_abort_batch(
        self, transcriber, wav_file, registry, engine_factory
    ):
        """Test a decode failure on one file leaves the next one untouched."""
        model_id, engine = registry.acquire_engine()
        registry.release(model_id)
        outcomes = iter([DecodeError("Transcription failed: boom"), None])

        original = engine.decode

        def flaky(*args, **kwargs):
            error = next(outcomes)
            if error is not None:
                raise error
            return original(*args, **kwargs)

        engine.decode = flaky

        results = transcriber.transcribe_files([wav_file("a.wav"), wav_file("b.wav")])

        assert results[0].error == "Transcription failed: boom"
        assert results[1].ok is True

    def test_audio_resampled_before_decode(self, transcriber, wav_file, registry):
        """Test file audio reaches the engine at 16 kHz."""
        model_id, engine = registry.acquire_engine()
        registry.release(model_id)

        transcriber.transcribe_files([wav_file("hi.wav", seconds=2.0, rate=8000)])

        call = engine.decode_calls[0]
        assert call["samples"] == 32000
        assert call["sample_rate"] == 16000

    def test_hints_forwarded(self, transcriber, wav_file, registry):
        """Test language and dictionary hints reach the engine."""
        model_id, engine = registry.acquire_engine()
        registry.release(model_id)

        transcriber.transcribe_files(
            [wav_file("a.wav")], language_hint="es", dictionary_hints=("Bogotá",)
        )

        assert engine.decode_calls[0]["language_hint"] == "es"
        assert engine.decode_calls[0]["dictionary_hints"] == ("Bogotá",)

    def test_successes_recorded_in_history(self, transcriber, wav_file, history, tmp_path):
        """Test only successful files are added to history."""
        transcriber.transcribe_files([wav_file("a.wav"), str(tmp_path / "x.flac")])
        assert len(history.list()) == 1

    def test_lease_released(self, transcriber, wav_file, registry):
        """Test the engine lease is released after the batch."""
        transcriber.transcribe_files([wav_file("a.wav")])
        assert registry.in_use(registry.active_model_id) is False

    def test_empty_batch(self, transcriber, events):
        """Test an empty batch returns nothing and emits no events."""
        assert transcriber.transcribe_files([]) == []
        assert progress(events) == []

    def test_supported_formats(self):
        """Test compressed formats are listed alongside WAV."""
        formats = BatchTranscriber.supported_formats()
        assert formats[0] == ".wav"
        assert {".mp3", ".m4a", ".flac", ".ogg", ".webm", ".aac", ".wma"} <= set(formats)

    @pytest.mark.parametrize("payload", sorted(MALFORMED_WAVS))
    def test_malformed_wav_does_not_abort_batch(
        self, transcriber, wav_file, tmp_path, payload
    ):
        """Test a file with a broken header fails alone and the next file still decodes."""
        bad = tmp_path / "bad.wav"
        bad.write_bytes(MALFORMED_WAVS[payload])

        results = transcriber.transcribe_files([str(bad), wav_file("good.wav")])

        assert len(results) == 2
        assert results[0].ok is False
        assert results[0].error
        assert results[1].ok is True

    def test_unexpected_engine_error_is_contained(self, transcriber, wav_file, registry):
        """Test any engine exception is reported on that file only."""
        model_id, engine = registry.acquire_engine()
        registry.release(model_id)
        engine.error = RuntimeError("onnxruntime exploded")

        results = transcriber.transcribe_files([wav_file("a.wav")])

        assert results[0].error == "onnxruntime exploded"
        assert registry.in_use(model_id) is False
