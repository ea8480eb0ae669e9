"""
Speech-recognition engines behind a single adapter interface.

Batch engines decode a complete buffer; streaming-capable engines also
decode incrementally while frames are still arriving. Engines are selected
once per session and never re-dispatched mid-session.
"""

import json
import math
import os
import time
from typing import Iterable, Iterator, Optional, Protocol, Sequence, runtime_checkable

import numpy as np

from ...utils.logger import get_logger
from ..audio.audio_processor import to_float32, to_int16_bytes, to_mono
from ..errors import DecodeError
from ..settings.config import TARGET_SAMPLE_RATE
from ..types import StreamingChunk, TranscriptionResult
from .file_utils import (
    TRANSDUCER,
    VOSK,
    WHISPER,
    find_file_by_suffix,
    find_file_exact,
    is_valid_model_dir,
)

logger = get_logger(__name__)

# sherpa-onnx does not expose a score for Whisper decodes
DEFAULT_WHISPER_CONFIDENCE = 0.95
HOTWORDS_SCORE = 1.5


@runtime_checkable
class EngineAdapter(Protocol):
    @property
    def name(self) -> str: ...

    @property
    def model_label(self) -> str: ...

    @property
    def supports_streaming(self) -> bool: ...

    @property
    def is_loaded(self) -> bool: ...

    def load(self) -> None: ...

    def unload(self) -> None: ...

    def decode(
        self,
        pcm: np.ndarray,
        sample_rate: int = TARGET_SAMPLE_RATE,
        language_hint: Optional[str] = None,
        dictionary_hints: Sequence[str] = (),
    ) -> TranscriptionResult: ...


@runtime_checkable
class StreamingEngineAdapter(EngineAdapter, Protocol):
    def decode_streaming(
        self,
        frames: Iterable[np.ndarray],
        sample_rate: int = TARGET_SAMPLE_RATE,
        language_hint: Optional[str] = None,
        dictionary_hints: Sequence[str] = (),
    ) -> Iterator[StreamingChunk]: ...


def _prepare_pcm(pcm: np.ndarray) -> np.ndarray:
    if pcm is None:
        raise DecodeError("No audio to decode")
    audio = to_float32(to_mono(np.asarray(pcm)))
    if audio.size == 0:
        raise DecodeError("Empty audio buffer")
    if not np.all(np.isfinite(audio)):
        raise DecodeError("Malformed audio buffer: non-finite samples")
    return audio


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


def _normalize_language(lang: Optional[str]) -> Optional[str]:
    # Whisper reports languages as "<|en|>"
    if not lang:
        return None
    return lang.strip().strip("<|>") or None


class SherpaOnnxBackend:
    """Batch decoding of sherpa-onnx Whisper and NeMo transducer models."""

    supports_streaming = False

    def __init__(
        self,
        model_path: str,
        model_type: str,
        label: Optional[str] = None,
        num_threads: int = 4,
    ):
        if model_type not in (WHISPER, TRANSDUCER):
            raise ValueError(f"SherpaOnnxBackend cannot load '{model_type}' models")
        self.model_path = model_path
        self.model_type = model_type
        self._label = label or os.path.basename(model_path)
        self._num_threads = num_threads
        self._recognizers: dict = {}

    @property
    def name(self) -> str:
        return "Whisper" if self.model_type == WHISPER else "Parakeet"

    @property
    def model_label(self) -> str:
        return self._label

    @property
    def is_loaded(self) -> bool:
        return bool(self._recognizers)

    def load(self) -> None:
        if self.is_loaded:
            return

        if not is_valid_model_dir(self.model_path, self.model_type):
            raise RuntimeError(
                f"Model directory not found or incomplete: {self.model_path}. "
                f"Please download the model first."
            )

        logger.info(f"Loading model '{self._label}' as type '{self.model_type}'")
        try:
            self._recognizers[""] = self._build_recognizer("")
        except Exception as e:
            self._recognizers = {}
            raise RuntimeError(
                f"Failed to load model from '{self.model_path}': {e}"
            ) from e

    def unload(self) -> None:
        self._recognizers = {}

    def _build_recognizer(self, language: str):
        import sherpa_onnx

        if self.model_type == WHISPER:
            encoder = find_file_by_suffix(
                self.model_path, "-encoder.int8.onnx", "-encoder.onnx"
            )
            decoder = find_file_by_suffix(
                self.model_path, "-decoder.int8.onnx", "-decoder.onnx"
            )
            tokens = find_file_by_suffix(self.model_path, "-tokens.txt", "tokens.txt")
            logger.debug(
                f"Whisper recognizer: encoder={encoder}, decoder={decoder}, "
                f"language={language or 'auto'}"
            )
            return sherpa_onnx.OfflineRecognizer.from_whisper(
                encoder=encoder,
                decoder=decoder,
                tokens=tokens,
                language=language,
                task="transcribe",
                num_threads=self._num_threads,
                provider="cpu",
                debug=False,
                decoding_method="greedy_search",
            )

        def pick(part: str) -> Optional[str]:
            return find_file_exact(
                self.model_path,
                [f"{part}.int8.onnx", f"{part}.onnx", f"{part}.fp16.onnx"],
            )

        return sherpa_onnx.OfflineRecognizer.from_transducer(
            encoder=pick("encoder"),
            decoder=pick("decoder"),
            joiner=pick("joiner"),
            tokens=os.path.join(self.model_path, "tokens.txt"),
            num_threads=self._num_threads,
            provider="cpu",
            debug=False,
            decoding_method="modified_beam_search",
            hotwords_score=HOTWORDS_SCORE,
            model_type="nemo_transducer",
        )

    def _recognizer_for(self, language_hint: Optional[str]):
        # Only Whisper takes the language at construction time
        key = (language_hint or "") if self.model_type == WHISPER else ""
        if key not in self._recognizers:
            self._recognizers[key] = self._build_recognizer(key)
        return self._recognizers[key]

    def decode(
        self,
        pcm: np.ndarray,
        sample_rate: int = TARGET_SAMPLE_RATE,
        language_hint: Optional[str] = None,
        dictionary_hints: Sequence[str] = (),
    ) -> TranscriptionResult:
        if not self.is_loaded:
            raise DecodeError("Model not loaded. Call load() first.")

        audio = _prepare_pcm(pcm)
        audio_duration = len(audio) / float(sample_rate)
        start = time.perf_counter()

        try:
            recognizer = self._recognizer_for(language_hint)
            hints = [h.strip() for h in dictionary_hints if h and h.strip()]
            if hints and self.model_type == TRANSDUCER:
                stream = recognizer.create_stream(hotwords="/".join(hints))
            else:
                stream = recognizer.create_stream()
            stream.accept_waveform(sample_rate, audio)
            recognizer.decode_stream(stream)
            result = stream.result
        except Exception as e:
            raise DecodeError(f"Transcription failed: {e}") from e

        processing_time_ms = _elapsed_ms(start)
        text = (result.text or "").strip()

        detected_language = None
        if self.model_type == WHISPER and not language_hint:
            detected_language = _normalize_language(getattr(result, "lang", None))

        if processing_time_ms > 0:
            logger.debug(
                f"Transcription finished: audio_len={audio_duration:.2f}s, "
                f"time={processing_time_ms}ms, chars={len(text)}"
            )

        return TranscriptionResult(
            text=text,
            confidence=self._confidence(result),
            duration_seconds=audio_duration,
            processing_time_ms=processing_time_ms,
            detected_language=detected_language,
            model_used=self._label,
        )

    def _confidence(self, result) -> float:
        log_probs = getattr(result, "ys_log_probs", None)
        if log_probs:
            mean = sum(log_probs) / len(log_probs)
            return float(min(1.0, max(0.0, math.exp(mean))))
        return DEFAULT_WHISPER_CONFIDENCE


class VoskBackend:
    """
    Streaming-capable Kaldi decoding with Vosk.

    Completed utterance segments are emitted as increments; the final chunk
    carries the whole transcript. Vosk grammars are hard constraints, so
    dictionary hints (a soft bias) are ignored.
    """

    supports_streaming = True
    name = "Vosk"

    def __init__(self, model_path: str, label: Optional[str] = None):
        self.model_path = model_path
        self._label = label or os.path.basename(model_path)
        self._model = None

    @property
    def model_label(self) -> str:
        return self._label

    @property
    def is_loaded(self) -> bool:
        return self._model is not None

    def load(self) -> None:
        if self.is_loaded:
            return

        import vosk

        if not is_valid_model_dir(self.model_path, VOSK):
            raise RuntimeError(
                f"Model directory not found or incomplete: {self.model_path}. "
                f"Please download the model first."
            )

        vosk.SetLogLevel(-1)
        logger.info(f"Loading Vosk model '{self._label}'")
        try:
            self._model = vosk.Model(self.model_path)
        except Exception as e:
            raise RuntimeError(
                f"Failed to load model from '{self.model_path}': {e}"
            ) from e

    def unload(self) -> None:
        self._model = None

    def _new_recognizer(self, sample_rate: int):
        import vosk

        if not self.is_loaded:
            raise DecodeError("Model not loaded. Call load() first.")
        recognizer = vosk.KaldiRecognizer(self._model, float(sample_rate))
        recognizer.SetWords(True)
        return recognizer

    @staticmethod
    def _parse(payload: str) -> tuple[str, list]:
        data = json.loads(payload or "{}")
        return data.get("text", "").strip(), data.get("result", [])

    @staticmethod
    def _mean_confidence(words: list) -> float:
        confs = [w["conf"] for w in words if "conf" in w]
        if not confs:
            return 0.0
        return float(sum(confs) / len(confs))

    def decode(
        self,
        pcm: np.ndarray,
        sample_rate: int = TARGET_SAMPLE_RATE,
        language_hint: Optional[str] = None,
        dictionary_hints: Sequence[str] = (),
    ) -> TranscriptionResult:
        audio = _prepare_pcm(pcm)
        recognizer = self._new_recognizer(sample_rate)
        start = time.perf_counter()

        try:
            recognizer.AcceptWaveform(to_int16_bytes(audio))
            text, words = self._parse(recognizer.FinalResult())
        except Exception as e:
            raise DecodeError(f"Transcription failed: {e}") from e

        return TranscriptionResult(
            text=text,
            confidence=self._mean_confidence(words),
            duration_seconds=len(audio) / float(sample_rate),
            processing_time_ms=_elapsed_ms(start),
            model_used=self._label,
        )

    def decode_streaming(
        self,
        frames: Iterable[np.ndarray],
        sample_rate: int = TARGET_SAMPLE_RATE,
        language_hint: Optional[str] = None,
        dictionary_hints: Sequence[str] = (),
    ) -> Iterator[StreamingChunk]:
        recognizer = self._new_recognizer(sample_rate)
        segments: list[str] = []
        words: list = []
        samples = 0

        try:
            for frame in frames:
                audio = to_float32(to_mono(np.asarray(frame)))
                samples += len(audio)
                try:
                    completed = recognizer.AcceptWaveform(to_int16_bytes(audio))
                    if not completed:
                        continue
                    text, segment_words = self._parse(recognizer.Result())
                except Exception as e:
                    raise DecodeError(f"Streaming transcription failed: {e}") from e

                if text:
                    increment = f" {text}" if segments else text
                    segments.append(text)
                    words.extend(segment_words)
                    yield StreamingChunk(
                        text=increment,
                        is_final=False,
                        duration_seconds=samples / float(sample_rate),
                    )

            try:
                text, segment_words = self._parse(recognizer.FinalResult())
            except Exception as e:
                raise DecodeError(f"Streaming transcription failed: {e}") from e
            if text:
                segments.append(text)
                words.extend(segment_words)

            yield StreamingChunk(
                text=" ".join(segments),
                is_final=True,
                duration_seconds=samples / float(sample_rate),
                confidence=self._mean_confidence(words),
            )
        finally:
            del recognizer


def create_backend(
    model_type: str, model_path: str, label: Optional[str] = None
) -> EngineAdapter:
    if model_type in (WHISPER, TRANSDUCER):
        return SherpaOnnxBackend(model_path, model_type, label=label)
    if model_type == VOSK:
        return VoskBackend(model_path, label=label)
    raise ValueError(f"Unknown model type: {model_type}")
