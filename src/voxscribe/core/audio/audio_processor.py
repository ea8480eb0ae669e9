"""
Audio conversion utilities shared by live capture and file transcription.

Every engine decodes mono float32 PCM at TARGET_SAMPLE_RATE; these helpers
bring arbitrary device or file audio into that shape.
"""

import os
import shutil
import struct
import subprocess
from math import gcd
from typing import List, Tuple

import numpy as np
import scipy.io.wavfile as wav
from scipy.signal import resample_poly

from ...utils.logger import get_logger
from ..errors import DecodeError
from ..settings.config import TARGET_SAMPLE_RATE

logger = get_logger(__name__)

SUPPORTED_FORMATS: List[str] = [
    ".wav",
    ".mp3",
    ".m4a",
    ".flac",
    ".ogg",
    ".webm",
    ".aac",
    ".wma",
]

FFMPEG_TIMEOUT_SECONDS = 300


def to_mono(audio_data: np.ndarray) -> np.ndarray:
    if audio_data.ndim == 1:
        return audio_data
    if audio_data.shape[1] == 1:
        return audio_data[:, 0]
    return audio_data.mean(axis=1)


def to_float32(audio_data: np.ndarray) -> np.ndarray:
    if audio_data.dtype == np.int16:
        return audio_data.astype(np.float32) / 32768.0
    if audio_data.dtype == np.int32:
        return audio_data.astype(np.float32) / 2147483648.0
    if audio_data.dtype == np.uint8:
        return (audio_data.astype(np.float32) - 128.0) / 128.0
    return audio_data.astype(np.float32)


def to_int16_bytes(audio_data: np.ndarray) -> bytes:
    clipped = np.clip(to_float32(audio_data), -1.0, 1.0)
    return (clipped * 32767.0).astype("<i2").tobytes()


def resample(
    audio_data: np.ndarray, from_rate: int, to_rate: int = TARGET_SAMPLE_RATE
) -> np.ndarray:
    if from_rate == to_rate or audio_data.size == 0:
        return audio_data

    divisor = gcd(int(from_rate), int(to_rate))
    up = int(to_rate) // divisor
    down = int(from_rate) // divisor
    logger.debug(f"Resampling audio from {from_rate}Hz to {to_rate}Hz")
    return resample_poly(audio_data, up, down).astype(np.float32)


def prepare_for_engine(audio_data: np.ndarray, sample_rate: int) -> np.ndarray:
    """Downmix, convert to float32 and resample to the engine rate."""
    return resample(to_float32(to_mono(audio_data)), sample_rate)


def duration_seconds(audio_data: np.ndarray, sample_rate: int) -> float:
    if sample_rate <= 0:
        return 0.0
    return len(audio_data) / float(sample_rate)


def is_supported(path: str) -> bool:
    return os.path.splitext(path)[1].lower() in SUPPORTED_FORMATS


def _read_wav(path: str) -> Tuple[np.ndarray, int]:
    try:
        sample_rate, data = wav.read(path)
    except (OSError, ValueError, EOFError, struct.error, ZeroDivisionError) as e:
        raise DecodeError(f"Failed to decode: {e}") from e
    return data, sample_rate


def _read_with_ffmpeg(path: str) -> Tuple[np.ndarray, int]:
    """Decode any non-WAV container to mono float32 at TARGET_SAMPLE_RATE."""
    if not os.path.exists(path):
        raise DecodeError(f"Failed to decode: file not found: {path}")
    if shutil.which("ffmpeg") is None:
        raise DecodeError("Failed to decode: ffmpeg is required for non-WAV files")

    cmd = [
        "ffmpeg",
        "-i",
        path,
        "-ar",
        str(TARGET_SAMPLE_RATE),
        "-ac",
        "1",
        "-f",
        "f32le",
        "-v",
        "quiet",
        "pipe:1",
    ]
    try:
        result = subprocess.run(cmd, capture_output=True, timeout=FFMPEG_TIMEOUT_SECONDS)
    except subprocess.TimeoutExpired as e:
        raise DecodeError(
            f"Failed to decode: ffmpeg timed out after {FFMPEG_TIMEOUT_SECONDS}s"
        ) from e
    except OSError as e:
        raise DecodeError(f"Failed to decode: could not launch ffmpeg: {e}") from e

    if result.returncode != 0:
        stderr = result.stderr.decode("utf-8", errors="replace").strip()
        raise DecodeError(
            f"Failed to decode: ffmpeg exited with code {result.returncode} {stderr}".rstrip()
        )

    return np.frombuffer(result.stdout, dtype=np.float32), TARGET_SAMPLE_RATE


def load_audio_file(path: str) -> Tuple[np.ndarray, int]:
    """
    Load an audio file as engine-ready PCM.

    WAV is read directly; every other supported container is decoded by
    ffmpeg, which must be on PATH.

    Returns:
        Tuple of (mono float32 samples at TARGET_SAMPLE_RATE, TARGET_SAMPLE_RATE)

    Raises:
        DecodeError: If the file is missing, unsupported or malformed.
    """
    if not is_supported(path):
        raise DecodeError("Unsupported audio format")

    if os.path.splitext(path)[1].lower() == ".wav":
        data, sample_rate = _read_wav(path)
    else:
        data, sample_rate = _read_with_ffmpeg(path)

    if sample_rate <= 0:
        raise DecodeError(f"Failed to decode: invalid sample rate {sample_rate}")
    if data.size == 0:
        raise DecodeError("Audio file contains no samples")

    return prepare_for_engine(data, sample_rate), TARGET_SAMPLE_RATE
