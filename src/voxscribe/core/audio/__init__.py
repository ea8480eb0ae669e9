from .audio_processor import SUPPORTED_FORMATS, load_audio_file, prepare_for_engine
from .recorder import AudioCapture, AudioDevice

__all__ = [
    "AudioCapture",
    "AudioDevice",
    "SUPPORTED_FORMATS",
    "load_audio_file",
    "prepare_for_engine",
]
