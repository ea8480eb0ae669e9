from .downloader import ModelDownloader, ProgressThrottle
from .registry import ModelDescriptor, ModelInfo, ModelRegistry, load_models

__all__ = [
    "ModelDownloader",
    "ProgressThrottle",
    "ModelDescriptor",
    "ModelInfo",
    "ModelRegistry",
    "load_models",
]
