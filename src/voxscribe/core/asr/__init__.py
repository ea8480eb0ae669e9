from .backends import (
    EngineAdapter,
    SherpaOnnxBackend,
    StreamingEngineAdapter,
    VoskBackend,
    create_backend,
)
from .batch_transcriber import BatchTranscriber
from .models import ModelDescriptor, ModelInfo, ModelRegistry

__all__ = [
    "EngineAdapter",
    "StreamingEngineAdapter",
    "SherpaOnnxBackend",
    "VoskBackend",
    "create_backend",
    "BatchTranscriber",
    "ModelDescriptor",
    "ModelInfo",
    "ModelRegistry",
]
