import os
import sys
from typing import Optional

import platformdirs

WHISPER = "whisper"
TRANSDUCER = "transducer"
VOSK = "vosk"


def get_models_dir() -> str:
    return os.path.join(
        platformdirs.user_data_dir("VoxScribe", appauthor=False), "models"
    )


def find_file_by_suffix(directory: str, *suffixes: str) -> Optional[str]:
    try:
        for filename in sorted(os.listdir(directory)):
            for suffix in suffixes:
                if filename.endswith(suffix):
                    return os.path.join(directory, filename)
    except OSError:
        pass
    return None


def has_file_with_suffix(directory: str, *suffixes: str) -> bool:
    return find_file_by_suffix(directory, *suffixes) is not None


def find_file_exact(directory: str, candidates: list[str]) -> Optional[str]:
    for name in candidates:
        path = os.path.join(directory, name)
        if os.path.exists(path):
            return path
    return None


def is_valid_whisper_model(model_path: str) -> bool:
    has_encoder = has_file_with_suffix(
        model_path, "-encoder.onnx", "-encoder.int8.onnx"
    )
    has_decoder = has_file_with_suffix(
        model_path, "-decoder.onnx", "-decoder.int8.onnx"
    )
    has_tokens = has_file_with_suffix(model_path, "-tokens.txt", "tokens.txt")
    return has_encoder and has_decoder and has_tokens


def is_valid_transducer_model(model_path: str) -> bool:
    parts = ("encoder", "decoder", "joiner")
    for part in parts:
        candidates = [f"{part}.onnx", f"{part}.int8.onnx", f"{part}.fp16.onnx"]
        if find_file_exact(model_path, candidates) is None:
            return False
    return os.path.exists(os.path.join(model_path, "tokens.txt"))


def is_valid_vosk_model(model_path: str) -> bool:
    # Kaldi layout: am/final.mdl plus conf/model.conf
    has_acoustic = os.path.exists(os.path.join(model_path, "am", "final.mdl"))
    has_config = os.path.exists(os.path.join(model_path, "conf", "model.conf"))
    return has_acoustic and has_config


def is_valid_model_dir(model_path: str, model_type: str) -> bool:
    if not os.path.isdir(model_path):
        return False
    if model_type == WHISPER:
        return is_valid_whisper_model(model_path)
    if model_type == TRANSDUCER:
        return is_valid_transducer_model(model_path)
    if model_type == VOSK:
        return is_valid_vosk_model(model_path)
    raise ValueError(f"Unknown model type: {model_type}")


def get_bundled_models_dir() -> str:
    override = os.environ.get("VOXSCRIBE_BUNDLED_MODELS_DIR")
    if override:
        return override
    return os.path.join(sys.prefix, "share", "voxscribe", "models")
