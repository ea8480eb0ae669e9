"""
Model catalogue and the registry that installs, selects and leases models.

The active selection is read once when a session starts; switching models
never alters a session that already holds an engine lease.
"""

import json
import os
import shutil
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from ....utils.logger import get_logger
from ...errors import (
    BundledModelMissing,
    ModelInUse,
    ModelNotInstalled,
    UnknownModel,
)
from ...events import (
    MODEL_DOWNLOAD_COMPLETE,
    MODEL_DOWNLOAD_PROGRESS,
    DownloadProgress,
    EventCallback,
    emit,
)
from ...settings.config import BUNDLED_MODEL_ID
from ..backends import EngineAdapter, create_backend
from ..file_utils import get_bundled_models_dir, get_models_dir, is_valid_model_dir
from .downloader import ModelDownloader

logger = get_logger(__name__)

EngineFactory = Callable[[str, str, str], EngineAdapter]


@dataclass(frozen=True)
class ModelInfo:
    id: str
    name: str
    type: str
    family: str
    size_bytes: int
    url: str
    bundled: bool = False

    @property
    def archive_suffix(self) -> str:
        for suffix in (".tar.bz2", ".tar.gz", ".zip"):
            if self.url.endswith(suffix):
                return suffix
        return ""


@dataclass(frozen=True)
class ModelDescriptor:
    id: str
    display_name: str
    available: bool
    size_bytes: int
    engine_type: str
    family: str
    bundled: bool = False


def load_models(json_path: Optional[str] = None) -> List[ModelInfo]:
    if json_path is None:
        json_path = os.path.join(os.path.dirname(os.path.abspath(__file__)), "models.json")

    with open(json_path, "r", encoding="utf-8") as f:
        data = json.load(f)
    return [ModelInfo(**item) for item in data]


class ModelRegistry:
    def __init__(
        self,
        models_dir: Optional[str] = None,
        bundled_dir: Optional[str] = None,
        catalog: Optional[List[ModelInfo]] = None,
        active_model_id: Optional[str] = None,
        on_event: Optional[EventCallback] = None,
        engine_factory: EngineFactory = create_backend,
    ):
        self.models_dir = models_dir or get_models_dir()
        self.bundled_dir = bundled_dir or get_bundled_models_dir()
        self.on_event = on_event

        self._catalog: Dict[str, ModelInfo] = {
            m.id: m for m in (catalog if catalog is not None else load_models())
        }
        self._engine_factory = engine_factory
        self._lock = threading.RLock()
        self._engines: Dict[str, EngineAdapter] = {}
        self._leases: Dict[str, int] = {}
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="model-download")
        self._downloader = ModelDownloader(self.models_dir)

        self._bundled_id = self._verify_bundled()
        self._active_id = self._bundled_id
        if active_model_id and active_model_id != self._bundled_id:
            if self.is_installed(active_model_id):
                self._active_id = active_model_id
            else:
                logger.warning(
                    f"Model {active_model_id} not available, "
                    f"falling back to {self._bundled_id}"
                )

    def _verify_bundled(self) -> str:
        bundled = [m for m in self._catalog.values() if m.bundled]
        if not bundled:
            raise BundledModelMissing("Catalogue does not declare a bundled model")
        info = next((m for m in bundled if m.id == BUNDLED_MODEL_ID), bundled[0])

        path = os.path.join(self.bundled_dir, info.id)
        if not is_valid_model_dir(path, info.type):
            raise BundledModelMissing(
                f"Bundled model '{info.id}' is missing or incomplete at {path}"
            )
        return info.id

    # -- catalogue -----------------------------------------------------------

    @property
    def bundled_model_id(self) -> str:
        return self._bundled_id

    @property
    def active_model_id(self) -> str:
        with self._lock:
            return self._active_id

    @property
    def active_family(self) -> str:
        return self.get_model_info(self.active_model_id).family

    def get_model_info(self, model_id: str) -> ModelInfo:
        try:
            return self._catalog[model_id]
        except KeyError:
            raise UnknownModel(model_id) from None

    def model_path(self, model_id: str) -> Optional[str]:
        info = self.get_model_info(model_id)
        base = self.bundled_dir if info.bundled else self.models_dir
        path = os.path.join(base, info.id)
        if is_valid_model_dir(path, info.type):
            return path
        return None

    def is_installed(self, model_id: str) -> bool:
        return self.model_path(model_id) is not None

    def list(self, family: Optional[str] = None) -> List[ModelDescriptor]:
        family = family or self.active_family
        return [
            ModelDescriptor(
                id=info.id,
                display_name=info.name,
                available=self.is_installed(info.id),
                size_bytes=info.size_bytes,
                engine_type=info.type,
                family=info.family,
                bundled=info.bundled,
            )
            for info in self._catalog.values()
            if info.family == family
        ]

    def families(self) -> List[str]:
        seen: List[str] = []
        for info in self._catalog.values():
            if info.family not in seen:
                seen.append(info.family)
        return seen

    # -- install / remove ----------------------------------------------------

    def download(self, model_id: str) -> "Future[str]":
        info = self.get_model_info(model_id)

        existing = self.model_path(model_id)
        if existing is not None:
            logger.info(f"Model {model_id} already installed, skipping download")
            future: "Future[str]" = Future()
            future.set_result(existing)
            emit(self.on_event, MODEL_DOWNLOAD_COMPLETE, model_id)
            return future

        return self._executor.submit(self._download, info)

    def _download(self, info: ModelInfo) -> str:
        existing = self.model_path(info.id)
        if existing is not None:
            logger.info(f"Model {info.id} was installed while queued, skipping download")
            emit(self.on_event, MODEL_DOWNLOAD_COMPLETE, info.id)
            return existing

        def on_progress(downloaded: int, total: int) -> None:
            percent = (downloaded / total) * 100.0 if total > 0 else 100.0
            emit(
                self.on_event,
                MODEL_DOWNLOAD_PROGRESS,
                DownloadProgress(info.id, downloaded, total, percent),
            )

        path = self._downloader.download(info, on_progress=on_progress)

        emit(self.on_event, MODEL_DOWNLOAD_COMPLETE, info.id)
        return path

    def cancel_download(self) -> None:
        self._downloader.cancel()

    def delete(self, model_id: str) -> None:
        info = self.get_model_info(model_id)
        if info.bundled:
            raise ModelInUse(model_id, "is bundled and cannot be deleted")

        with self._lock:
            if self._leases.get(model_id):
                raise ModelInUse(model_id)

            path = os.path.join(self.models_dir, model_id)
            if not os.path.isdir(path):
                raise ModelNotInstalled(model_id)

            engine = self._engines.pop(model_id, None)
            if engine is not None:
                engine.unload()
            shutil.rmtree(path)
            logger.info(f"Deleted model '{model_id}'")

            if self._active_id == model_id:
                self._active_id = self._bundled_id
                logger.info(f"Active model reset to {self._bundled_id}")

    def switch(self, model_id: str) -> None:
        self.get_model_info(model_id)
        if not self.is_installed(model_id):
            raise ModelNotInstalled(model_id)

        with self._lock:
            previous = self._active_id
            self._active_id = model_id
            if previous != model_id and not self._leases.get(previous):
                engine = self._engines.pop(previous, None)
                if engine is not None:
                    engine.unload()

        logger.info(f"Switched model: {previous} -> {model_id}")

    # -- engine leases -------------------------------------------------------

    def acquire_engine(self) -> Tuple[str, EngineAdapter]:
        """Lease the loaded engine of the current selection for one session."""
        with self._lock:
            model_id = self._active_id
            engine = self._load_engine(model_id)
            self._leases[model_id] = self._leases.get(model_id, 0) + 1
            return model_id, engine

    def release(self, model_id: str) -> None:
        with self._lock:
            count = self._leases.get(model_id, 0) - 1
            if count > 0:
                self._leases[model_id] = count
                return
            self._leases.pop(model_id, None)
            if model_id != self._active_id:
                engine = self._engines.pop(model_id, None)
                if engine is not None:
                    engine.unload()

    def in_use(self, model_id: str) -> bool:
        with self._lock:
            return bool(self._leases.get(model_id))

    def _load_engine(self, model_id: str) -> EngineAdapter:
        engine = self._engines.get(model_id)
        if engine is not None:
            return engine

        path = self.model_path(model_id)
        if path is None:
            raise ModelNotInstalled(model_id)

        info = self.get_model_info(model_id)
        engine = self._engine_factory(info.type, path, info.name)
        engine.load()
        self._engines[model_id] = engine
        return engine

    def shutdown(self) -> None:
        self.cancel_download()
        self._executor.shutdown(wait=False)
        with self._lock:
            for engine in self._engines.values():
                engine.unload()
            self._engines.clear()
