import os
import shutil
import tarfile
import tempfile
import threading
import time
import zipfile
from typing import TYPE_CHECKING, Callable, Optional

import requests

from ....utils.logger import get_logger
from ...errors import DownloadError
from ...settings.config import (
    DOWNLOAD_CHUNK_SIZE,
    DOWNLOAD_PROGRESS_INTERVAL_SECONDS,
)
from ..file_utils import is_valid_model_dir

if TYPE_CHECKING:
    from .registry import ModelInfo

ProgressCallback = Callable[[int, int], None]


class ProgressThrottle:
    """Forward progress at most every ``interval`` seconds or whole percent."""

    def __init__(
        self,
        callback: Optional[ProgressCallback],
        interval: float = DOWNLOAD_PROGRESS_INTERVAL_SECONDS,
    ):
        self._callback = callback
        self._interval = interval
        self._last_time = 0.0
        self._last_percent = -1.0

    def __call__(self, downloaded: int, total: int) -> None:
        if self._callback is None:
            return

        percent = (downloaded / total) * 100.0 if total > 0 else 0.0
        now = time.monotonic()
        finished = total > 0 and downloaded >= total

        if (
            finished
            or now - self._last_time >= self._interval
            or percent - self._last_percent >= 1.0
        ):
            self._last_time = now
            self._last_percent = percent
            self._callback(downloaded, total)

    def finish(self, downloaded: int) -> None:
        if self._callback is not None and self._last_percent < 100.0:
            self._last_percent = 100.0
            self._callback(downloaded, downloaded)


class ModelDownloader:
    """
    Downloads and installs model archives atomically.

    Everything is staged in a hidden temporary directory inside the models
    directory and moved into place with a single rename, so a failed or
    cancelled download never leaves a partial model behind.
    """

    def __init__(self, models_dir: str):
        self.models_dir = models_dir
        self._cancelled = threading.Event()
        self._logger = get_logger(__name__)

    def cancel(self) -> None:
        self._cancelled.set()

    def download(
        self,
        model_info: "ModelInfo",
        on_progress: Optional[ProgressCallback] = None,
    ) -> str:
        self._cancelled.clear()
        os.makedirs(self.models_dir, exist_ok=True)

        final_path = os.path.join(self.models_dir, model_info.id)
        staging_dir = tempfile.mkdtemp(prefix=f".{model_info.id}-", dir=self.models_dir)
        throttle = ProgressThrottle(on_progress)

        try:
            archive_path = os.path.join(staging_dir, f"archive{model_info.archive_suffix}")
            self._fetch(model_info, archive_path, throttle)

            self._logger.info(f"Extracting {model_info.id}")
            extract_dir = os.path.join(staging_dir, "extracted")
            self._extract(archive_path, extract_dir)

            model_root = self._find_model_root(extract_dir)
            if not is_valid_model_dir(model_root, model_info.type):
                raise DownloadError(
                    f"Archive for '{model_info.id}' does not contain a valid "
                    f"{model_info.type} model"
                )

            if os.path.exists(final_path):
                shutil.rmtree(final_path)
            os.replace(model_root, final_path)

            self._logger.info(f"Model {model_info.id} downloaded successfully")
            return final_path

        except requests.RequestException as e:
            self._logger.error(f"Download failed: {e}")
            raise DownloadError(f"Download failed: {e}") from e
        except (OSError, tarfile.TarError, zipfile.BadZipFile) as e:
            self._logger.error(f"Install failed: {e}")
            raise DownloadError(f"Failed to install model: {e}") from e
        finally:
            shutil.rmtree(staging_dir, ignore_errors=True)

    def _fetch(
        self, model_info: "ModelInfo", archive_path: str, on_progress: ProgressThrottle
    ) -> None:
        self._logger.info(f"Downloading model from {model_info.url}")

        with requests.get(model_info.url, stream=True, timeout=30) as response:
            response.raise_for_status()

            total_size = int(response.headers.get("content-length", 0))
            if total_size <= 0:
                total_size = model_info.size_bytes
            downloaded = 0

            with open(archive_path, "wb") as f:
                for chunk in response.iter_content(chunk_size=DOWNLOAD_CHUNK_SIZE):
                    if self._cancelled.is_set():
                        self._logger.info("Download cancelled")
                        raise DownloadError("Download cancelled")
                    if not chunk:
                        continue
                    f.write(chunk)
                    downloaded += len(chunk)
                    on_progress(downloaded, max(total_size, downloaded))

        if "content-length" in response.headers and downloaded < total_size:
            raise DownloadError(
                f"Incomplete download: received {downloaded} of {total_size} bytes"
            )
        on_progress.finish(downloaded)

    @staticmethod
    def _extract(archive_path: str, extract_dir: str) -> None:
        os.makedirs(extract_dir, exist_ok=True)
        if zipfile.is_zipfile(archive_path):
            with zipfile.ZipFile(archive_path) as archive:
                archive.extractall(extract_dir)
        else:
            with tarfile.open(archive_path, "r:*") as archive:
                archive.extractall(path=extract_dir, filter="data")

    @staticmethod
    def _find_model_root(extract_dir: str) -> str:
        entries = [e for e in os.listdir(extract_dir) if not e.startswith(".")]
        if len(entries) == 1:
            candidate = os.path.join(extract_dir, entries[0])
            if os.path.isdir(candidate):
                return candidate
        return extract_dir
