"""Command surface for a presentation layer, plus a small command-line front end."""

import argparse
import sys
from concurrent.futures import Future
from pathlib import Path
from typing import Any, List, Optional, Sequence

from voxscribe import __app_name__, __version__
from voxscribe.core.asr import BatchTranscriber, ModelDescriptor, ModelRegistry
from voxscribe.core.audio import AudioCapture, AudioDevice
from voxscribe.core.errors import AlreadyRecording, VoxScribeError
from voxscribe.core.events import (
    MODEL_DOWNLOAD_PROGRESS,
    RECORDING_STATUS,
    TRANSCRIPTION_CHUNK,
    EventCallback,
)
from voxscribe.core.session import SessionController, SessionSnapshot
from voxscribe.core.settings import HistoryStore, SessionConfig, Settings, get_config_dir
from voxscribe.core.types import FileTranscriptionResult, TranscriptionResult
from voxscribe.utils.logger import get_logger, shutdown_logging

logger = get_logger(__name__)


class DictationApp:
    """
    Facade wiring the session controller, model registry, batch transcriber
    and history together behind the commands a UI issues.

    Every event is forwarded to ``on_event(name, payload)``.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        on_event: Optional[EventCallback] = None,
        registry: Optional[ModelRegistry] = None,
        history: Optional[HistoryStore] = None,
        capture_factory=AudioCapture,
        settings_path: Optional[Path] = None,
    ):
        self.settings = settings if settings is not None else Settings.load(settings_path)
        self.on_event = on_event
        self._settings_path = settings_path

        self.registry = registry or ModelRegistry(
            active_model_id=self.settings.model_id, on_event=self._forward
        )
        if registry is not None and registry.on_event is None:
            registry.on_event = self._forward

        if history is None:
            history = HistoryStore(path=get_config_dir() / "history.json")
        self.history = history
        self.controller = SessionController(
            self.registry,
            self.history,
            capture_factory=capture_factory,
            on_event=self._forward,
        )
        self.batch = BatchTranscriber(
            self.registry, on_event=self._forward, history=self.history
        )

    def _forward(self, name: str, payload: Any) -> None:
        if self.on_event is not None:
            self.on_event(name, payload)

    # -- recording -----------------------------------------------------------

    def start_recording(self, config: Optional[SessionConfig] = None) -> None:
        config = config or self.settings.session_config()
        try:
            self.controller.start(config)
        except AlreadyRecording:
            logger.warning("Already recording, resetting state and retrying once")
            self.controller.reset_recording_state()
            self.controller.start(config)

    def stop_recording(self) -> TranscriptionResult:
        return self.controller.stop()

    def reset_recording_state(self) -> None:
        self.controller.reset_recording_state()

    def get_session(self) -> SessionSnapshot:
        return self.controller.snapshot()

    # -- files ---------------------------------------------------------------

    def transcribe_files(self, paths: Sequence[str]) -> List[FileTranscriptionResult]:
        config = self.settings.session_config()
        return self.batch.transcribe_files(
            paths,
            language_hint=config.language_hint,
            dictionary_hints=config.dictionary_hints,
        )

    def get_supported_formats(self) -> List[str]:
        return self.batch.supported_formats()

    # -- models --------------------------------------------------------------

    def get_available_models(self, family: Optional[str] = None) -> List[ModelDescriptor]:
        return self.registry.list(family)

    def download_model(self, model_id: str) -> "Future[str]":
        return self.registry.download(model_id)

    def cancel_download(self) -> None:
        self.registry.cancel_download()

    def switch_model(self, model_id: str) -> None:
        self.registry.switch(model_id)
        self._save_model_selection()

    def delete_model(self, model_id: str) -> None:
        self.registry.delete(model_id)
        self._save_model_selection()

    def _save_model_selection(self) -> None:
        active = self.registry.active_model_id
        if self.settings.model_id == active:
            return
        self.settings.model_id = active
        try:
            self.settings.save(self._settings_path)
        except OSError as e:
            logger.error(f"Could not save settings: {e}")

    # -- history / devices ---------------------------------------------------

    def get_history(self) -> List[TranscriptionResult]:
        return self.history.list()

    def clear_history(self) -> None:
        self.history.clear()

    @staticmethod
    def list_devices() -> List[AudioDevice]:
        return AudioCapture.list_devices()

    def shutdown(self) -> None:
        self.controller.reset_recording_state()
        self.registry.shutdown()


def _print_event(name: str, payload: Any) -> None:
    if name == RECORDING_STATUS:
        print(f"[{payload}]", file=sys.stderr)
    elif name == TRANSCRIPTION_CHUNK and not payload.is_final:
        print(payload.text, end="", flush=True)
    elif name == MODEL_DOWNLOAD_PROGRESS:
        print(f"\r{payload.model_id}: {payload.percent:5.1f}%", end="", file=sys.stderr)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="voxscribe", description="Offline voice dictation")
    parser.add_argument("--version", action="version", version=f"{__app_name__} {__version__}")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("devices", help="List input devices")
    models = sub.add_parser("models", help="List models of a family")
    models.add_argument("--family", default=None)
    for name, help_text in (
        ("download", "Download and install a model"),
        ("switch", "Select an installed model"),
        ("delete", "Delete an installed model"),
    ):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("model_id")
    sub.add_parser("record", help="Record until Enter is pressed, then transcribe")
    transcribe = sub.add_parser("transcribe", help="Transcribe audio files")
    transcribe.add_argument("files", nargs="+")
    history = sub.add_parser("history", help="Show or clear transcription history")
    history.add_argument("--clear", action="store_true")
    return parser


def _run(app: DictationApp, args: argparse.Namespace) -> int:
    if args.command == "devices":
        for device in app.list_devices():
            marker = "*" if device.is_default else " "
            print(f"{marker} {device.name} ({device.channels} ch, {device.default_sample_rate:.0f} Hz)")
    elif args.command == "models":
        active = app.registry.active_model_id
        for model in app.get_available_models(args.family):
            flags = "active" if model.id == active else ("installed" if model.available else "")
            print(f"{model.id:50} {model.size_bytes / 1e6:8.0f} MB  {flags}")
    elif args.command == "download":
        path = app.download_model(args.model_id).result()
        print(f"\nInstalled to {path}")
    elif args.command == "switch":
        app.switch_model(args.model_id)
    elif args.command == "delete":
        app.delete_model(args.model_id)
    elif args.command == "record":
        app.start_recording()
        try:
            input("Recording, press Enter to stop... ")
        except KeyboardInterrupt:
            app.reset_recording_state()
            return 130
        result = app.stop_recording()
        print(f"\n{result.text}")
    elif args.command == "transcribe":
        failed = 0
        for item in app.transcribe_files(args.files):
            if item.ok:
                print(f"{item.file_name}: {item.transcription.text}")
            else:
                failed += 1
                print(f"{item.file_name}: ERROR {item.error}", file=sys.stderr)
        return 1 if failed else 0
    elif args.command == "history":
        if args.clear:
            app.clear_history()
        else:
            for entry in app.get_history():
                print(f"{entry.timestamp:.0f}  [{entry.model_used}]  {entry.text}")
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    logger.info(f"Starting {__app_name__} v{__version__}")

    try:
        app = DictationApp(on_event=_print_event)
    except VoxScribeError as e:
        logger.error(f"Startup failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        shutdown_logging()
        return 1

    try:
        return _run(app, args)
    except VoxScribeError as e:
        logger.error(f"{args.command} failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        app.shutdown()
        shutdown_logging()


if __name__ == "__main__":
    sys.exit(main())
