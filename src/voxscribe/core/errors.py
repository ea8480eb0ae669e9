"""
Error taxonomy for the dictation core.

Session errors are terminal for the current recording cycle only; the
controller accepts a fresh start() or reset afterwards. Registry errors are
surfaced directly to the caller and never retried.
"""


class VoxScribeError(Exception):
    """Base class for every error raised by the core."""


# -- session -----------------------------------------------------------------


class SessionError(VoxScribeError):
    pass


class AlreadyRecording(SessionError):
    def __init__(self, message: str = "Already recording"):
        super().__init__(message)


class NotRecording(SessionError):
    def __init__(self, message: str = "Not recording"):
        super().__init__(message)


class SessionCancelled(SessionError):
    def __init__(self, message: str = "Recording session was reset"):
        super().__init__(message)


# -- audio -------------------------------------------------------------------


class AudioError(VoxScribeError):
    pass


class DeviceUnavailable(AudioError):
    pass


class AlreadyCapturing(AudioError):
    def __init__(self, message: str = "Audio capture already started"):
        super().__init__(message)


class AudioCaptureError(AudioError):
    pass


# -- engines -----------------------------------------------------------------


class DecodeError(VoxScribeError):
    pass


# -- model registry ----------------------------------------------------------


class RegistryError(VoxScribeError):
    pass


class UnknownModel(RegistryError):
    def __init__(self, model_id: str):
        super().__init__(f"Unknown model: {model_id}")
        self.model_id = model_id


class DownloadError(RegistryError):
    pass


class ModelNotInstalled(RegistryError):
    def __init__(self, model_id: str):
        super().__init__(
            f"Model '{model_id}' is not available. Please download it first."
        )
        self.model_id = model_id


class ModelInUse(RegistryError):
    def __init__(self, model_id: str, reason: str = "is in use by an active session"):
        super().__init__(f"Model '{model_id}' {reason}")
        self.model_id = model_id


class BundledModelMissing(RegistryError):
    pass
