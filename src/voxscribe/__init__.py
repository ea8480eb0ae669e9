"""VoxScribe - offline voice dictation core."""

__app_name__ = "VoxScribe"
__version__ = "0.3.0"
