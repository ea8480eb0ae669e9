"""
Centralized application configuration.

Edit the variables below to configure development settings.
"""

import logging

# =============================================================================
# DEVELOPMENT SETTINGS - Edit these for local development
# =============================================================================
LOG_LEVEL = "DEBUG"  # DEBUG, INFO, WARNING, ERROR, CRITICAL
LOG_TO_CONSOLE = True  # Set to True to output logs to terminal
# =============================================================================

# =============================================================================
# HISTORY SETTINGS
# =============================================================================
MAX_HISTORY_ENTRIES = 50  # Number of transcription history records to keep
# =============================================================================

# =============================================================================
# AUDIO SETTINGS
# =============================================================================
TARGET_SAMPLE_RATE = 16000  # Rate every engine decodes at
MIN_RECORDING_SECONDS = 0.5  # Shorter recordings are rejected
LEVEL_INTERVAL_SECONDS = 0.1  # Cadence of mic-level summaries
SPECTRUM_BAND_COUNT = 8
MAX_BUFFER_SECONDS = 600  # 10 minutes
# =============================================================================

# =============================================================================
# MODEL SETTINGS
# =============================================================================
BUNDLED_MODEL_ID = "sherpa-onnx-whisper-tiny"
DOWNLOAD_PROGRESS_INTERVAL_SECONDS = 0.1
DOWNLOAD_CHUNK_SIZE = 8192
# =============================================================================


def get_log_level() -> int:
    """Get the logging level as an integer."""
    return getattr(logging, LOG_LEVEL.upper(), logging.INFO)
