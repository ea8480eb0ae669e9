from .history import HistoryStore
from .settings import SessionConfig, Settings, get_config_dir

__all__ = ["HistoryStore", "SessionConfig", "Settings", "get_config_dir"]
