from .controller import SessionController
from .state import SessionSnapshot, SessionState, SessionStatus

__all__ = ["SessionController", "SessionSnapshot", "SessionState", "SessionStatus"]
