"""Backend package for the Guess Who game server."""

from .config import BackendSettings, load_settings
from .engine import GameSession
from .models import GamePhase, JoinResult, PostRoundDecision
from .security import generate_token, normalize_code, sanitize_player_name
from .state import build_session_snapshot
from .store import InMemorySessionStore, SessionStore

__all__ = [
    "BackendSettings",
    "build_session_snapshot",
    "GamePhase",
    "GameSession",
    "generate_token",
    "InMemorySessionStore",
    "JoinResult",
    "load_settings",
    "normalize_code",
    "PostRoundDecision",
    "sanitize_player_name",
    "SessionStore",
]
