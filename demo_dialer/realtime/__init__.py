from .client import RealtimeConnection
from .session import build_greeting_item, build_session_update

__all__ = ["RealtimeConnection", "build_greeting_item", "build_session_update"]
