from .history_store import HistoryStore
from .session_cache import SessionCache

__all__ = [
    "HistoryStore",
    "SessionCache",
]
