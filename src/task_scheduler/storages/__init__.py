from .protocol import HistoryStore
from .memory import InMemoryHistoryStore

__all__ = ["HistoryStore", "InMemoryHistoryStore"]
