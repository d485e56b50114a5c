"""
Sessions module.
Session registry, drawing annotations and their best-effort persistence.
"""

from replaytrader.sessions.storage import KeyValueStore, MemoryKeyValueStore, FileKeyValueStore, create_store
from replaytrader.sessions.registry import Session, SessionRegistry
from replaytrader.sessions.drawings import Drawing, DrawingPoint, DrawingStore

__all__ = [
    "KeyValueStore",
    "MemoryKeyValueStore",
    "FileKeyValueStore",
    "create_store",
    "Session",
    "SessionRegistry",
    "Drawing",
    "DrawingPoint",
    "DrawingStore",
]
