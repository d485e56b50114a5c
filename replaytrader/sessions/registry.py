"""
Session Registry - Manage independently loaded datasets.

Each session owns its bars. Identities (id, name) and bar payloads are
persisted separately so a payload that fails to save only costs that one
session on the next restart.
"""

from dataclasses import dataclass, field
from typing import Optional, Sequence
import random
import string
import time

from loguru import logger

from replaytrader.data.candles import Bar
from replaytrader.errors import PersistenceError
from replaytrader.sessions.storage import KeyValueStore, MemoryKeyValueStore


SESSIONS_KEY = "replaytrader-sessions"
BARS_KEY_PREFIX = "rt-candles-"

_ID_ALPHABET = string.digits + string.ascii_lowercase


def generate_id(prefix: str) -> str:
    """Opaque id like 's_1700000000000_k3j9x2'."""
    suffix = "".join(random.choices(_ID_ALPHABET, k=6))
    return f"{prefix}_{int(time.time() * 1000)}_{suffix}"


def bars_key(session_id: str) -> str:
    return f"{BARS_KEY_PREFIX}{session_id}"


@dataclass
class Session:
    """One loaded dataset."""
    id: str
    name: str
    bars: list[Bar] = field(default_factory=list)

    def to_meta(self) -> dict:
        return {"id": self.id, "name": self.name}


class SessionRegistry:
    """
    Registry for loaded sessions and the active selection.

    Persistence failures are logged and otherwise ignored: the in-memory
    registry is always authoritative.
    """

    def __init__(self, store: Optional[KeyValueStore] = None):
        self.store = store or MemoryKeyValueStore()
        self._sessions: list[Session] = []
        self._active_id: Optional[str] = None

    # ============ Accessors ============

    @property
    def sessions(self) -> list[Session]:
        return list(self._sessions)

    @property
    def active_id(self) -> Optional[str]:
        return self._active_id

    @property
    def active_session(self) -> Optional[Session]:
        if self._active_id is None:
            return None
        return self.get(self._active_id)

    def get(self, session_id: str) -> Optional[Session]:
        for session in self._sessions:
            if session.id == session_id:
                return session
        return None

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return self.get(session_id) is not None

    # ============ Operations ============

    def add(self, name: str, bars: Sequence[Bar]) -> str:
        """Register a new session, persist it and make it active."""
        session = Session(id=generate_id("s"), name=name, bars=list(bars))
        self._sessions.append(session)
        self._save_meta()
        self._save_bars(session)
        self._active_id = session.id
        logger.info(f"Added session {session.id} ({name}, {len(session.bars)} bars)")
        return session.id

    def remove(self, session_id: str):
        """Delete a session; activation falls back to the first remaining one."""
        session = self.get(session_id)
        if session is None:
            raise KeyError(session_id)

        self._sessions.remove(session)
        self._save_meta()
        try:
            self.store.delete(bars_key(session_id))
        except PersistenceError as e:
            logger.warning(f"Could not delete payload for {session_id}: {e}")

        if self._active_id == session_id:
            self._active_id = self._sessions[0].id if self._sessions else None
        logger.info(f"Removed session {session_id}; active is now {self._active_id}")

    def switch(self, session_id: str):
        """Change the active session."""
        if session_id not in self:
            raise KeyError(session_id)
        self._active_id = session_id

    def restore(self) -> int:
        """
        Reload persisted sessions.

        Sessions whose payload is missing, empty or corrupt are dropped.

        Returns:
            Number of sessions restored
        """
        meta = self.store.get_json(SESSIONS_KEY, default=[])
        if not isinstance(meta, list):
            meta = []

        restored: list[Session] = []
        for entry in meta:
            try:
                session_id, name = entry["id"], entry["name"]
            except (KeyError, TypeError):
                continue
            payload = self.store.get_json(bars_key(session_id), default=[])
            try:
                bars = [Bar.from_dict(b) for b in payload]
            except (KeyError, TypeError, ValueError):
                logger.warning(f"Discarding unreadable payload for {session_id}")
                bars = []
            if bars:
                restored.append(Session(id=session_id, name=name, bars=bars))

        self._sessions = restored
        self._active_id = restored[0].id if restored else None
        if len(restored) != len(meta):
            # Forget ids whose payload is gone
            self._save_meta()
        logger.info(f"Restored {len(restored)} of {len(meta)} persisted sessions")
        return len(restored)

    # ============ Persistence ============

    def _save_meta(self):
        try:
            self.store.set_json(SESSIONS_KEY, [s.to_meta() for s in self._sessions])
        except PersistenceError as e:
            logger.warning(f"Could not persist session list: {e}")

    def _save_bars(self, session: Session):
        try:
            self.store.set_json(bars_key(session.id), [b.to_dict() for b in session.bars])
        except PersistenceError as e:
            logger.warning(f"Could not persist bars for {session.id} ({len(session.bars)} bars): {e}")
