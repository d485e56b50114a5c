"""
Drawing annotations attached to sessions.

Drawings are opaque to the replay core: they are stored and returned per
session, never interpreted.
"""

from dataclasses import dataclass, field, asdict
from typing import Literal, Optional

from loguru import logger

from replaytrader.errors import PersistenceError
from replaytrader.sessions.registry import generate_id
from replaytrader.sessions.storage import KeyValueStore, MemoryKeyValueStore


DRAWINGS_KEY = "replaytrader-drawings"

DrawingType = Literal["hline", "trendline"]


@dataclass
class DrawingPoint:
    time: int
    price: float


@dataclass
class Drawing:
    """A chart annotation anchored to time/price points."""
    id: str
    type: DrawingType
    points: list[DrawingPoint]
    color: str
    session_id: str

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "Drawing":
        return cls(
            id=data["id"],
            type=data["type"],
            points=[DrawingPoint(time=int(p["time"]), price=float(p["price"])) for p in data.get("points", [])],
            color=data.get("color", "#f59e0b"),
            session_id=data["session_id"],
        )


class DrawingStore:
    """All drawings across sessions, persisted as one list."""

    def __init__(self, store: Optional[KeyValueStore] = None):
        self.store = store or MemoryKeyValueStore()
        self._drawings: list[Drawing] = self._load()

    def _load(self) -> list[Drawing]:
        raw = self.store.get_json(DRAWINGS_KEY, default=[])
        drawings = []
        for item in raw if isinstance(raw, list) else []:
            try:
                drawings.append(Drawing.from_dict(item))
            except (KeyError, TypeError, ValueError):
                logger.warning(f"Skipping unreadable drawing: {item!r}")
        return drawings

    def _save(self):
        try:
            self.store.set_json(DRAWINGS_KEY, [d.to_dict() for d in self._drawings])
        except PersistenceError as e:
            logger.warning(f"Could not persist drawings: {e}")

    def add(
        self,
        session_id: str,
        type: DrawingType,
        points: list[DrawingPoint],
        color: str = "#f59e0b",
    ) -> Drawing:
        """Append a drawing for a session and persist."""
        if type not in ("hline", "trendline"):
            raise ValueError(f"Unknown drawing type: {type}")
        drawing = Drawing(
            id=generate_id("d"),
            type=type,
            points=list(points),
            color=color,
            session_id=session_id,
        )
        self._drawings.append(drawing)
        self._save()
        return drawing

    def remove(self, drawing_id: str) -> bool:
        """Remove a drawing by id. Returns False if it did not exist."""
        before = len(self._drawings)
        self._drawings = [d for d in self._drawings if d.id != drawing_id]
        if len(self._drawings) == before:
            return False
        self._save()
        return True

    def for_session(self, session_id: str) -> list[Drawing]:
        return [d for d in self._drawings if d.session_id == session_id]

    def clear_session(self, session_id: str) -> int:
        """Remove every drawing of a session. Returns how many were removed."""
        before = len(self._drawings)
        self._drawings = [d for d in self._drawings if d.session_id != session_id]
        removed = before - len(self._drawings)
        if removed:
            self._save()
        return removed

    def all(self) -> list[Drawing]:
        return list(self._drawings)
