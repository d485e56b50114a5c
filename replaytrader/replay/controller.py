"""
Replay Controller - A time cursor over the active session's timeline.

The controller owns an index into the ordered, distinct bar timestamps of the
active session. Consumers only ever see bars up to the timestamp under the
cursor (no look-ahead), so every transition is a move of that index.

States:
- IDLE: no timestamps loaded
- READY: timestamps loaded, index valid; playing/paused is orthogonal

Autoplay is the only automatic transition: while playing, an asyncio task
advances the index by one every `speed_ms` milliseconds and pauses itself on
the last bar.
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional, Sequence

from loguru import logger

from replaytrader.config import settings


class ReplayPhase(Enum):
    """Controller states."""
    IDLE = "idle"
    READY = "ready"


@dataclass
class ReplayState:
    """Mutable state of the replay cursor."""
    timestamps: list[int] = field(default_factory=list)
    index: int = 0
    playing: bool = False
    speed_ms: int = 300


@dataclass(frozen=True)
class ReplaySnapshot:
    """Read-only view of the state plus derived values."""
    phase: ReplayPhase
    index: int
    playing: bool
    speed_ms: int
    current_timestamp: Optional[int]
    progress: float
    total_count: int

    def to_dict(self) -> dict:
        return {
            "phase": self.phase.value,
            "index": self.index,
            "playing": self.playing,
            "speed_ms": self.speed_ms,
            "current_timestamp": self.current_timestamp,
            "progress": self.progress,
            "total_count": self.total_count,
        }


Listener = Callable[[ReplaySnapshot], None]


class ReplayController:
    """
    Finite state machine for bar-by-bar replay.

    Methods that start autoplay (play, toggle_play, set_speed while playing)
    must be called from within a running event loop.
    """

    def __init__(self, speed_ms: Optional[int] = None):
        self.state = ReplayState(speed_ms=speed_ms or settings.default_speed_ms)
        self._timer: Optional[asyncio.Task] = None
        self._listeners: list[Listener] = []
        self._last_snapshot: Optional[ReplaySnapshot] = None

    # ============ Derived values ============

    @property
    def total_count(self) -> int:
        return len(self.state.timestamps)

    @property
    def phase(self) -> ReplayPhase:
        return ReplayPhase.READY if self.state.timestamps else ReplayPhase.IDLE

    @property
    def index(self) -> int:
        return self.state.index

    @property
    def playing(self) -> bool:
        return self.state.playing

    @property
    def speed_ms(self) -> int:
        return self.state.speed_ms

    @property
    def timestamps(self) -> list[int]:
        return list(self.state.timestamps)

    @property
    def current_timestamp(self) -> Optional[int]:
        if not self.state.timestamps:
            return None
        return self.state.timestamps[self.state.index]

    @property
    def progress(self) -> float:
        """Percent of the timeline replayed (0-100)."""
        if self.total_count <= 1:
            return 0.0
        return self.state.index / (self.total_count - 1) * 100

    def snapshot(self) -> ReplaySnapshot:
        return ReplaySnapshot(
            phase=self.phase,
            index=self.state.index,
            playing=self.state.playing,
            speed_ms=self.state.speed_ms,
            current_timestamp=self.current_timestamp,
            progress=self.progress,
            total_count=self.total_count,
        )

    # ============ Subscription ============

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener called with a snapshot after each state change."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self):
        snap = self.snapshot()
        if snap == self._last_snapshot:
            return
        self._last_snapshot = snap
        for listener in list(self._listeners):
            listener(snap)

    # ============ Transitions ============

    def initialize(self, timestamps: Sequence[int], force: bool = False):
        """
        Load a timeline: index 0, paused.

        An identical timeline is a no-op unless `force` is set (used when the
        active session changes to one with the same timestamps).
        """
        timestamps = list(timestamps)
        if timestamps == self.state.timestamps and not force:
            return
        self.state.timestamps = timestamps
        self.state.index = 0
        self.state.playing = False
        self._restart_timer()
        logger.debug(f"Replay initialized with {len(timestamps)} timestamps")
        self._emit()

    def _clamp(self, i: int) -> int:
        return max(0, min(int(i), self.total_count - 1))

    def step_forward(self, n: int = 1):
        if self.total_count == 0:
            return
        self.state.index = self._clamp(self.state.index + n)
        self._emit()

    def step_backward(self, n: int = 1):
        if self.total_count == 0:
            return
        self.state.index = self._clamp(self.state.index - n)
        self._emit()

    def set_index(self, i: int):
        if self.total_count == 0:
            return
        self.state.index = self._clamp(i)
        self._emit()

    def play(self):
        self._set_playing(True)

    def pause(self):
        self._set_playing(False)

    def toggle_play(self):
        self._set_playing(not self.state.playing)

    def _set_playing(self, playing: bool):
        if self.total_count == 0 or playing == self.state.playing:
            return
        self.state.playing = playing
        try:
            self._restart_timer()
        except RuntimeError:
            # No running event loop: keep the previous state
            self.state.playing = not playing
            raise
        self._emit()

    def set_speed(self, ms: int):
        """Change autoplay speed; applies from the next tick."""
        ms = int(ms)
        if ms <= 0:
            raise ValueError(f"Speed must be positive, got {ms}")
        if ms == self.state.speed_ms:
            return
        previous = self.state.speed_ms
        self.state.speed_ms = ms
        try:
            self._restart_timer()
        except RuntimeError:
            self.state.speed_ms = previous
            raise
        self._emit()

    def reset(self):
        self.pause()
        self.set_index(0)

    # ============ Autoplay ============

    def _cancel_timer(self):
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = None

    def _restart_timer(self):
        """
        Cancel the autoplay task and start a new one if playing.

        Raises RuntimeError (before touching the current timer) when playing
        outside a running event loop.
        """
        loop = None
        if self.state.playing and self.total_count > 0:
            loop = asyncio.get_running_loop()
        self._cancel_timer()
        if loop is not None:
            self._timer = loop.create_task(self._autoplay(self.state.speed_ms))

    async def _autoplay(self, speed_ms: int):
        while True:
            await asyncio.sleep(speed_ms / 1000.0)
            if self.state.index < self.total_count - 1:
                self.state.index += 1
            if self.state.index >= self.total_count - 1:
                # Reached the end: pause without cancelling ourselves
                self._timer = None
                self.state.playing = False
                logger.debug("Replay reached the last bar")
                self._emit()
                return
            self._emit()

    async def close(self):
        """Stop autoplay and wait for the timer task to finish."""
        timer = self._timer
        self._cancel_timer()
        if timer is not None:
            try:
                await timer
            except asyncio.CancelledError:
                pass
