"""
Replay Workspace - Wires sessions, store, controller and facade together.

The workspace enforces the ordering between components:
- one session change (ingest, activate, remove, restore) at a time;
- a session's table load completes before any query against it runs,
  and never interleaves with queries for the previous session;
- the controller is reinitialized from the store's timeline after each load;
- a failed store load leaves the registry, controller and loaded table as they were.
"""

import asyncio
from typing import Callable, Optional

from loguru import logger

from replaytrader.config import settings
from replaytrader.data.candles import Bar
from replaytrader.data.normalizer import IngestResult, normalize_text
from replaytrader.database import queries
from replaytrader.database.connection import BarStore
from replaytrader.errors import StoreError
from replaytrader.replay.controller import ReplayController, ReplaySnapshot
from replaytrader.replay.facade import QueryFacade, VisibleBars
from replaytrader.sessions.drawings import Drawing, DrawingPoint, DrawingStore
from replaytrader.sessions.registry import Session, SessionRegistry
from replaytrader.sessions.storage import KeyValueStore, create_store


class ReplayWorkspace:
    """
    Owns every component of one replay desk.

    With `auto_refresh` enabled, each cursor or timeframe change issues a
    fire-and-forget facade request; listeners registered with on_bars()
    receive only the newest result.
    """

    def __init__(
        self,
        store: Optional[BarStore] = None,
        kv_store: Optional[KeyValueStore] = None,
        speed_ms: Optional[int] = None,
        base_timeframe: Optional[int] = None,
        auto_refresh: bool = False,
    ):
        kv_store = kv_store or create_store(settings.storage_dir, settings.storage_quota_bytes)
        self.store = store or BarStore()
        self.registry = SessionRegistry(kv_store)
        self.drawings = DrawingStore(kv_store)
        self.controller = ReplayController(speed_ms)
        self.facade = QueryFacade(self.store, base_timeframe)
        self.timeframe = self.facade.base_timeframe
        self.loaded_session_id: Optional[str] = None
        self.row_count = 0
        self.last_error: Optional[Exception] = None

        self._session_lock = asyncio.Lock()
        self._pending: set[asyncio.Task] = set()
        self._last_cursor: Optional[int] = None
        self.auto_refresh = auto_refresh
        if auto_refresh:
            self.controller.subscribe(self._on_replay_change)

    # ============ Sessions ============

    @property
    def active_session(self) -> Optional[Session]:
        return self.registry.active_session

    async def ingest(self, text: str, source_name: Optional[str] = None) -> IngestResult:
        """
        Parse a file into a new active session and load it.

        Parsing and payload persistence run in a worker thread so the event
        loop (autoplay, HTTP requests) keeps running during large uploads.

        Raises:
            FormatError: Nothing could be parsed; no session or table is created
            StoreError: The bars could not be loaded; registry, controller and
                the previously loaded table are unchanged
        """
        async with self._session_lock:
            fallback = f"Dataset {len(self.registry) + 1}"
            result = await asyncio.to_thread(normalize_text, text, source_name, fallback)
            timestamps, row_count = await self._load_bars(result.bars)
            session_id = await asyncio.to_thread(self.registry.add, result.name, result.bars)
            logger.info(
                f"Ingested {result.accepted_count} bars into {session_id} "
                f"({result.dropped_count} rows dropped)"
            )
            self._set_loaded(session_id, timestamps, row_count)
            return result

    async def restore(self) -> int:
        """Restore persisted sessions and load the active one."""
        async with self._session_lock:
            count = self.registry.restore()
            session = self.registry.active_session
            if session is None:
                await self._unload()
            else:
                timestamps, row_count = await self._load_bars(session.bars)
                self._set_loaded(session.id, timestamps, row_count)
            return count

    async def activate(self, session_id: str):
        """
        Switch to another session.

        Raises:
            KeyError: Unknown session id
            StoreError: The session could not be loaded; the previous one stays active
        """
        async with self._session_lock:
            session = self.registry.get(session_id)
            if session is None:
                raise KeyError(session_id)
            timestamps, row_count = await self._load_bars(session.bars)
            self.registry.switch(session_id)
            self._set_loaded(session_id, timestamps, row_count)

    async def remove_session(self, session_id: str):
        """
        Delete a session with its drawings and load whatever becomes active.

        The fallback session is loaded before anything is deleted, so a
        StoreError leaves the session in place.
        """
        async with self._session_lock:
            if session_id not in self.registry:
                raise KeyError(session_id)

            if session_id == self.registry.active_id:
                remaining = [s for s in self.registry.sessions if s.id != session_id]
                if remaining:
                    fallback = remaining[0]
                    timestamps, row_count = await self._load_bars(fallback.bars)
                    self.registry.remove(session_id)
                    self._set_loaded(fallback.id, timestamps, row_count)
                else:
                    self.registry.remove(session_id)
                    await self._unload()
            else:
                self.registry.remove(session_id)
            self.drawings.clear_session(session_id)

    async def _load_bars(self, bars: list[Bar]) -> tuple[list[int], int]:
        """Replace the store table; nothing else changes if this raises."""
        logger.info(f"Loading {len(bars)} bars into store")
        async with self.store.lock:
            async with self.store.connection() as conn:
                await queries.replace_bars(conn, bars, self.store.batch_size)
                timestamps = await queries.get_all_timestamps(conn)
                row_count = await queries.get_row_count(conn)
        return timestamps, row_count

    def _set_loaded(self, session_id: str, timestamps: list[int], row_count: int):
        self.facade.invalidate()
        changed = session_id != self.loaded_session_id
        self.loaded_session_id = session_id
        self.row_count = row_count
        # A different session always replays from its start
        self.controller.initialize(timestamps, force=changed)
        self._schedule_refresh()

    async def _unload(self):
        async with self.store.lock:
            await self.store.close()
        self.facade.invalidate()
        self.loaded_session_id = None
        self.row_count = 0
        self.controller.initialize([])

    # ============ Queries ============

    def set_timeframe(self, seconds: int):
        seconds = int(seconds)
        if seconds <= 0:
            raise ValueError(f"Timeframe must be positive, got {seconds}")
        if seconds == self.timeframe:
            return
        self.timeframe = seconds
        self._schedule_refresh()

    async def visible_bars(self, timeframe: Optional[int] = None) -> list[Bar]:
        """Bars visible at the current cursor for the given (or current) timeframe."""
        timeframe = self.timeframe if timeframe is None else int(timeframe)
        if timeframe <= 0:
            raise ValueError(f"Timeframe must be positive, got {timeframe}")
        if self.loaded_session_id is None:
            return []
        return await self.facade.fetch(self.controller.current_timestamp, timeframe)

    def on_bars(self, listener: Callable[[VisibleBars], None]) -> Callable[[], None]:
        return self.facade.on_bars(listener)

    def _on_replay_change(self, snap: ReplaySnapshot):
        if snap.current_timestamp != self._last_cursor:
            self._last_cursor = snap.current_timestamp
            self._schedule_refresh()

    def _schedule_refresh(self):
        if not self.auto_refresh or self.loaded_session_id is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        task = loop.create_task(self._refresh(self.controller.current_timestamp, self.timeframe))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _refresh(self, cursor: Optional[int], timeframe: int):
        try:
            await self.facade.request(cursor, timeframe)
        except StoreError as e:
            self.last_error = e
            logger.error(f"Refresh at cursor {cursor} failed: {e}")

    async def wait_idle(self):
        """Wait for in-flight refresh requests."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    # ============ Drawings ============

    def add_drawing(
        self,
        type: str,
        points: list[DrawingPoint],
        color: str = "#f59e0b",
    ) -> Drawing:
        session_id = self.registry.active_id or "default"
        return self.drawings.add(session_id, type, points, color)

    def remove_drawing(self, drawing_id: str) -> bool:
        return self.drawings.remove(drawing_id)

    def active_drawings(self) -> list[Drawing]:
        return self.drawings.for_session(self.registry.active_id or "default")

    def clear_drawings(self) -> int:
        return self.drawings.clear_session(self.registry.active_id or "default")

    # ============ Lifecycle ============

    async def close(self):
        await self.controller.close()
        await self.wait_idle()
        async with self.store.lock:
            await self.store.close()
