"""
Query Facade - Bars visible "as of" the replay cursor.

Turns (cursor timestamp, timeframe) into a store query. Rapid cursor
movement can leave several requests in flight; each one is tagged and a
response is only delivered if no newer request was issued meanwhile.
"""

from dataclasses import dataclass
from typing import Callable, Optional

from loguru import logger

from replaytrader.config import settings
from replaytrader.data.candles import Bar
from replaytrader.database import queries
from replaytrader.database.connection import BarStore


@dataclass(frozen=True)
class VisibleBars:
    """A delivered query result."""
    request_id: int
    cursor: Optional[int]
    timeframe: int
    bars: list[Bar]


BarsListener = Callable[[VisibleBars], None]


class QueryFacade:
    """Cursor-bounded bar queries with last-write-wins delivery."""

    def __init__(self, store: BarStore, base_timeframe: Optional[int] = None):
        self.store = store
        self.base_timeframe = base_timeframe or settings.base_timeframe
        self.latest: Optional[VisibleBars] = None
        self._issued = 0
        self._listeners: list[BarsListener] = []

    def on_bars(self, listener: BarsListener) -> Callable[[], None]:
        """Register a listener for delivered results."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def fetch(self, cursor: Optional[int], timeframe: Optional[int] = None) -> list[Bar]:
        """
        Query bars visible at `cursor`.

        Args:
            cursor: Current replay timestamp, or None before any data is loaded
            timeframe: Bucket width in seconds (defaults to the base resolution)

        Returns:
            Ascending bars; raw bars at the base resolution, aggregated otherwise

        Raises:
            StoreError: The store query failed
        """
        if cursor is None:
            return []
        timeframe = self.base_timeframe if timeframe is None else int(timeframe)
        if timeframe <= 0:
            raise ValueError(f"Timeframe must be positive, got {timeframe}")

        async with self.store.lock:
            async with self.store.connection() as conn:
                if timeframe == self.base_timeframe:
                    return await queries.query_bars(conn, cursor)
                return await queries.query_aggregated_bars(conn, cursor, timeframe)

    async def request(self, cursor: Optional[int], timeframe: Optional[int] = None) -> Optional[list[Bar]]:
        """
        Tagged fetch for fire-and-forget callers.

        Returns:
            The bars, or None if a newer request was issued before this one resolved
        """
        self._issued += 1
        request_id = self._issued
        timeframe = self.base_timeframe if timeframe is None else int(timeframe)

        bars = await self.fetch(cursor, timeframe)

        if request_id != self._issued:
            logger.debug(f"Discarding stale response #{request_id} (cursor={cursor})")
            return None

        self.latest = VisibleBars(request_id=request_id, cursor=cursor, timeframe=timeframe, bars=bars)
        for listener in list(self._listeners):
            listener(self.latest)
        return bars

    def invalidate(self):
        """Mark every in-flight request as stale (e.g. on session switch)."""
        self._issued += 1
        self.latest = None
