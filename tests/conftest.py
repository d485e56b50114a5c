import pytest
import pytest_asyncio

from replaytrader.data.candles import Bar
from replaytrader.database import queries
from replaytrader.database.connection import BarStore
from replaytrader.replay.workspace import ReplayWorkspace
from replaytrader.sessions.storage import MemoryKeyValueStore


# 2023-11-14 22:10:00 UTC, aligned on a 5m boundary
T0 = 1699999800


def make_bars(count: int, start: int = T0, step: int = 60) -> list[Bar]:
    """Consecutive bars with a rising close."""
    return [
        Bar(time=start + i * step, open=100.0 + i, high=101.0 + i, low=99.0 + i, close=100.5 + i, volume=10.0 * (i + 1))
        for i in range(count)
    ]


def bars_to_csv(bars: list[Bar], header: str = "time,open,high,low,close,volume") -> str:
    lines = [header] + [f"{b.time},{b.open},{b.high},{b.low},{b.close},{b.volume}" for b in bars]
    return "\n".join(lines) + "\n"


@pytest.fixture
def kv_store():
    return MemoryKeyValueStore()


@pytest_asyncio.fixture
async def store():
    store = BarStore("sqlite+aiosqlite://", batch_size=2)
    yield store
    await store.close()


@pytest_asyncio.fixture
async def loaded_store(store):
    """Store holding six consecutive 1m bars starting at T0."""
    async with store.connection() as conn:
        await queries.create_bar_table(conn)
        await queries.insert_bars(conn, make_bars(6), store.batch_size)
    return store


@pytest_asyncio.fixture
async def workspace(kv_store):
    ws = ReplayWorkspace(
        store=BarStore("sqlite+aiosqlite://"),
        kv_store=kv_store,
        speed_ms=10,
    )
    yield ws
    await ws.close()
