"""
Tests for the bar store contract (SQLite in memory).
"""

import pytest

from replaytrader.data.candles import Bar
from replaytrader.database import queries
from replaytrader.database.connection import BarStore
from replaytrader.errors import StoreError

from conftest import T0, make_bars


AGGREGATION_BARS = [
    Bar(time=T0, open=10, high=12, low=9, close=11, volume=100),
    Bar(time=T0 + 60, open=11, high=15, low=10, close=12, volume=200),
    Bar(time=T0 + 120, open=12, high=13, low=8, close=12.5, volume=300),
    Bar(time=T0 + 180, open=12.5, high=14, low=11, close=13, volume=400),
    Bar(time=T0 + 240, open=13, high=13.5, low=12, close=12.8, volume=500),
    Bar(time=T0 + 300, open=12.8, high=16, low=12, close=15, volume=600),
]


async def _load(store: BarStore, bars: list[Bar]):
    async with store.connection() as conn:
        await queries.create_bar_table(conn)
        return await queries.insert_bars(conn, bars, store.batch_size)


class TestInsertAndRange:

    @pytest.mark.asyncio
    async def test_batched_insert_keeps_every_row(self, store):
        inserted = await _load(store, make_bars(5))
        async with store.connection() as conn:
            assert await queries.get_row_count(conn) == 5
        assert inserted == 5

    @pytest.mark.asyncio
    async def test_insert_empty_is_noop(self, store):
        assert await _load(store, []) == 0

    @pytest.mark.asyncio
    async def test_range_query_hides_future_bars(self, loaded_store):
        async with loaded_store.connection() as conn:
            bars = await queries.query_bars(conn, T0 + 120)
        assert bars == make_bars(3)

    @pytest.mark.asyncio
    async def test_range_query_before_first_bar_is_empty(self, loaded_store):
        async with loaded_store.connection() as conn:
            assert await queries.query_bars(conn, T0 - 1) == []

    @pytest.mark.asyncio
    async def test_distinct_times_ascending(self, loaded_store):
        async with loaded_store.connection() as conn:
            assert await queries.get_all_timestamps(conn) == [T0 + i * 60 for i in range(6)]

    @pytest.mark.asyncio
    async def test_replace_table_discards_previous_rows(self, loaded_store):
        await _load(loaded_store, make_bars(2, start=T0 + 10_000))
        async with loaded_store.connection() as conn:
            assert await queries.get_row_count(conn) == 2
            assert await queries.get_all_timestamps(conn) == [T0 + 10_000, T0 + 10_060]


class TestDuplicates:

    @pytest.mark.asyncio
    async def test_last_inserted_row_wins(self, store):
        first = Bar(time=T0, open=1, high=1, low=1, close=1, volume=1)
        second = Bar(time=T0, open=2, high=2, low=2, close=2, volume=2)
        await _load(store, [first, second, *make_bars(1, start=T0 + 60)])

        async with store.connection() as conn:
            assert await queries.get_row_count(conn) == 3
            assert await queries.get_all_timestamps(conn) == [T0, T0 + 60]
            bars = await queries.query_bars(conn, T0)
            aggregated = await queries.query_aggregated_bars(conn, T0 + 60, 300)

        assert bars == [second]
        assert aggregated[0].open == 2
        assert aggregated[0].volume == 2 + 10


class TestAggregation:

    @pytest.mark.asyncio
    async def test_five_minute_bucket(self, store):
        await _load(store, AGGREGATION_BARS[:5])
        async with store.connection() as conn:
            buckets = await queries.query_aggregated_bars(conn, T0 + 240, 300)

        assert buckets == [Bar(time=T0, open=10, high=15, low=8, close=12.8, volume=1500)]

    @pytest.mark.asyncio
    async def test_sixth_bar_opens_next_bucket(self, store):
        await _load(store, AGGREGATION_BARS)
        async with store.connection() as conn:
            buckets = await queries.query_aggregated_bars(conn, T0 + 300, 300)

        assert [b.time for b in buckets] == [T0, T0 + 300]
        assert buckets[1] == Bar(time=T0 + 300, open=12.8, high=16, low=12, close=15, volume=600)

    @pytest.mark.asyncio
    async def test_partial_bucket_respects_cursor(self, store):
        await _load(store, AGGREGATION_BARS)
        async with store.connection() as conn:
            buckets = await queries.query_aggregated_bars(conn, T0 + 180, 300)

        assert buckets == [Bar(time=T0, open=10, high=15, low=8, close=13, volume=1000)]

    @pytest.mark.asyncio
    async def test_unaligned_bucket_start_is_floored(self, store):
        await _load(store, make_bars(3, start=T0 + 30))
        async with store.connection() as conn:
            buckets = await queries.query_aggregated_bars(conn, T0 + 1000, 900)

        assert [b.time for b in buckets] == [T0 - (T0 % 900)]

    @pytest.mark.asyncio
    async def test_non_positive_width_rejected(self, loaded_store):
        async with loaded_store.connection() as conn:
            with pytest.raises(ValueError):
                await queries.query_aggregated_bars(conn, T0, 0)


class TestReplaceBars:

    @pytest.mark.asyncio
    async def test_replace_swaps_contents(self, loaded_store):
        async with loaded_store.connection() as conn:
            assert await queries.replace_bars(conn, make_bars(2, start=T0 + 3600), 1) == 2
        async with loaded_store.connection() as conn:
            assert await queries.get_all_timestamps(conn) == [T0 + 3600, T0 + 3660]
            assert await queries.query_bars(conn, T0 + 3600) == make_bars(1, start=T0 + 3600)

    @pytest.mark.asyncio
    async def test_repeated_replace_on_empty_store(self, store):
        for start in (T0, T0 + 600, T0 + 1200):
            async with store.connection() as conn:
                await queries.replace_bars(conn, make_bars(3, start=start), store.batch_size)
        async with store.connection() as conn:
            assert await queries.get_all_timestamps(conn) == [T0 + 1200, T0 + 1260, T0 + 1320]

    @pytest.mark.asyncio
    async def test_failed_insert_keeps_previous_table(self, loaded_store, monkeypatch):
        real_insert = queries.insert_bars

        async def insert_then_fail(conn, bars, batch_size, table):
            await real_insert(conn, bars[:1], batch_size, table=table)
            raise OverflowError("Python int too large to convert to SQLite INTEGER")

        monkeypatch.setattr(queries, "insert_bars", insert_then_fail)
        with pytest.raises(StoreError):
            async with loaded_store.connection() as conn:
                await queries.replace_bars(conn, make_bars(3, start=T0 + 3600), 2)
        monkeypatch.undo()

        async with loaded_store.connection() as conn:
            assert await queries.get_row_count(conn) == 6
            assert await queries.query_bars(conn, T0 + 300) == make_bars(6)


class TestStoreHandle:

    @pytest.mark.asyncio
    async def test_engine_created_lazily_and_disposed(self):
        store = BarStore("sqlite+aiosqlite://")
        assert not store.is_open
        await _load(store, make_bars(1))
        assert store.is_open
        await store.close()
        assert not store.is_open

    @pytest.mark.asyncio
    async def test_driver_overflow_is_store_error(self, store):
        huge = Bar(time=2 ** 70, open=1, high=1, low=1, close=1)
        with pytest.raises(StoreError):
            async with store.connection() as conn:
                await queries.create_bar_table(conn)
                await queries.insert_bars(conn, [huge], store.batch_size)

    @pytest.mark.asyncio
    async def test_query_without_table_is_store_error(self, store):
        with pytest.raises(StoreError):
            async with store.connection() as conn:
                await queries.query_bars(conn, T0)
