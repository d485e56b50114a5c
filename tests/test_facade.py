"""
Tests for cursor-bounded queries and last-write-wins delivery.
"""

import asyncio

import pytest

from replaytrader.replay.facade import QueryFacade

from conftest import T0, make_bars


class TestFetch:

    @pytest.mark.asyncio
    async def test_no_cursor_returns_nothing(self, store):
        # The table does not exist yet; a query would raise
        facade = QueryFacade(store)
        assert await facade.fetch(None) == []

    @pytest.mark.asyncio
    async def test_base_timeframe_returns_raw_bars(self, loaded_store):
        facade = QueryFacade(loaded_store, base_timeframe=60)
        bars = await facade.fetch(T0 + 60, 60)
        assert bars == make_bars(2)

    @pytest.mark.asyncio
    async def test_default_timeframe_is_base(self, loaded_store):
        facade = QueryFacade(loaded_store, base_timeframe=60)
        assert len(await facade.fetch(T0 + 300)) == 6

    @pytest.mark.asyncio
    async def test_other_timeframe_aggregates(self, loaded_store):
        facade = QueryFacade(loaded_store, base_timeframe=60)
        bars = await facade.fetch(T0 + 300, 300)

        assert [b.time for b in bars] == [T0, T0 + 300]
        first = bars[0]
        source = make_bars(5)
        assert first.open == source[0].open
        assert first.close == source[-1].close
        assert first.high == max(b.high for b in source)
        assert first.low == min(b.low for b in source)
        assert first.volume == sum(b.volume for b in source)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("timeframe", [0, -60])
    async def test_invalid_timeframe(self, loaded_store, timeframe):
        facade = QueryFacade(loaded_store)
        with pytest.raises(ValueError):
            await facade.fetch(T0, timeframe)


class TestLastWriteWins:

    @pytest.mark.asyncio
    async def test_superseded_request_is_discarded(self, loaded_store):
        facade = QueryFacade(loaded_store, base_timeframe=60)
        delivered = []
        facade.on_bars(delivered.append)

        older, newer = await asyncio.gather(
            facade.request(T0, 60),
            facade.request(T0 + 120, 60),
        )

        assert older is None
        assert newer == make_bars(3)
        assert [d.cursor for d in delivered] == [T0 + 120]
        assert facade.latest.bars == newer

    @pytest.mark.asyncio
    async def test_sequential_requests_all_delivered(self, loaded_store):
        facade = QueryFacade(loaded_store, base_timeframe=60)
        delivered = []
        facade.on_bars(delivered.append)

        await facade.request(T0, 60)
        await facade.request(T0 + 60, 300)

        assert [(d.cursor, d.timeframe) for d in delivered] == [(T0, 60), (T0 + 60, 300)]
        assert delivered[0].request_id < delivered[1].request_id

    @pytest.mark.asyncio
    async def test_invalidate_discards_in_flight(self, loaded_store):
        facade = QueryFacade(loaded_store)
        task = asyncio.ensure_future(facade.request(T0))
        await asyncio.sleep(0)
        facade.invalidate()
        assert await task is None
        assert facade.latest is None
