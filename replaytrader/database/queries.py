"""
Bar store queries.

All reads are "as of" a cursor: only bars with time <= cursor are visible.
When a file carries the same timestamp more than once every row is kept,
but reads see only the row inserted last for that time.
"""

from typing import Sequence

from loguru import logger
from sqlalchemy import Table, case, func, insert, select, text
from sqlalchemy.ext.asyncio import AsyncConnection

from replaytrader.config import settings
from replaytrader.data.candles import Bar
from replaytrader.database.models import bars_table, staging_table, time_index


async def create_bar_table(conn: AsyncConnection, table: Table = bars_table):
    """Create a bar table, replacing any prior contents."""
    await conn.run_sync(lambda sync_conn: table.drop(sync_conn, checkfirst=True))
    await conn.run_sync(lambda sync_conn: table.create(sync_conn))


async def insert_bars(
    conn: AsyncConnection,
    bars: Sequence[Bar],
    batch_size: int = settings.insert_batch_size,
    table: Table = bars_table,
) -> int:
    """
    Bulk insert bars in batches, keeping input order.

    Returns:
        Number of rows inserted
    """
    if not bars:
        return 0

    for start in range(0, len(bars), batch_size):
        batch = bars[start:start + batch_size]
        await conn.execute(insert(table), [b.to_dict() for b in batch])

    logger.info(f"Inserted {len(bars)} bars into {table.name}")
    return len(bars)


async def replace_bars(
    conn: AsyncConnection,
    bars: Sequence[Bar],
    batch_size: int = settings.insert_batch_size,
) -> int:
    """
    Replace the bar table with `bars`.

    Rows go into a staging table first; historical_data is only dropped once
    every batch is in, so a failed insert leaves the previous contents intact.

    Returns:
        Number of rows inserted
    """
    await create_bar_table(conn, staging_table)
    inserted = await insert_bars(conn, bars, batch_size, table=staging_table)

    await conn.run_sync(lambda sync_conn: bars_table.drop(sync_conn, checkfirst=True))
    await conn.execute(text(f"ALTER TABLE {staging_table.name} RENAME TO {bars_table.name}"))
    await conn.run_sync(lambda sync_conn: time_index.create(sync_conn))
    return inserted


def _visible_bars(cursor: int):
    """Subquery of bars at or before the cursor, one row per timestamp."""
    t = bars_table.c
    ranked = (
        select(
            t.time, t.open, t.high, t.low, t.close, t.volume,
            func.row_number().over(partition_by=t.time, order_by=t.id.desc()).label("dup_rank"),
        )
        .where(t.time <= cursor)
        .subquery("ranked")
    )
    return (
        select(ranked.c.time, ranked.c.open, ranked.c.high, ranked.c.low, ranked.c.close, ranked.c.volume)
        .where(ranked.c.dup_rank == 1)
        .subquery("visible")
    )


def _rows_to_bars(rows) -> list[Bar]:
    return [
        Bar(
            time=int(r.time),
            open=float(r.open),
            high=float(r.high),
            low=float(r.low),
            close=float(r.close),
            volume=float(r.volume or 0.0),
        )
        for r in rows
    ]


async def query_bars(conn: AsyncConnection, cursor: int) -> list[Bar]:
    """All bars with time <= cursor, ascending."""
    visible = _visible_bars(cursor)
    result = await conn.execute(select(visible).order_by(visible.c.time))
    return _rows_to_bars(result.all())


async def query_aggregated_bars(conn: AsyncConnection, cursor: int, width: int) -> list[Bar]:
    """
    Aggregate visible bars into buckets of `width` seconds.

    Bucket start is floor(time / width) * width. Open is the first bar of the
    bucket, close the last one, high/low the extremes and volume the sum.
    """
    width = int(width)
    if width <= 0:
        raise ValueError(f"Bucket width must be positive, got {width}")

    v = _visible_bars(cursor).c
    # Floor even for pre-epoch times: SQLite's % truncates toward zero
    bucket = v.time - ((v.time % width) + width) % width
    staged = (
        select(
            bucket.label("bucket"),
            v.open, v.high, v.low, v.close, v.volume,
            func.row_number().over(partition_by=bucket, order_by=v.time.asc()).label("first_rank"),
            func.row_number().over(partition_by=bucket, order_by=v.time.desc()).label("last_rank"),
        )
        .subquery("staged")
    )
    s = staged.c
    stmt = (
        select(
            s.bucket.label("time"),
            func.max(case((s.first_rank == 1, s.open))).label("open"),
            func.max(s.high).label("high"),
            func.min(s.low).label("low"),
            func.max(case((s.last_rank == 1, s.close))).label("close"),
            func.sum(s.volume).label("volume"),
        )
        .group_by(s.bucket)
        .order_by(s.bucket)
    )
    result = await conn.execute(stmt)
    return _rows_to_bars(result.all())


async def get_all_timestamps(conn: AsyncConnection) -> list[int]:
    """Every distinct bar time, ascending (the replay timeline)."""
    t = bars_table.c
    result = await conn.execute(select(t.time).distinct().order_by(t.time))
    return [int(ts) for ts in result.scalars().all()]


async def get_row_count(conn: AsyncConnection) -> int:
    """Total rows stored, duplicates included."""
    result = await conn.execute(select(func.count()).select_from(bars_table))
    return int(result.scalar() or 0)
