"""
Database models module.
Defines the bar table used by the replay store.
"""

from sqlalchemy import Column, Integer, BigInteger, Float, Index, MetaData, Table, text
from sqlalchemy.orm import Mapped, mapped_column

from replaytrader.database.connection import Base


class BarRecord(Base):
    """One stored OHLCV bar. `id` preserves insertion order."""

    __tablename__ = "historical_data"
    __table_args__ = (
        Index("ix_historical_data_time", "time"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    time: Mapped[int] = mapped_column(BigInteger, nullable=False)
    open: Mapped[float] = mapped_column(Float, nullable=False)
    high: Mapped[float] = mapped_column(Float, nullable=False)
    low: Mapped[float] = mapped_column(Float, nullable=False)
    close: Mapped[float] = mapped_column(Float, nullable=False)
    volume: Mapped[float] = mapped_column(Float, default=0.0, server_default=text("0"))


bars_table = BarRecord.__table__
time_index = next(iter(bars_table.indexes))

# Same columns, no index: a new session is loaded here, then renamed over
# historical_data once every row is in.
staging_table = Table(
    "historical_data_staging",
    MetaData(),
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("time", BigInteger, nullable=False),
    Column("open", Float, nullable=False),
    Column("high", Float, nullable=False),
    Column("low", Float, nullable=False),
    Column("close", Float, nullable=False),
    Column("volume", Float, default=0.0, server_default=text("0")),
)
