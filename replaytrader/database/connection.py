"""
Database connection module.
Provides an explicitly owned async SQLAlchemy engine handle for the bar store.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

from replaytrader.config import settings
from replaytrader.errors import StoreError


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


def _is_memory_sqlite(url: str) -> bool:
    return url.startswith("sqlite") and (url.endswith("://") or ":memory:" in url)


class BarStore:
    """
    Handle over the tabular store engine.

    The engine is created on first use and disposed by close(). An in-memory
    SQLite database lives only as long as its single pooled connection, so
    that case uses a StaticPool.
    """
    
    def __init__(self, database_url: Optional[str] = None, batch_size: Optional[int] = None):
        self.database_url = database_url or settings.database_url
        self.batch_size = batch_size or settings.insert_batch_size
        self._engine: Optional[AsyncEngine] = None
        # Serializes table replacement against queries
        self.lock = asyncio.Lock()
    
    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            kwargs = {"echo": False}
            if _is_memory_sqlite(self.database_url):
                kwargs.update(
                    poolclass=StaticPool,
                    connect_args={"check_same_thread": False},
                )
            else:
                kwargs["pool_pre_ping"] = True
            self._engine = create_async_engine(self.database_url, **kwargs)
            logger.debug(f"Store engine created for {self.database_url}")
        return self._engine
    
    @property
    def is_open(self) -> bool:
        return self._engine is not None
    
    @asynccontextmanager
    async def connection(self) -> AsyncIterator[AsyncConnection]:
        """Transactional connection; store failures surface as StoreError."""
        try:
            async with self.engine.begin() as conn:
                yield conn
        # The sqlite driver raises OverflowError for integers beyond 64 bits
        except (SQLAlchemyError, OverflowError) as e:
            logger.error(f"Store operation failed: {e}")
            raise StoreError(str(e)) from e
    
    async def close(self):
        """Dispose the engine (drops an in-memory table with it)."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            logger.debug("Store engine disposed")
