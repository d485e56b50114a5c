"""
FastAPI main application server.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from loguru import logger
import sys

from replaytrader import __version__
from replaytrader.config import settings
from replaytrader.replay.workspace import ReplayWorkspace
from replaytrader.api.routes import data_router, sessions_router, replay_router, drawings_router


# Configure logging
logger.remove()
logger.add(
    sys.stdout,
    format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>",
    level="DEBUG" if settings.debug else "INFO"
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    logger.info("Starting ReplayTrader...")
    workspace = ReplayWorkspace(auto_refresh=False)
    restored = await workspace.restore()
    app.state.workspace = workspace
    logger.info(f"Workspace ready ({restored} sessions restored)")
    
    yield
    
    # Shutdown
    logger.info("Shutting down...")
    await workspace.close()


# Create FastAPI app
app = FastAPI(
    title="ReplayTrader",
    description="Bar-by-bar replay of historical OHLCV data",
    version=__version__,
    lifespan=lifespan
)

# Include API routers
app.include_router(data_router, prefix=settings.api_prefix)
app.include_router(sessions_router, prefix=settings.api_prefix)
app.include_router(replay_router, prefix=settings.api_prefix)
app.include_router(drawings_router, prefix=settings.api_prefix)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


def main():
    """Run the API with uvicorn."""
    import uvicorn
    uvicorn.run("replaytrader.api.server:app", host="0.0.0.0", port=8000)
