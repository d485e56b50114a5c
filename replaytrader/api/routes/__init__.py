# Routes package
from replaytrader.api.routes.data import router as data_router
from replaytrader.api.routes.sessions import router as sessions_router
from replaytrader.api.routes.replay import router as replay_router
from replaytrader.api.routes.drawings import router as drawings_router

__all__ = ["data_router", "sessions_router", "replay_router", "drawings_router"]
