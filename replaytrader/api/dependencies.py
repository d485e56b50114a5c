"""
FastAPI dependencies.
"""

from fastapi import Request

from replaytrader.replay.workspace import ReplayWorkspace


def get_workspace(request: Request) -> ReplayWorkspace:
    """Workspace created by the application lifespan."""
    return request.app.state.workspace
