"""
Replay module for ReplayTrader.
Steps a time cursor over loaded bars without look-ahead.
"""

from replaytrader.replay.controller import ReplayController, ReplayPhase, ReplaySnapshot
from replaytrader.replay.facade import QueryFacade, VisibleBars
from replaytrader.replay.workspace import ReplayWorkspace

__all__ = [
    "ReplayController",
    "ReplayPhase",
    "ReplaySnapshot",
    "QueryFacade",
    "VisibleBars",
    "ReplayWorkspace",
]
