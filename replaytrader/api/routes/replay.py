"""
API routes for the replay cursor.
"""

from fastapi import APIRouter, Depends, HTTPException

from replaytrader.api.dependencies import get_workspace
from replaytrader.api.schemas import ReplayStateResponse, SeekRequest, SpeedRequest, StepRequest
from replaytrader.replay.workspace import ReplayWorkspace

router = APIRouter(prefix="/replay", tags=["replay"])


def _state(workspace: ReplayWorkspace) -> ReplayStateResponse:
    return ReplayStateResponse(**workspace.controller.snapshot().to_dict())


@router.get("/state", response_model=ReplayStateResponse)
async def get_state(workspace: ReplayWorkspace = Depends(get_workspace)):
    """Current cursor, progress and playback flags."""
    return _state(workspace)


@router.post("/play", response_model=ReplayStateResponse)
async def play(workspace: ReplayWorkspace = Depends(get_workspace)):
    workspace.controller.play()
    return _state(workspace)


@router.post("/pause", response_model=ReplayStateResponse)
async def pause(workspace: ReplayWorkspace = Depends(get_workspace)):
    workspace.controller.pause()
    return _state(workspace)


@router.post("/toggle", response_model=ReplayStateResponse)
async def toggle(workspace: ReplayWorkspace = Depends(get_workspace)):
    workspace.controller.toggle_play()
    return _state(workspace)


@router.post("/reset", response_model=ReplayStateResponse)
async def reset(workspace: ReplayWorkspace = Depends(get_workspace)):
    workspace.controller.reset()
    return _state(workspace)


@router.post("/step-forward", response_model=ReplayStateResponse)
async def step_forward(request: StepRequest, workspace: ReplayWorkspace = Depends(get_workspace)):
    workspace.controller.step_forward(request.n)
    return _state(workspace)


@router.post("/step-backward", response_model=ReplayStateResponse)
async def step_backward(request: StepRequest, workspace: ReplayWorkspace = Depends(get_workspace)):
    workspace.controller.step_backward(request.n)
    return _state(workspace)


@router.post("/seek", response_model=ReplayStateResponse)
async def seek(request: SeekRequest, workspace: ReplayWorkspace = Depends(get_workspace)):
    """Jump to a bar index (clamped to the timeline)."""
    workspace.controller.set_index(request.index)
    return _state(workspace)


@router.post("/speed", response_model=ReplayStateResponse)
async def set_speed(request: SpeedRequest, workspace: ReplayWorkspace = Depends(get_workspace)):
    """Set autoplay speed in milliseconds per bar."""
    try:
        workspace.controller.set_speed(request.speed_ms)
    except ValueError as e:
        raise HTTPException(400, str(e))
    return _state(workspace)
