"""
Session API routes.
"""

from fastapi import APIRouter, Depends, HTTPException

from replaytrader.api.dependencies import get_workspace
from replaytrader.api.schemas import SessionInfo, SessionListResponse
from replaytrader.errors import StoreError
from replaytrader.replay.workspace import ReplayWorkspace

router = APIRouter(prefix="/sessions", tags=["Sessions"])


def _session_list(workspace: ReplayWorkspace) -> SessionListResponse:
    active_id = workspace.registry.active_id
    return SessionListResponse(
        sessions=[
            SessionInfo(id=s.id, name=s.name, candle_count=len(s.bars), is_active=s.id == active_id)
            for s in workspace.registry.sessions
        ],
        active_session_id=active_id,
    )


@router.get("", response_model=SessionListResponse)
async def list_sessions(workspace: ReplayWorkspace = Depends(get_workspace)):
    """List loaded sessions."""
    return _session_list(workspace)


@router.post("/{session_id}/activate", response_model=SessionListResponse)
async def activate_session(session_id: str, workspace: ReplayWorkspace = Depends(get_workspace)):
    """Switch the active session and reload it into the store."""
    try:
        await workspace.activate(session_id)
    except KeyError:
        raise HTTPException(404, f"Session '{session_id}' not found")
    except StoreError as e:
        raise HTTPException(500, f"Failed to load session: {e}")
    return _session_list(workspace)


@router.delete("/{session_id}", response_model=SessionListResponse)
async def delete_session(session_id: str, workspace: ReplayWorkspace = Depends(get_workspace)):
    """Delete a session and its drawings."""
    try:
        await workspace.remove_session(session_id)
    except KeyError:
        raise HTTPException(404, f"Session '{session_id}' not found")
    except StoreError as e:
        raise HTTPException(500, f"Failed to load session: {e}")
    return _session_list(workspace)
