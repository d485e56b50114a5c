"""
Drawing API routes.
Stores chart annotations for the active session.
"""

from fastapi import APIRouter, Depends, HTTPException

from replaytrader.api.dependencies import get_workspace
from replaytrader.api.schemas import DrawingPointRecord, DrawingRecord, DrawingRequest
from replaytrader.replay.workspace import ReplayWorkspace
from replaytrader.sessions.drawings import Drawing, DrawingPoint

router = APIRouter(prefix="/drawings", tags=["Drawings"])


def _record(drawing: Drawing) -> DrawingRecord:
    return DrawingRecord(
        id=drawing.id,
        session_id=drawing.session_id,
        type=drawing.type,
        color=drawing.color,
        points=[DrawingPointRecord(time=p.time, price=p.price) for p in drawing.points],
    )


@router.get("", response_model=list[DrawingRecord])
async def list_drawings(workspace: ReplayWorkspace = Depends(get_workspace)):
    """Drawings of the active session."""
    return [_record(d) for d in workspace.active_drawings()]


@router.post("", response_model=DrawingRecord)
async def add_drawing(request: DrawingRequest, workspace: ReplayWorkspace = Depends(get_workspace)):
    drawing = workspace.add_drawing(
        request.type,
        [DrawingPoint(time=p.time, price=p.price) for p in request.points],
        request.color,
    )
    return _record(drawing)


@router.delete("/{drawing_id}")
async def delete_drawing(drawing_id: str, workspace: ReplayWorkspace = Depends(get_workspace)):
    if not workspace.remove_drawing(drawing_id):
        raise HTTPException(404, f"Drawing '{drawing_id}' not found")
    return {"success": True}


@router.delete("")
async def clear_drawings(workspace: ReplayWorkspace = Depends(get_workspace)):
    """Remove every drawing of the active session."""
    return {"success": True, "removed": workspace.clear_drawings()}
