"""
Data API routes.
Endpoints for ingesting bar files and reading visible candles.
"""

from typing import Optional
from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from loguru import logger

from replaytrader.api.dependencies import get_workspace
from replaytrader.api.schemas import CandleRecord, CandlesResponse, TimeframeInfo, UploadResponse
from replaytrader.data.candles import TIMEFRAMES
from replaytrader.errors import FormatError, StoreError
from replaytrader.replay.workspace import ReplayWorkspace

router = APIRouter(prefix="/data", tags=["Data"])


@router.post("/upload", response_model=UploadResponse)
async def upload_file(
    file: UploadFile = File(...),
    workspace: ReplayWorkspace = Depends(get_workspace),
):
    """
    Ingest a CSV/TXT bar file into a new session and activate it.
    Supports Binance, Stooq, HistData and generic OHLCV layouts.
    """
    raw = await file.read()
    text = raw.decode("utf-8-sig", errors="replace")
    logger.info(f"Upload received: {file.filename} ({len(raw)} bytes)")
    
    try:
        result = await workspace.ingest(text, file.filename)
    except FormatError as e:
        logger.warning(f"Rejected {file.filename}: {e}")
        raise HTTPException(400, str(e))
    except StoreError as e:
        raise HTTPException(500, f"Failed to load data: {e}")
    
    return UploadResponse(
        session_id=workspace.registry.active_id,
        name=result.name,
        encoding=result.encoding.value,
        accepted=result.accepted_count,
        dropped=result.dropped_count,
        row_count=workspace.row_count,
    )


@router.get("/candles", response_model=CandlesResponse)
async def get_candles(
    timeframe: Optional[int] = None,
    workspace: ReplayWorkspace = Depends(get_workspace),
):
    """Candles visible at the replay cursor, aggregated to `timeframe` seconds."""
    tf = timeframe if timeframe is not None else workspace.timeframe
    try:
        bars = await workspace.visible_bars(tf)
    except ValueError as e:
        raise HTTPException(400, str(e))
    except StoreError as e:
        raise HTTPException(500, f"Query failed: {e}")
    
    return CandlesResponse(
        session_id=workspace.loaded_session_id,
        cursor=workspace.controller.current_timestamp,
        timeframe=tf,
        candles=[CandleRecord(**b.to_dict()) for b in bars],
    )


@router.get("/timeframes", response_model=list[TimeframeInfo])
async def list_timeframes():
    """Selectable chart timeframes."""
    return [TimeframeInfo(label=label, seconds=seconds) for label, seconds in TIMEFRAMES.items()]
