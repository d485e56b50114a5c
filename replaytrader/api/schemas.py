"""
Pydantic schemas for API request/response models.
"""

from typing import Literal, Optional
from pydantic import BaseModel, Field


# ============ Data Schemas ============

class CandleRecord(BaseModel):
    """Single OHLCV bar (time in UTC epoch seconds)."""
    time: int
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0


class CandlesResponse(BaseModel):
    """Bars visible at the replay cursor."""
    session_id: Optional[str] = None
    cursor: Optional[int] = None
    timeframe: int
    candles: list[CandleRecord] = []


class UploadResponse(BaseModel):
    """Result of ingesting a file."""
    session_id: str
    name: str
    encoding: str
    accepted: int
    dropped: int
    row_count: int


class TimeframeInfo(BaseModel):
    label: str
    seconds: int


# ============ Session Schemas ============

class SessionInfo(BaseModel):
    """Session metadata."""
    id: str
    name: str
    candle_count: int
    is_active: bool


class SessionListResponse(BaseModel):
    sessions: list[SessionInfo]
    active_session_id: Optional[str] = None


# ============ Replay Schemas ============

class ReplayStateResponse(BaseModel):
    """Replay cursor state and derived values."""
    phase: str
    index: int
    playing: bool
    speed_ms: int
    current_timestamp: Optional[int] = None
    progress: float
    total_count: int


class StepRequest(BaseModel):
    n: int = Field(default=1, ge=1, examples=[1])


class SeekRequest(BaseModel):
    index: int = Field(..., examples=[0])


class SpeedRequest(BaseModel):
    speed_ms: int = Field(..., gt=0, examples=[300])


# ============ Drawing Schemas ============

class DrawingPointRecord(BaseModel):
    time: int
    price: float


class DrawingRequest(BaseModel):
    """Drawing event emitted by the chart."""
    type: Literal["hline", "trendline"]
    points: list[DrawingPointRecord] = Field(..., min_length=1)
    color: str = "#f59e0b"


class DrawingRecord(DrawingRequest):
    id: str
    session_id: str
