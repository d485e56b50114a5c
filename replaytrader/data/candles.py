"""
Canonical bar representation shared by ingestion, storage and replay.
"""

from dataclasses import dataclass, asdict


# Selectable chart timeframes (label -> bucket width in seconds)
TIMEFRAMES = {
    "1m": 60,
    "5m": 5 * 60,
    "15m": 15 * 60,
    "1H": 60 * 60,
    "4H": 4 * 60 * 60,
    "1D": 24 * 60 * 60,
}


@dataclass(frozen=True)
class Bar:
    """One OHLCV sample. `time` is UTC epoch seconds."""
    time: int
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0
    
    def to_dict(self) -> dict:
        return asdict(self)
    
    @classmethod
    def from_dict(cls, data: dict) -> "Bar":
        return cls(
            time=int(data["time"]),
            open=float(data["open"]),
            high=float(data["high"]),
            low=float(data["low"]),
            close=float(data["close"]),
            volume=float(data.get("volume") or 0.0),
        )
