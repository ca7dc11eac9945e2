"""Progress events and the sinks that consume them."""

from abc import ABC, abstractmethod

from pydantic import BaseModel, Field, field_validator


def compute_percent(processed: int, total: int) -> float:
    """Cumulative completion percentage, clamped to [0, 100]."""
    if total <= 0:
        return 100.0
    return max(0.0, min(100.0, processed / total * 100.0))


class ProgressUpdate(BaseModel):
    """A progress event emitted by the migration and export engines."""

    phase: str = Field(..., description='Current phase, usually an entity type label')
    message: str = Field(default='', description='Human readable status')
    percent: float = Field(default=0.0, description='Overall completion, 0 to 100')
    current: int = Field(default=0, description='Position within the phase')
    total: int = Field(default=0, description='Size of the phase')

    @field_validator('percent')
    @classmethod
    def clamp_percent(cls, v):
        return max(0.0, min(100.0, v))


class ProgressSink(ABC):
    """Receives progress updates and log lines from a running engine."""

    @abstractmethod
    def on_progress(self, update: ProgressUpdate) -> None:
        """Handle a progress update."""

    @abstractmethod
    def on_log(self, level: str, message: str) -> None:
        """Handle a log line (level is a loguru level name)."""


class NullProgressSink(ProgressSink):
    """Sink that discards everything."""

    def on_progress(self, update: ProgressUpdate) -> None:
        pass

    def on_log(self, level: str, message: str) -> None:
        pass
