"""Pydantic schemas for API requests and responses.

All API responses follow a consistent structure:
{
    "success": true/false,
    "data": <response-specific data>,
    "error": "error message if failed",
    "meta": {"error_code": "CODE", "timestamp": "..."}
}
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Generic, TypeVar

from pydantic import BaseModel, Field

from ..policy import Outcome
from ..sinks import DisplayState


# =============================================================================
# Error Codes
# =============================================================================

class ErrorCode(str, Enum):
    """Standardized error codes for API responses."""
    INTERNAL_ERROR = "INTERNAL_ERROR"
    LOOP_NOT_RUNNING = "LOOP_NOT_RUNNING"


# =============================================================================
# Response Meta
# =============================================================================

class ResponseMeta(BaseModel):
    """Metadata included in all API responses."""
    timestamp: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
    )
    error_code: ErrorCode | None = None


# =============================================================================
# Generic API Response
# =============================================================================

T = TypeVar("T")


class APIResponse(BaseModel, Generic[T]):
    """Generic wrapper for all API responses.

    Usage:
        return APIResponse.ok(MyData(...))
        return APIResponse.fail("Something failed", ErrorCode.INTERNAL_ERROR)
    """
    success: bool
    data: T | None = None
    error: str | None = None
    meta: ResponseMeta = Field(default_factory=ResponseMeta)

    @classmethod
    def ok(cls, data: T, **meta_kwargs) -> "APIResponse[T]":
        """Create a successful response."""
        return cls(
            success=True,
            data=data,
            meta=ResponseMeta(**meta_kwargs)
        )

    @classmethod
    def fail(cls, error: str, error_code: ErrorCode = ErrorCode.INTERNAL_ERROR) -> "APIResponse[None]":
        """Create an error response."""
        return cls(
            success=False,
            error=error,
            meta=ResponseMeta(error_code=error_code)
        )


# =============================================================================
# Data Models (used in responses)
# =============================================================================

class HealthData(BaseModel):
    """Service health."""
    status: str
    version: str
    loop_state: str
    provider: str
    model_loaded: bool


class OutcomeData(BaseModel):
    """What the display currently shows."""
    kind: str | None = None
    label: str | None = None
    text: str
    emitted: int
    dismissed: bool
    updated_at: str | None = None


class LoopMetricsData(BaseModel):
    """Capture loop metrics."""
    state: str
    cycle: int
    cycles_started: int
    outcomes: int
    labels: int
    no_results: int
    unavailable: int
    empty_frames: int
    last_label: str | None = None
    cycles_per_second: float
    avg_inference_ms: float
    memory_mb: float
    memory_percent: float
    elapsed_seconds: float


class ShutdownData(BaseModel):
    """Result of a shutdown request."""
    state: str
    stop_reason: str | None = None


def outcome_to_data(display: DisplayState) -> OutcomeData:
    """Convert the display state to its API model."""
    outcome: Outcome | None = display.outcome
    return OutcomeData(
        kind=outcome.kind.value if outcome else None,
        label=outcome.label if outcome else None,
        text=display.text,
        emitted=display.emitted,
        dismissed=display.dismissed,
        updated_at=display.updated_at.isoformat() if display.updated_at else None,
    )


# =============================================================================
# Response Type Aliases
# =============================================================================

HealthResponse = APIResponse[HealthData]
OutcomeResponse = APIResponse[OutcomeData]
MetricsResponse = APIResponse[LoopMetricsData]
ShutdownResponse = APIResponse[ShutdownData]
