"""API route definitions.

All endpoints return consistent APIResponse[T] structure with error codes.
"""
import structlog
from fastapi import APIRouter, Depends, Request

from .. import __version__
from ..capture_loop import CaptureLoop
from ..services.model_service import get_provider, is_model_loaded
from ..sinks import DisplayState
from .schemas import (
    APIResponse,
    ErrorCode,
    HealthData,
    HealthResponse,
    LoopMetricsData,
    MetricsResponse,
    OutcomeResponse,
    ShutdownData,
    ShutdownResponse,
    outcome_to_data,
)

logger = structlog.get_logger()
router = APIRouter()


def get_display(request: Request) -> DisplayState:
    """Get the display state from app state."""
    return request.app.state.display


def get_loop(request: Request) -> CaptureLoop | None:
    """Get the running capture loop, if the lifespan started one."""
    return getattr(request.app.state, "loop", None)


# =============================================================================
# Health Check
# =============================================================================

@router.get("/health", response_model=HealthResponse)
async def health_check(loop: CaptureLoop | None = Depends(get_loop)):
    """Check if the API is running and which model the loop uses."""
    provider = loop.classifier.provider if loop else get_provider()
    return APIResponse.ok(
        data=HealthData(
            status="healthy",
            version=__version__,
            loop_state=loop.state.value if loop else "not_started",
            provider=provider.name,
            model_loaded=is_model_loaded(provider),
        )
    )


# =============================================================================
# Display
# =============================================================================

@router.get("/outcome", response_model=OutcomeResponse)
async def current_outcome(display: DisplayState = Depends(get_display)):
    """The label (or "No results found") currently on display."""
    return APIResponse.ok(data=outcome_to_data(display))


# =============================================================================
# Loop control
# =============================================================================

@router.get("/metrics", response_model=MetricsResponse)
async def loop_metrics(loop: CaptureLoop | None = Depends(get_loop)):
    """Cycle counts, inference time and memory of the running loop."""
    if loop is None:
        return APIResponse.fail("Capture loop is not running", ErrorCode.LOOP_NOT_RUNNING)

    snapshot = loop.metrics.get_metrics().to_dict()
    return APIResponse.ok(
        data=LoopMetricsData(state=loop.state.value, cycle=loop.cycle, **snapshot)
    )


@router.post("/shutdown", response_model=ShutdownResponse)
async def shutdown_loop(loop: CaptureLoop | None = Depends(get_loop)):
    """Stop the capture loop. In-flight work finishes and is discarded."""
    if loop is None:
        return APIResponse.fail("Capture loop is not running", ErrorCode.LOOP_NOT_RUNNING)

    logger.info("shutdown_request", state=loop.state.value)
    loop.shutdown("api_shutdown")
    return APIResponse.ok(data=ShutdownData(state=loop.state.value, stop_reason=loop.stop_reason))
