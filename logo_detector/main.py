"""Logo Detector - capture loop with an HTTP display"""
import asyncio
import logging
from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI

from . import __version__
from .api.routes import router as api_router
from .classifiers import ModelInvocationFailed
from .config import API_HOST, API_PORT, LOG_LEVEL
from .services.model_service import build_loop
from .sinks import DisplayState, LogSink, MultiSink


def configure_logging(level: str = LOG_LEVEL) -> None:
    """Configure structured JSON logging on top of stdlib logging."""
    logging.basicConfig(level=level, format="%(message)s")
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer()
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
    )


configure_logging()

logger = structlog.get_logger()


async def run_loop(app: FastAPI) -> None:
    """Run the capture loop until it stops."""
    try:
        state = await app.state.loop.run()
        logger.info("capture_loop_finished", state=state.value, reason=app.state.loop.stop_reason)
    except ModelInvocationFailed as e:
        logger.error("capture_loop_failed", error=str(e))
    except Exception as e:
        logger.error("capture_loop_crashed", error=str(e), error_type=type(e).__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the capture loop with the server and stop it on the way out."""
    logger.info("server_starting", version=__version__)

    app.state.loop = build_loop(MultiSink(app.state.display, LogSink()))
    task = asyncio.create_task(run_loop(app))

    yield

    app.state.loop.shutdown("server_stopping")
    await task
    logger.info("server_stopping")


app = FastAPI(
    title="Logo Detector",
    description="Classifies camera stills against a fixed set of logos",
    version=__version__,
    lifespan=lifespan,
)

app.state.display = DisplayState()

app.include_router(api_router)


def serve() -> None:
    """Console entry point: run the display server with the capture loop."""
    uvicorn.run(app, host=API_HOST, port=API_PORT, log_config=None)
