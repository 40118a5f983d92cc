"""Collaborator service - builds the model provider, camera and capture loop."""

import structlog

from ..camera import CameraDevice, MockCamera, OpenCVCamera
from ..camera.base import AuthorizationState
from ..capture_loop import CaptureLoop
from ..classifiers import Classifier, DnnProvider, MockProvider, ModelProvider
from ..config import (
    CAMERA_ADAPTER,
    CAMERA_AUTHORIZATION,
    CAMERA_INDEX,
    MOCK_IMAGES_DIR,
    get_loop_config,
    get_model_config,
    models_available,
)
from ..policy import DecisionPolicy
from ..sinks import OutcomeSink
from .metrics import MetricsTracker

logger = structlog.get_logger()

# Process-wide provider and camera instances
_provider: ModelProvider | None = None
_camera: CameraDevice | None = None


def get_provider() -> ModelProvider:
    """Get or create the model provider singleton.

    Uses DnnProvider if model files exist, otherwise MockProvider.
    """
    global _provider

    if _provider is not None:
        return _provider

    if models_available():
        config = get_model_config()
        logger.info("initializing_dnn_provider", model_path=config["model_path"])
        _provider = DnnProvider(
            model_path=config["model_path"],
            labels_path=config["labels_path"],
            input_size=config["input_size"],
        )
    else:
        logger.warning(
            "model_not_found_using_mock",
            expected_model=get_model_config()["model_path"],
        )
        _provider = MockProvider()

    return _provider


def reset_provider() -> None:
    """Drop the cached provider so the next call rebuilds it."""
    global _provider
    _provider = None


def is_model_loaded(provider: ModelProvider | None = None) -> bool:
    """Check if a real model (not mock) is loaded."""
    provider = provider or get_provider()
    return provider.name != "mock" and provider.health_check()


def get_camera() -> CameraDevice:
    """Get or create the camera adapter selected by CAMERA_ADAPTER.

    The adapter is cached for the process, so an authorization answered
    once is not asked again by a later capture loop.
    """
    global _camera

    if _camera is not None:
        return _camera

    if CAMERA_ADAPTER == "mock":
        authorization = (
            AuthorizationState.parse(CAMERA_AUTHORIZATION)
            if CAMERA_AUTHORIZATION
            else AuthorizationState.AUTHORIZED
        )
        logger.info("camera_adapter", adapter="mock", images_dir=str(MOCK_IMAGES_DIR))
        _camera = MockCamera(images_dir=MOCK_IMAGES_DIR, authorization=authorization)
        return _camera

    if CAMERA_ADAPTER != "opencv":
        logger.warning("unknown_camera_adapter", adapter=CAMERA_ADAPTER, using="opencv")
    logger.info("camera_adapter", adapter="opencv", index=CAMERA_INDEX)
    _camera = OpenCVCamera(index=CAMERA_INDEX, forced_authorization=CAMERA_AUTHORIZATION)
    return _camera


def reset_camera() -> None:
    """Drop the cached camera so the next call rebuilds it."""
    global _camera
    _camera = None


def build_loop(
    sink: OutcomeSink,
    camera: CameraDevice | None = None,
    provider: ModelProvider | None = None,
    metrics: MetricsTracker | None = None,
) -> CaptureLoop:
    """Wire a CaptureLoop from configuration."""
    config = get_loop_config()
    return CaptureLoop(
        camera=camera or get_camera(),
        classifier=Classifier(provider or get_provider()),
        sink=sink,
        policy=DecisionPolicy(config["threshold"]),
        cooldown=config["cooldown"],
        fail_on_model_error=config["fail_on_model_error"],
        metrics=metrics,
    )
