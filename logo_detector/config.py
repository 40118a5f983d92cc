"""Configuration for the Logo Detector."""
import os
from pathlib import Path

# Base paths
ROOT_DIR = Path(__file__).parent.parent
MODELS_DIR = ROOT_DIR / "models"

# Model paths (ONNX classifier exported from the trained logo model)
MODEL_PATH = Path(os.getenv("MODEL_PATH", str(MODELS_DIR / "logo_detector.onnx")))
LABELS_PATH = Path(os.getenv("LABELS_PATH", str(MODELS_DIR / "labels.txt")))
MODEL_INPUT_SIZE = int(os.getenv("MODEL_INPUT_SIZE", "224"))

# Decision settings
CONFIDENCE_THRESHOLD = float(os.getenv("CONFIDENCE_THRESHOLD", "0.6"))
COOLDOWN_MS = int(os.getenv("COOLDOWN_MS", "1000"))
FAIL_ON_MODEL_ERROR = os.getenv("FAIL_ON_MODEL_ERROR", "false").lower() == "true"

# Camera settings
CAMERA_ADAPTER = os.getenv("CAMERA_ADAPTER", "opencv").lower()
CAMERA_INDEX = int(os.getenv("CAMERA_INDEX", "0"))
# Forces the reported authorization state (authorized, denied, restricted, ...)
CAMERA_AUTHORIZATION = os.getenv("CAMERA_AUTHORIZATION")
MOCK_IMAGES_DIR = Path(os.getenv("MOCK_IMAGES_DIR", str(ROOT_DIR / "samples")))

# API settings
API_HOST = os.getenv("API_HOST", "127.0.0.1")
API_PORT = int(os.getenv("API_PORT", "8000"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


def get_model_config() -> dict:
    """Get model configuration as a dictionary.

    Returns:
        Dict with model_path, labels_path, input_size.
    """
    return {
        "model_path": str(MODEL_PATH),
        "labels_path": str(LABELS_PATH),
        "input_size": MODEL_INPUT_SIZE,
    }


def get_loop_config() -> dict:
    """Get capture loop settings as a dictionary."""
    return {
        "threshold": CONFIDENCE_THRESHOLD,
        "cooldown": COOLDOWN_MS / 1000,
        "fail_on_model_error": FAIL_ON_MODEL_ERROR,
    }


def models_available() -> bool:
    """Check if model files exist."""
    return MODEL_PATH.exists() and LABELS_PATH.exists()
