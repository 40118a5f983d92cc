"""Logo Detector: capture, classify, decide, repeat."""

__version__ = "0.1.0"
