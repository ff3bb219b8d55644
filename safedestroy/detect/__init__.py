"""Blocking-dependency detection."""

from .detector import BlockingDependencyDetector, DetectionResult

__all__ = ["BlockingDependencyDetector", "DetectionResult"]
