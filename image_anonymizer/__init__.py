"""Image Anonymizer - mask sensitive text and faces in raster images."""

__version__ = "0.1.0"
__author__ = "Image Anonymizer Team"
__description__ = "Detect and redact sensitive text and faces in images"

from .types import (
    BoundingPoly,
    ClassificationOutcome,
    ClassificationSource,
    FaceAnnotation,
    RedactionRect,
    SensitivityCriteria,
    TextAnnotation,
    Vertex,
)
from .config import Config
from .pipeline import RedactionPipeline

__all__ = [
    "BoundingPoly",
    "ClassificationOutcome",
    "ClassificationSource",
    "FaceAnnotation",
    "RedactionRect",
    "SensitivityCriteria",
    "TextAnnotation",
    "Vertex",
    "Config",
    "RedactionPipeline",
]
