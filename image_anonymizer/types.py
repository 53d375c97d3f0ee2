"""Core data types for image anonymization."""

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Dict, Optional, Sequence, Tuple


@dataclass(frozen=True)
class Vertex:
    """Image coordinate as reported by the detector (may be out of bounds)."""
    x: int = 0
    y: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Vertex':
        """Build a vertex from detector JSON; missing coordinates mean 0."""
        return cls(x=int(data.get('x', 0)), y=int(data.get('y', 0)))


@dataclass(frozen=True)
class BoundingPoly:
    """Ordered vertices outlining a detected region."""
    vertices: Tuple[Vertex, ...] = ()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BoundingPoly':
        """Build a polygon from detector JSON."""
        return cls(vertices=tuple(Vertex.from_dict(v) for v in data.get('vertices', [])))

    @classmethod
    def from_points(cls, points: Sequence[Tuple[int, int]]) -> 'BoundingPoly':
        """Build a polygon from (x, y) pairs."""
        return cls(vertices=tuple(Vertex(x=x, y=y) for x, y in points))

    @staticmethod
    def vertices_of(poly: Optional['BoundingPoly']) -> Tuple[Vertex, ...]:
        """Vertices of an optional polygon; absent and empty both yield ()."""
        if poly is None:
            return ()
        return poly.vertices

    @property
    def is_empty(self) -> bool:
        return not self.vertices


@dataclass(frozen=True)
class TextAnnotation:
    """Detected text region."""
    description: str
    bounding_poly: Optional[BoundingPoly] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TextAnnotation':
        """Build a text annotation from a Vision API `textAnnotations` entry."""
        poly = data.get('boundingPoly')
        return cls(
            description=data.get('description', ''),
            bounding_poly=BoundingPoly.from_dict(poly) if poly is not None else None
        )


@dataclass(frozen=True)
class Position:
    """3D landmark position."""
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0


@dataclass(frozen=True)
class Landmark:
    """Named facial landmark (eyes, nose, mouth...)."""
    type: str
    position: Position


@dataclass(frozen=True)
class FaceAnnotation:
    """Detected face region.

    Landmarks and confidence are carried along but only the bounding polygon
    takes part in redaction.
    """
    bounding_poly: Optional[BoundingPoly] = None
    landmarks: Optional[Tuple[Landmark, ...]] = None
    detection_confidence: Optional[float] = None

    def __post_init__(self):
        """Validate detection confidence."""
        if self.detection_confidence is not None and not 0.0 <= self.detection_confidence <= 1.0:
            raise ValueError("Confidence must be between 0.0 and 1.0")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FaceAnnotation':
        """Build a face annotation from a Vision API `faceAnnotations` entry."""
        poly = data.get('boundingPoly')
        landmarks = data.get('landmarks')
        if landmarks is not None:
            landmarks = tuple(
                Landmark(
                    type=item.get('type', ''),
                    position=Position(**{k: float(v) for k, v in item.get('position', {}).items()
                                         if k in ('x', 'y', 'z')})
                )
                for item in landmarks
            )
        confidence = data.get('detectionConfidence')
        return cls(
            bounding_poly=BoundingPoly.from_dict(poly) if poly is not None else None,
            landmarks=landmarks,
            detection_confidence=float(confidence) if confidence is not None else None
        )


@dataclass(frozen=True)
class SensitivityCriteria:
    """Heuristic categories enabled for a classification run."""
    api_keys: bool = True
    emails: bool = True
    phone_numbers: bool = True
    credit_cards: bool = True
    personal_names: bool = True
    company_names: bool = True

    def enabled(self) -> Tuple[str, ...]:
        """Names of the enabled categories, in declaration order."""
        return tuple(f.name for f in fields(self) if getattr(self, f.name))


@dataclass(frozen=True)
class RedactionRect:
    """Clamped pixel rectangle, inclusive on all edges."""
    min_x: int
    min_y: int
    max_x: int
    max_y: int

    def __post_init__(self):
        """Validate rectangle ordering."""
        if self.min_x < 0 or self.min_y < 0:
            raise ValueError("Invalid redaction rectangle: coordinates must be non-negative")
        if self.min_x > self.max_x or self.min_y > self.max_y:
            raise ValueError("Invalid redaction rectangle: min must be <= max")

    @property
    def width(self) -> int:
        """Pixel columns covered."""
        return self.max_x - self.min_x + 1

    @property
    def height(self) -> int:
        """Pixel rows covered."""
        return self.max_y - self.min_y + 1

    def to_dict(self) -> Dict[str, int]:
        return {
            'min_x': self.min_x,
            'min_y': self.min_y,
            'max_x': self.max_x,
            'max_y': self.max_y,
        }


class ClassificationSource(Enum):
    """Which rule produced a sensitivity decision."""
    EXPLICIT_TERM = "explicit_term"
    TOO_SHORT = "too_short"
    API_KEY_HEURISTIC = "api_key_heuristic"
    SEMANTIC = "semantic"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class ClassificationOutcome:
    """Sensitivity decision tagged with the rule that made it."""
    sensitive: bool
    source: ClassificationSource
    detail: Optional[str] = field(default=None, compare=False)

    def __bool__(self) -> bool:
        return self.sensitive
