"""Pytest configuration and fixtures."""

import pytest
import numpy as np
from pathlib import Path
from image_anonymizer.config import Config
from image_anonymizer.types import BoundingPoly, TextAnnotation


@pytest.fixture
def sample_config():
    """Provide a sample configuration for testing."""
    return Config()


@pytest.fixture
def config_file(tmp_path):
    """Create a temporary config file for testing."""
    config_path = tmp_path / "test_config.yaml"
    config = Config()
    config.to_yaml(config_path)
    return config_path


@pytest.fixture
def white_image():
    """100x100 opaque white RGBA image."""
    return np.full((100, 100, 4), 255, dtype=np.uint8)


def make_text_annotation(description, points):
    """Text annotation with a polygon built from (x, y) pairs."""
    return TextAnnotation(description=description, bounding_poly=BoundingPoly.from_points(points))


class FakeSemantic:
    """Semantic classifier stub recording the texts it was asked about."""

    def __init__(self, answer=False, error=None):
        self.answer = answer
        self.error = error
        self.calls = []

    def classify_sensitivity(self, text):
        self.calls.append(text)
        if self.error is not None:
            raise self.error
        return self.answer
