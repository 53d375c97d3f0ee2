"""Tests for the redaction pipeline orchestrator."""

import threading
import pytest
import numpy as np
import httpx
from unittest.mock import Mock

from image_anonymizer.config import Config, ClassificationConfig, RedactionConfig, ServiceConfig
from image_anonymizer.pipeline import RedactionPipeline
from image_anonymizer.semantic import ClassificationError, GeminiSensitivityClassifier
from image_anonymizer.types import (
    BoundingPoly, ClassificationSource, FaceAnnotation, TextAnnotation
)

from conftest import FakeSemantic, make_text_annotation

WHITE = np.array([255, 255, 255, 255], dtype=np.uint8)


def summary_annotation():
    """Whole-image summary entry that text detection returns first."""
    return make_text_annotation("everything", [(0, 0), (99, 0), (99, 99), (0, 99)])


def outside_mask(shape, y0, y1, x0, x1):
    mask = np.ones(shape[:2], dtype=bool)
    mask[y0:y1, x0:x1] = False
    return mask


class TestRedactionPipeline:
    """Test text redaction orchestration."""

    def setup_method(self):
        """Set up test fixtures."""
        self.config = Config()
        self.semantic = FakeSemantic(answer=False)
        self.pipeline = RedactionPipeline(self.config, semantic=self.semantic)

    def test_empty_annotations(self, white_image):
        before = white_image.copy()
        assert self.pipeline.redact(white_image, []) == 0
        np.testing.assert_array_equal(white_image, before)

    def test_scenario_explicit_term(self, white_image):
        """Single annotation matching an explicit term is painted over."""
        annotation = make_text_annotation(
            "test@example.com", [(10, 10), (50, 10), (50, 40), (10, 40)]
        )

        count = self.pipeline.redact(white_image, [annotation], ["test@example.com"])

        assert count == 1
        assert np.all(white_image[10:41, 10:51] == np.array([0, 0, 0, 128], dtype=np.uint8))
        assert np.all(white_image[outside_mask(white_image.shape, 10, 41, 10, 51)] == WHITE)

    def test_scenario_empty_polygon(self, white_image):
        before = white_image.copy()
        annotation = TextAnnotation(description="test@example.com", bounding_poly=BoundingPoly())

        assert self.pipeline.redact(white_image, [annotation], ["test@example.com"]) == 0
        np.testing.assert_array_equal(white_image, before)

    def test_absent_polygon(self, white_image):
        before = white_image.copy()
        annotation = TextAnnotation(description="test@example.com", bounding_poly=None)

        assert self.pipeline.redact(white_image, [annotation], ["test@example.com"]) == 0
        np.testing.assert_array_equal(white_image, before)

    def test_first_annotation_skipped_when_several(self, white_image):
        secret = make_text_annotation("secret-value", [(60, 60), (80, 60), (80, 70), (60, 70)])

        count = self.pipeline.redact(white_image, [summary_annotation(), secret], ["secret"])

        assert count == 1
        assert tuple(white_image[0, 0]) == (255, 255, 255, 255)
        assert tuple(white_image[65, 70]) == (0, 0, 0, 128)
        assert "everything" not in self.semantic.calls

    def test_skip_first_disabled(self, white_image):
        config = Config(redaction=RedactionConfig(skip_first_annotation=False))
        pipeline = RedactionPipeline(config, semantic=self.semantic)
        first = make_text_annotation("secret one", [(0, 0), (10, 10)])
        second = make_text_annotation("secret two", [(20, 20), (30, 30)])

        assert pipeline.redact(white_image, [first, second], ["secret"]) == 2

    def test_oversized_text_region_not_rendered(self, white_image):
        before = white_image.copy()
        big = make_text_annotation("secret", [(0, 0), (80, 0), (80, 20), (0, 20)])

        assert self.pipeline.redact(white_image, [big], ["secret"]) == 0
        np.testing.assert_array_equal(white_image, before)

    def test_not_sensitive_not_rendered(self, white_image):
        before = white_image.copy()
        label = make_text_annotation("Username", [(10, 10), (30, 20)])

        assert self.pipeline.redact(white_image, [label]) == 0
        np.testing.assert_array_equal(white_image, before)
        assert self.semantic.calls == ["Username"]

    def test_fallback_path_redacts(self, white_image):
        semantic = FakeSemantic(error=ClassificationError("unavailable"))
        pipeline = RedactionPipeline(self.config, semantic=semantic)
        annotation = make_text_annotation("jane@corp.example", [(10, 10), (30, 20)])

        assert pipeline.redact(white_image, [annotation]) == 1
        outcomes = pipeline.classify_annotations([annotation])
        assert outcomes[0].source == ClassificationSource.FALLBACK

    @pytest.mark.parametrize("parts", [["true"], {'text': 'true'}])
    def test_malformed_gemini_reply_uses_fallback(self, parts):
        reply = {'candidates': [{'content': {'parts': parts}}]}
        client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(200, json=reply)))
        semantic = GeminiSensitivityClassifier(ServiceConfig(gcp_api_key="test-key"), client=client)
        config = Config(classification=ClassificationConfig(max_workers=2))
        pipeline = RedactionPipeline(config, semantic=semantic)
        annotations = [
            make_text_annotation("call 555-0100", [(0, 0), (1, 1)]),
            make_text_annotation("Username", [(0, 0), (1, 1)]),
        ]

        outcomes = pipeline.classify_annotations(annotations)

        assert [o.source for o in outcomes] == [ClassificationSource.FALLBACK] * 2
        assert [o.sensitive for o in outcomes] == [True, False]

    def test_invalid_image(self):
        with pytest.raises(ValueError, match="zero-sized"):
            self.pipeline.redact(np.zeros((0, 0, 4), dtype=np.uint8), [])

    def test_results_follow_input_order(self):
        annotations = [make_text_annotation(f"text number {i}", [(0, 0), (1, 1)]) for i in range(20)]
        semantic = Mock()
        semantic.classify_sensitivity.side_effect = lambda text: text.endswith(("3", "7"))
        config = Config(classification=ClassificationConfig(max_workers=4))
        pipeline = RedactionPipeline(config, semantic=semantic)

        outcomes = pipeline.classify_annotations(annotations)

        assert [o.sensitive for o in outcomes] == [i % 10 in (3, 7) for i in range(20)]

    def test_classification_runs_on_worker_threads(self):
        threads = set()

        class RecordingSemantic:
            def classify_sensitivity(self, text):
                threads.add(threading.current_thread().name)
                return False

        config = Config(classification=ClassificationConfig(max_workers=4))
        pipeline = RedactionPipeline(config, semantic=RecordingSemantic())
        annotations = [make_text_annotation(f"label {i}", [(0, 0), (1, 1)]) for i in range(8)]

        pipeline.classify_annotations(annotations)

        assert threads
        assert all(name.startswith("classify") for name in threads)

    def test_rendering_in_input_order(self, white_image):
        """Overlapping regions: later annotations paint last."""
        config = Config(redaction=RedactionConfig(skip_first_annotation=False))
        pipeline = RedactionPipeline(config, semantic=self.semantic)
        pipeline.redactor = Mock(wraps=pipeline.redactor)
        first = make_text_annotation("secret A", [(10, 10), (20, 20)])
        second = make_text_annotation("secret B", [(15, 15), (25, 25)])

        pipeline.redact(white_image, [first, second], ["secret"])

        rects = [c.args[1] for c in pipeline.redactor.redact_text_region.call_args_list]
        assert [(r.min_x, r.min_y) for r in rects] == [(10, 10), (15, 15)]

    def test_auditor_receives_events(self, white_image):
        auditor = Mock()
        pipeline = RedactionPipeline(self.config, semantic=self.semantic, auditor=auditor)
        annotation = make_text_annotation("secret", [(10, 10), (20, 20)])

        pipeline.redact(white_image, [annotation], ["secret"], image_name="a.png")

        auditor.log_redaction.assert_called_once()
        args, kwargs = auditor.log_redaction.call_args
        assert args[0] == "a.png"
        assert args[1] == "text"
        assert kwargs['outcome'].source == ClassificationSource.EXPLICIT_TERM


class TestFaceRedaction:
    """Test face redaction orchestration."""

    def test_solid_face_scenario(self, white_image):
        config = Config(redaction=RedactionConfig(face_method="solid", face_alpha=180))
        pipeline = RedactionPipeline(config)
        face = FaceAnnotation(
            bounding_poly=BoundingPoly.from_points([(20, 20), (60, 20), (60, 80), (20, 80)])
        )

        assert pipeline.redact_faces(white_image, [face]) == 1
        assert np.all(white_image[20:81, 20:61] == np.array([0, 0, 0, 180], dtype=np.uint8))
        assert tuple(white_image[20, 19]) == (255, 255, 255, 255)

    def test_pixelated_faces_first_not_skipped(self):
        pipeline = RedactionPipeline(Config())
        image = np.zeros((64, 64, 4), dtype=np.uint8)
        image[0:16:2, 0:16] = 200
        faces = [
            FaceAnnotation(bounding_poly=BoundingPoly.from_points([(0, 0), (15, 15)])),
            FaceAnnotation(bounding_poly=BoundingPoly.from_points([(32, 32), (47, 47)])),
        ]

        assert pipeline.redact_faces(image, faces) == 2
        assert np.all(image[0:16, 0:16] == 100)

    def test_faces_without_polygon_skipped(self, white_image):
        pipeline = RedactionPipeline(Config())
        faces = [FaceAnnotation(), FaceAnnotation(bounding_poly=BoundingPoly())]
        assert pipeline.redact_faces(white_image, faces) == 0

    def test_face_oversize_policy_configurable(self, white_image):
        config = Config(redaction=RedactionConfig(face_max_region_fraction=0.5))
        pipeline = RedactionPipeline(config)
        face = FaceAnnotation(bounding_poly=BoundingPoly.from_points([(20, 20), (60, 80)]))
        assert pipeline.redact_faces(white_image, [face]) == 0
