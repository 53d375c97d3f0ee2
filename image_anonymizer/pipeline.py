"""Redaction pipeline orchestrator: classify concurrently, render sequentially."""

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Sequence
import numpy as np

from .types import ClassificationOutcome, FaceAnnotation, TextAnnotation
from .config import Config
from .classify import SemanticClassifier, SensitivityClassifier
from .geometry import compute_redaction_rect
from .logging_utils import RedactionAuditor, mask_sensitive_text
from .redact import RedactionEngine, validate_image

logger = logging.getLogger(__name__)


class RedactionPipeline:
    """Runs classification and redaction for the annotations of one image.

    Classification of text annotations fans out over a thread pool; rendering
    then happens on the calling thread, in annotation order, because it
    mutates the shared image buffer.
    """

    def __init__(
        self,
        config: Config,
        semantic: Optional[SemanticClassifier] = None,
        auditor: Optional[RedactionAuditor] = None
    ):
        """Initialize pipeline components.

        Args:
            config: Complete configuration object
            semantic: Optional external semantic classifier
            auditor: Optional audit logger for redacted regions
        """
        self.config = config
        self.classifier = SensitivityClassifier(config.classification, semantic)
        self.redactor = RedactionEngine(config.redaction)
        self.auditor = auditor
        self.max_workers = config.classification.max_workers or os.cpu_count() or 1

    def classify_annotations(
        self,
        annotations: Sequence[TextAnnotation],
        explicit_terms: Sequence[str] = ()
    ) -> List[ClassificationOutcome]:
        """Classify annotations concurrently; results follow input order."""
        if not annotations:
            return []

        terms = tuple(explicit_terms)
        workers = min(self.max_workers, len(annotations))

        if workers == 1:
            return [self.classifier.classify(a.description, terms) for a in annotations]

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="classify") as executor:
            return list(executor.map(
                lambda annotation: self.classifier.classify(annotation.description, terms),
                annotations
            ))

    def redact(
        self,
        image: np.ndarray,
        annotations: Sequence[TextAnnotation],
        explicit_terms: Sequence[str] = (),
        image_name: str = ""
    ) -> int:
        """Redact sensitive text regions of `image` in place.

        When there is more than one annotation, the first is the detector's
        whole-image summary and is skipped (configurable).

        Args:
            image: RGBA image buffer, mutated in place
            annotations: Text annotations from the detector
            explicit_terms: Literal strings that always force redaction
            image_name: Name used in audit events

        Returns:
            Number of regions actually redacted
        """
        width, height = validate_image(image)

        candidates = list(annotations)
        if len(candidates) > 1 and self.config.redaction.skip_first_annotation:
            candidates = candidates[1:]

        outcomes = self.classify_annotations(candidates, explicit_terms)

        redacted = 0
        for annotation, outcome in zip(candidates, outcomes):
            if not outcome.sensitive:
                continue

            rect = compute_redaction_rect(
                annotation.bounding_poly, width, height,
                self.config.redaction.text_max_region_fraction
            )
            if rect is None:
                continue

            self.redactor.redact_text_region(image, rect)
            redacted += 1
            logger.debug(
                f"Redacted text '{mask_sensitive_text(annotation.description)}' "
                f"at {rect.to_dict()} ({outcome.source.value})"
            )
            if self.auditor is not None:
                self.auditor.log_redaction(
                    image_name, 'text', rect, outcome=outcome, text=annotation.description
                )

        logger.info(f"Masked {redacted} sensitive text regions")
        return redacted

    def redact_faces(
        self,
        image: np.ndarray,
        faces: Sequence[FaceAnnotation],
        image_name: str = ""
    ) -> int:
        """Redact every face region of `image` in place.

        Returns:
            Number of faces actually redacted
        """
        width, height = validate_image(image)

        redacted = 0
        for idx, face in enumerate(faces):
            rect = compute_redaction_rect(
                face.bounding_poly, width, height,
                self.config.redaction.face_max_region_fraction
            )
            if rect is None:
                logger.debug(f"Skipping face #{idx + 1}")
                continue

            self.redactor.redact_face_region(image, rect)
            redacted += 1
            if self.auditor is not None:
                self.auditor.log_redaction(image_name, 'face', rect)

        logger.info(f"Masked {redacted} of {len(faces)} faces ({self.redactor.face_method.value})")
        return redacted
