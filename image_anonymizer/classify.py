"""Sensitivity classification for detected text."""

import logging
from typing import Optional, Protocol, Sequence

from .config import ClassificationConfig
from .logging_utils import mask_sensitive_text
from .semantic import ClassificationError
from .types import ClassificationOutcome, ClassificationSource, SensitivityCriteria

logger = logging.getLogger(__name__)

API_KEY_EXTRA_CHARS = frozenset('_.@')


class SemanticClassifier(Protocol):
    """Anything that can answer "is this text sensitive?"."""

    def classify_sensitivity(self, text: str) -> bool:
        ...


def looks_like_api_key(text: str, min_length: int = 20) -> bool:
    """Long token made only of alphanumerics and `_ . @`."""
    if len(text) <= min_length:
        return False
    return all(c.isalnum() or c in API_KEY_EXTRA_CHARS for c in text)


def fallback_is_sensitive(text: str, digit_threshold: int = 8) -> bool:
    """Deterministic decision used when the semantic check is unavailable.

    Leans towards redacting: anything with `@`, `-`, or a long run of digits.
    """
    if '@' in text or '-' in text:
        return True
    return sum(c.isdigit() for c in text) > digit_threshold


class SensitivityClassifier:
    """Decides, per text annotation, whether it must be redacted."""

    def __init__(
        self,
        config: ClassificationConfig,
        semantic: Optional[SemanticClassifier] = None
    ):
        """
        Args:
            config: Classification configuration
            semantic: External semantic classifier; None means fallback only
        """
        self.config = config
        self.criteria = config.criteria()
        self.semantic = semantic if config.use_semantic_classifier else None

        logger.info(
            f"Initialized SensitivityClassifier with criteria: {', '.join(self.criteria.enabled())}; "
            f"semantic check {'enabled' if self.semantic else 'disabled'}"
        )

    def classify(self, text: str, explicit_terms: Sequence[str] = ()) -> ClassificationOutcome:
        """Classify one piece of detected text.

        Rules are applied cheapest first and the first match wins: explicit
        terms, minimum length, API-key shape, then the semantic classifier
        with the fallback policy behind it.
        """
        text = text or ""

        for term in explicit_terms:
            if term and term in text:
                return ClassificationOutcome(True, ClassificationSource.EXPLICIT_TERM, term)

        if len(text) < self.config.min_text_length:
            return ClassificationOutcome(False, ClassificationSource.TOO_SHORT)

        if self.criteria.api_keys and looks_like_api_key(text, self.config.api_key_min_length):
            return ClassificationOutcome(True, ClassificationSource.API_KEY_HEURISTIC)

        return self._classify_semantic(text)

    def _classify_semantic(self, text: str) -> ClassificationOutcome:
        if self.semantic is None:
            return self._fallback(text, "semantic classifier disabled")

        try:
            answer = self.semantic.classify_sensitivity(text)
        except ClassificationError as e:
            logger.warning(f"Semantic classification failed for '{mask_sensitive_text(text)}': {e}")
            return self._fallback(text, str(e))

        if not isinstance(answer, bool):
            logger.warning(f"Semantic classifier returned non-boolean {answer!r}")
            return self._fallback(text, f"non-boolean answer {answer!r}")

        return ClassificationOutcome(answer, ClassificationSource.SEMANTIC)

    def _fallback(self, text: str, reason: str) -> ClassificationOutcome:
        sensitive = fallback_is_sensitive(text, self.config.fallback_digit_threshold)
        return ClassificationOutcome(sensitive, ClassificationSource.FALLBACK, reason)


def is_sensitive_text(
    text: str,
    criteria: SensitivityCriteria,
    explicit_terms: Sequence[str] = (),
    semantic: Optional[SemanticClassifier] = None
) -> bool:
    """Functional form of `SensitivityClassifier.classify` returning a bool."""
    config = ClassificationConfig(
        api_keys=criteria.api_keys,
        emails=criteria.emails,
        phone_numbers=criteria.phone_numbers,
        credit_cards=criteria.credit_cards,
        personal_names=criteria.personal_names,
        company_names=criteria.company_names
    )
    return SensitivityClassifier(config, semantic).classify(text, explicit_terms).sensitive
