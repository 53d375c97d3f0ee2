"""Gemini-backed semantic sensitivity check for detected text."""

import logging
from typing import Any, Dict, Optional

import httpx

from .config import ServiceConfig
from .logging_utils import mask_sensitive_text
from .types import SensitivityCriteria

logger = logging.getLogger(__name__)


class ClassificationError(RuntimeError):
    """Raised when the semantic classifier cannot produce an answer."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        self.status_code = status_code
        super().__init__(message)


_CATEGORY_EXAMPLES = {
    'api_keys': "Actual API keys like 'AIzaSyB3X7gtreHx9FGpA_XXXXXXXXXXXXX'",
    'emails': "Real email addresses like 'john.doe@example.com'",
    'phone_numbers': "Actual phone numbers like '+1-555-123-4567'",
    'credit_cards': "Real credit card numbers like '4111 1111 1111 1111'",
    'personal_names': "Personal names like 'Jane Smith'",
    'company_names': "Company or organization names tied to a person or account",
}


def build_prompt(text: str, criteria: SensitivityCriteria) -> str:
    """Build the yes/no sensitivity prompt for `text`.

    Only categories enabled in `criteria` are listed as sensitive examples.
    """
    examples = "\n".join(
        f"- {_CATEGORY_EXAMPLES[name]}" for name in criteria.enabled()
    ) or "- Any value that identifies a person or grants access to an account"

    return (
        "Analyze the following text and determine if it contains ACTUAL sensitive information "
        "rather than just labels or UI elements. Respond with only 'true' if it contains real "
        "sensitive information, or 'false' if it doesn't.\n\n"
        "Examples of what IS sensitive:\n"
        f"{examples}\n\n"
        "Examples of what is NOT sensitive:\n"
        "- Labels like 'API Key', 'Email', 'Credentials', 'Create', 'Password'\n"
        "- Button text like 'Submit', 'Login', 'Dismiss', 'View'\n"
        "- Generic terms like 'Username' or 'Authentication'\n\n"
        "Only mark as 'true' if it appears to be an actual sensitive value, not a UI element "
        "or label describing a value.\n\n"
        f"Text to analyze: \"{text}\""
    )


class GeminiSensitivityClassifier:
    """Asks a Gemini model whether a piece of text is a real sensitive value."""

    def __init__(
        self,
        config: ServiceConfig,
        criteria: Optional[SensitivityCriteria] = None,
        client: Optional[httpx.Client] = None
    ) -> None:
        """
        Args:
            config: Service settings (API key, model, endpoint, timeout)
            criteria: Categories to describe as sensitive in the prompt
            client: Pre-built HTTP client, mainly for tests
        """
        self.config = config
        self.criteria = criteria or SensitivityCriteria()
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=config.request_timeout_s)

    def close(self) -> None:
        """Close the underlying HTTP client if we created it."""
        if self._owns_client:
            self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def _build_request(self, text: str) -> Dict[str, Any]:
        return {
            'contents': [{
                'role': 'user',
                'parts': [{'text': build_prompt(text, self.criteria)}],
            }],
            'generationConfig': {
                'temperature': 0.0,
                'topP': 0.1,
                'topK': 1,
                'maxOutputTokens': 5,
            },
        }

    def classify_sensitivity(self, text: str) -> bool:
        """Return True if the model judges `text` sensitive.

        Raises:
            ClassificationError: transport failure, timeout, HTTP error status,
                or a response without a usable candidate
        """
        if not self.config.gcp_api_key:
            raise ClassificationError("GCP API key is not configured")

        url = f"{self.config.gemini_endpoint}/models/{self.config.gemini_model}:generateContent"
        logger.debug(f"Analyzing text sensitivity with Gemini: {mask_sensitive_text(text)}")

        try:
            response = self._client.post(
                url,
                params={'key': self.config.gcp_api_key},
                json=self._build_request(text),
                timeout=self.config.request_timeout_s
            )
            response.raise_for_status()
            body = response.json()
        except httpx.TimeoutException as exc:
            raise ClassificationError("Gemini API request timed out") from exc
        except httpx.HTTPStatusError as exc:
            logger.error(
                f"Gemini API request failed with status {exc.response.status_code}: "
                f"{exc.response.text[:200]}"
            )
            raise ClassificationError(
                f"Gemini API request failed with status {exc.response.status_code}",
                status_code=exc.response.status_code
            ) from exc
        except httpx.HTTPError as exc:
            raise ClassificationError(f"Failed to send request to Gemini API: {exc}") from exc
        except ValueError as exc:
            raise ClassificationError("Failed to parse Gemini API response") from exc

        answer = self._extract_answer(body)

        if answer == "true":
            return True
        if answer == "false":
            return False

        logger.warning(f"Unexpected response from Gemini API: {answer!r}; treating as sensitive")
        return True

    @staticmethod
    def _extract_answer(body: Any) -> str:
        """Pull the first candidate's text out of a generateContent response."""
        if not isinstance(body, dict):
            raise ClassificationError("Malformed Gemini API response")

        candidates = body.get('candidates') or []
        if not candidates:
            raise ClassificationError("No candidates in Gemini API response")

        try:
            parts = candidates[0]['content']['parts']
            if not parts:
                return ""
            return str(parts[0].get('text', '')).strip().lower()
        except (KeyError, IndexError, TypeError, AttributeError) as exc:
            raise ClassificationError("Malformed Gemini API candidate") from exc
