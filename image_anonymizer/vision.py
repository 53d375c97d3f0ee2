"""Google Cloud Vision client for text and face detection."""

import base64
import logging
from typing import Any, Callable, Dict, List, Optional, TypeVar

import httpx

from .config import ServiceConfig
from .types import FaceAnnotation, TextAnnotation

logger = logging.getLogger(__name__)

T = TypeVar('T')


class DetectionError(RuntimeError):
    """Raised when the detection service call fails."""

    def __init__(self, message: str, feature: str, status_code: Optional[int] = None) -> None:
        self.feature = feature
        self.status_code = status_code
        super().__init__(message)


class NoAnnotationsError(DetectionError):
    """Raised when the detector answered but found nothing."""


class VisionClient:
    """Thin synchronous wrapper around `images:annotate`."""

    TEXT_DETECTION = "TEXT_DETECTION"
    FACE_DETECTION = "FACE_DETECTION"

    def __init__(self, config: ServiceConfig, client: Optional[httpx.Client] = None) -> None:
        self.config = config
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

    def detect_text(self, image_bytes: bytes) -> List[TextAnnotation]:
        """Detect text regions. The first entry is usually the whole-image summary.

        Raises:
            DetectionError: transport/parse failure
            NoAnnotationsError: no text found
        """
        return self._detect(image_bytes, self.TEXT_DETECTION, 'textAnnotations', TextAnnotation.from_dict)

    def detect_faces(self, image_bytes: bytes) -> List[FaceAnnotation]:
        """Detect faces.

        Raises:
            DetectionError: transport/parse failure
            NoAnnotationsError: no face found
        """
        return self._detect(image_bytes, self.FACE_DETECTION, 'faceAnnotations', FaceAnnotation.from_dict)

    def _detect(
        self,
        image_bytes: bytes,
        feature: str,
        key: str,
        parse: Callable[[Dict[str, Any]], T]
    ) -> List[T]:
        if not image_bytes:
            raise DetectionError("Empty image payload", feature=feature)
        if not self.config.gcp_api_key:
            raise DetectionError("GCP API key is not configured", feature=feature)

        body = self._annotate(image_bytes, feature)

        responses = body.get('responses') if isinstance(body, dict) else None
        if not responses:
            logger.error("No responses from Google Cloud Vision API")
            raise DetectionError("No responses from Google Cloud Vision API", feature=feature)

        first = responses[0]
        if 'error' in first:
            message = first['error'].get('message', 'unknown error')
            raise DetectionError(f"Vision API {feature} error: {message}", feature=feature)

        try:
            annotations = [parse(item) for item in first.get(key, [])]
        except (TypeError, ValueError, AttributeError) as exc:
            raise DetectionError(f"Malformed {key} in Vision API response: {exc}", feature=feature) from exc

        if not annotations:
            raise NoAnnotationsError(f"Vision API returned no {key}", feature=feature)

        logger.debug(f"Detected {len(annotations)} {key}")
        return annotations

    def _annotate(self, image_bytes: bytes, feature: str) -> Any:
        request = {
            'requests': [{
                'image': {'content': base64.b64encode(image_bytes).decode('ascii')},
                'features': [{'type': feature, 'maxResults': self.config.max_results}],
            }],
        }

        try:
            response = self._client.post(
                f"{self.config.vision_endpoint}/images:annotate",
                params={'key': self.config.gcp_api_key},
                json=request,
                timeout=self.config.request_timeout_s
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise DetectionError(
                f"Vision API {feature} request failed with status {exc.response.status_code}",
                feature=feature,
                status_code=exc.response.status_code
            ) from exc
        except httpx.HTTPError as exc:
            raise DetectionError(
                f"Failed to send {feature} request to Google Cloud Vision API: {exc}",
                feature=feature
            ) from exc

        if len(response.text) > 1000:
            logger.debug(f"Vision response length: {len(response.text)}")
        else:
            logger.debug(f"Vision response: {response.text}")

        try:
            return response.json()
        except ValueError as exc:
            raise DetectionError(
                "Failed to parse Google Cloud Vision API response", feature=feature
            ) from exc
