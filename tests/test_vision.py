"""Tests for the Cloud Vision detection client."""

import base64
import json
import pytest
import httpx

from image_anonymizer.config import ServiceConfig
from image_anonymizer.types import Vertex
from image_anonymizer.vision import DetectionError, NoAnnotationsError, VisionClient


TEXT_RESPONSE = {
    'responses': [{
        'textAnnotations': [
            {
                'description': 'Email test@example.com',
                'boundingPoly': {'vertices': [{'x': 0, 'y': 0}, {'x': 99}, {'x': 99, 'y': 99}, {'y': 99}]}
            },
            {
                'description': 'test@example.com',
                'boundingPoly': {'vertices': [{'x': 10, 'y': 10}, {'x': 50, 'y': 10},
                                              {'x': 50, 'y': 40}, {'x': 10, 'y': 40}]}
            },
        ]
    }]
}

FACE_RESPONSE = {
    'responses': [{
        'faceAnnotations': [{
            'boundingPoly': {'vertices': [{'x': 20, 'y': 20}, {'x': 60, 'y': 20},
                                          {'x': 60, 'y': 80}, {'x': 20, 'y': 80}]},
            'landmarks': [{'type': 'NOSE_TIP', 'position': {'x': 40, 'y': 50, 'z': 0}}],
            'detectionConfidence': 0.98
        }]
    }]
}


def make_client(handler):
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return VisionClient(ServiceConfig(gcp_api_key="test-key"), client=client)


class TestVisionClient:
    """Test detection requests and response parsing."""

    def test_detect_text(self):
        seen = {}

        def handler(request):
            seen['url'] = request.url
            seen['body'] = json.loads(request.content)
            return httpx.Response(200, json=TEXT_RESPONSE)

        annotations = make_client(handler).detect_text(b"png-bytes")

        assert len(annotations) == 2
        assert annotations[1].description == 'test@example.com'
        assert annotations[0].bounding_poly.vertices[1] == Vertex(99, 0)

        assert seen['url'].path == "/v1/images:annotate"
        assert seen['url'].params['key'] == "test-key"
        request = seen['body']['requests'][0]
        assert base64.b64decode(request['image']['content']) == b"png-bytes"
        assert request['features'] == [{'type': 'TEXT_DETECTION', 'maxResults': 100}]

    def test_detect_faces(self):
        faces = make_client(lambda r: httpx.Response(200, json=FACE_RESPONSE)).detect_faces(b"img")
        assert len(faces) == 1
        assert faces[0].detection_confidence == pytest.approx(0.98)
        assert faces[0].landmarks[0].type == 'NOSE_TIP'

    def test_empty_result_is_error(self):
        client = make_client(lambda r: httpx.Response(200, json={'responses': [{}]}))
        with pytest.raises(NoAnnotationsError) as exc_info:
            client.detect_text(b"img")
        assert exc_info.value.feature == VisionClient.TEXT_DETECTION

    def test_no_responses_is_error(self):
        client = make_client(lambda r: httpx.Response(200, json={'responses': []}))
        with pytest.raises(DetectionError, match="No responses"):
            client.detect_faces(b"img")

    def test_payload_error_object(self):
        body = {'responses': [{'error': {'code': 3, 'message': 'Bad image data.'}}]}
        client = make_client(lambda r: httpx.Response(200, json=body))
        with pytest.raises(DetectionError, match="Bad image data"):
            client.detect_text(b"img")

    def test_http_error(self):
        client = make_client(lambda r: httpx.Response(403, json={'error': 'denied'}))
        with pytest.raises(DetectionError) as exc_info:
            client.detect_text(b"img")
        assert exc_info.value.status_code == 403
        assert not isinstance(exc_info.value, NoAnnotationsError)

    def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("unreachable", request=request)

        with pytest.raises(DetectionError, match="Failed to send"):
            make_client(handler).detect_text(b"img")

    def test_invalid_json(self):
        client = make_client(lambda r: httpx.Response(200, text="<html>"))
        with pytest.raises(DetectionError, match="parse"):
            client.detect_text(b"img")

    def test_empty_image_payload(self):
        client = make_client(lambda r: httpx.Response(200, json=TEXT_RESPONSE))
        with pytest.raises(DetectionError, match="Empty image"):
            client.detect_text(b"")

    def test_missing_api_key(self):
        client = VisionClient(ServiceConfig(), client=httpx.Client(
            transport=httpx.MockTransport(lambda r: httpx.Response(200, json=TEXT_RESPONSE))
        ))
        with pytest.raises(DetectionError, match="API key"):
            client.detect_text(b"img")
