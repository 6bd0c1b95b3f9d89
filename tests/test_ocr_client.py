"""
Tests for the layout OCR service client.
"""

import base64
import json
from unittest import mock

import pytest
import requests
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from ocr2docx.config import OCRServiceConfig
from ocr2docx.utils.layout import BlockType
from ocr2docx.utils.ocr_client import GeminiLayoutClient, OCRServiceError, decode_blocks


def service_response(records, status_code=200):
    """Build a mocked generateContent response carrying `records` as model text."""
    response = mock.Mock()
    response.status_code = status_code
    response.json.return_value = {
        "candidates": [{
            "content": {"parts": [{"text": json.dumps(records)}]}
        }]
    }
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.exceptions.HTTPError(f"{status_code} Error")
    else:
        response.raise_for_status.return_value = None
    return response


@pytest.fixture
def config():
    return OCRServiceConfig(api_key="test-key", model="test-model", endpoint="https://ocr.example/v1")


@pytest.fixture
def session():
    return mock.Mock(spec=requests.Session)


class TestDecodeBlocks:
    """Tests for decoding service records."""

    def test_generates_missing_ids(self):
        blocks = decode_blocks([{"type": "paragraph", "text": "x", "box_2d": [0, 0, 10, 10]}])
        assert len(blocks[0].block_id) == 9

    def test_keeps_given_ids(self):
        blocks = decode_blocks([{"id": "b1", "type": "paragraph", "text": "x", "box_2d": [0, 0, 10, 10]}])
        assert blocks[0].block_id == "b1"

    def test_all_selected(self):
        blocks = decode_blocks([
            {"type": "paragraph", "text": "a", "box_2d": [0, 0, 10, 10], "isSelected": False},
            {"type": "header", "text": "b", "box_2d": [20, 0, 30, 10]},
        ])
        assert all(b.is_selected for b in blocks)

    def test_preserves_service_order(self):
        blocks = decode_blocks([
            {"id": "low", "type": "paragraph", "text": "a", "box_2d": [900, 0, 950, 10]},
            {"id": "high", "type": "paragraph", "text": "b", "box_2d": [0, 0, 10, 10]},
        ])
        assert [b.block_id for b in blocks] == ["low", "high"]

    def test_image_placeholder(self):
        blocks = decode_blocks([{"type": "image_placeholder", "text": "", "box_2d": [0, 0, 10, 10]}])
        assert blocks[0].block_type == BlockType.IMAGE_PLACEHOLDER

    @pytest.mark.parametrize("payload", [
        {"type": "paragraph"},
        "not a list",
        [{"type": "paragraph", "text": "x"}],
        [{"type": "paragraph", "text": "x", "box_2d": [1, 2]}],
        [{"type": "paragraph", "text": "x", "box_2d": [0, 0, 1, 1], "tableData": [{"text": "no index"}]}],
        ["just a string"],
    ])
    def test_malformed_payloads(self, payload):
        with pytest.raises(OCRServiceError):
            decode_blocks(payload)

    def test_infinite_coordinates(self):
        payload = json.loads('[{"type": "paragraph", "text": "x", "box_2d": [0, 0, 1e400, 10]}]')
        with pytest.raises(OCRServiceError):
            decode_blocks(payload)


class TestGeminiLayoutClient:
    """Tests for the HTTP client with a mocked session."""

    def test_request_shape(self, config, session):
        session.post.return_value = service_response([])
        client = GeminiLayoutClient(config, session=session)

        client.analyze(b"\xff\xd8jpeg", "image/jpeg")

        args, kwargs = session.post.call_args
        assert args[0] == "https://ocr.example/v1/models/test-model:generateContent"
        assert kwargs["headers"]["x-goog-api-key"] == "test-key"
        assert kwargs["timeout"] == config.timeout

        body = kwargs["json"]
        inline = body["contents"][0]["parts"][0]["inlineData"]
        assert inline["mimeType"] == "image/jpeg"
        assert base64.b64decode(inline["data"]) == b"\xff\xd8jpeg"
        assert body["generationConfig"]["responseMimeType"] == "application/json"
        assert body["generationConfig"]["responseSchema"]["items"]["required"] == ["type", "text", "box_2d"]

    def test_analyze_decodes_blocks(self, config, session):
        session.post.return_value = service_response([
            {"type": "header", "text": "Title", "box_2d": [10, 100, 40, 900], "isBold": True},
            {"type": "table", "text": "", "box_2d": [100, 100, 400, 900],
             "tableData": [{"text": "a", "row": 0, "col": 0}]},
        ])
        blocks = GeminiLayoutClient(config, session=session).analyze(b"img", "image/png")

        assert [b.block_type for b in blocks] == [BlockType.HEADER, BlockType.TABLE]
        assert blocks[0].is_bold
        assert blocks[1].table_cells[0].text == "a"

    def test_multi_part_text_is_joined(self, config, session):
        text = json.dumps([{"type": "paragraph", "text": "x", "box_2d": [0, 0, 10, 10]}])
        response = service_response([])
        response.json.return_value = {
            "candidates": [{"content": {"parts": [{"text": text[:10]}, {"text": text[10:]}]}}]
        }
        session.post.return_value = response

        blocks = GeminiLayoutClient(config, session=session).analyze(b"img", "image/png")
        assert len(blocks) == 1

    def test_http_error(self, config, session):
        session.post.return_value = service_response([], status_code=500)
        with pytest.raises(OCRServiceError):
            GeminiLayoutClient(config, session=session).analyze(b"img", "image/png")

    def test_network_error(self, config, session):
        session.post.side_effect = requests.exceptions.ConnectionError("down")
        with pytest.raises(OCRServiceError):
            GeminiLayoutClient(config, session=session).analyze(b"img", "image/png")

    def test_no_candidates(self, config, session):
        response = service_response([])
        response.json.return_value = {"promptFeedback": {"blockReason": "SAFETY"}}
        session.post.return_value = response
        with pytest.raises(OCRServiceError):
            GeminiLayoutClient(config, session=session).analyze(b"img", "image/png")

    def test_model_text_not_json(self, config, session):
        response = service_response([])
        response.json.return_value = {"candidates": [{"content": {"parts": [{"text": "sorry"}]}}]}
        session.post.return_value = response
        with pytest.raises(OCRServiceError):
            GeminiLayoutClient(config, session=session).analyze(b"img", "image/png")

    def test_uses_requests_session_by_default(self, config):
        with mock.patch("requests.Session.post") as post:
            post.return_value = service_response([])
            assert GeminiLayoutClient(config).analyze(b"img", "image/png") == []
            post.assert_called_once()

    def test_error_is_runtime_error(self):
        assert issubclass(OCRServiceError, RuntimeError)
