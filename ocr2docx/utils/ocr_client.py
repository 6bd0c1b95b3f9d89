"""
Layout OCR service client.

Sends a page image to a remote vision-language model and decodes the
structured block array it returns. Any failure (network, HTTP status,
unparsable or malformed payload) raises OCRServiceError; callers treat it
as fatal for the whole processing run.
"""

import base64
import json
import logging
from typing import Any, Dict, List, Optional

import requests

from .layout import Block
from ..config import OCRServiceConfig

logger = logging.getLogger(__name__)


class OCRServiceError(RuntimeError):
    """The OCR service call failed or returned something unusable."""


# JSON schema the model is asked to follow
RESPONSE_SCHEMA = {
    "type": "ARRAY",
    "items": {
        "type": "OBJECT",
        "properties": {
            "id": {"type": "STRING"},
            "type": {"type": "STRING"},
            "text": {"type": "STRING"},
            "confidence": {"type": "NUMBER"},
            "isBold": {"type": "BOOLEAN"},
            "box_2d": {
                "type": "ARRAY",
                "items": {"type": "NUMBER"}
            },
            "tableData": {
                "type": "ARRAY",
                "items": {
                    "type": "OBJECT",
                    "properties": {
                        "text": {"type": "STRING"},
                        "row": {"type": "NUMBER"},
                        "col": {"type": "NUMBER"}
                    }
                }
            }
        },
        "required": ["type", "text", "box_2d"]
    }
}


def decode_blocks(records: Any) -> List[Block]:
    """
    Turn the service's block records into Blocks.

    Records without an id get a generated one; every block starts selected.

    Raises:
        OCRServiceError: If the payload is not an array of valid records
    """
    if not isinstance(records, list):
        raise OCRServiceError(f"Expected a JSON array of blocks, got {type(records).__name__}")

    blocks = []
    for i, record in enumerate(records):
        if not isinstance(record, dict):
            raise OCRServiceError(f"Block record {i} is not an object")
        try:
            blocks.append(Block.from_dict(record))
        except (KeyError, ValueError, TypeError, AttributeError) as e:
            raise OCRServiceError(f"Malformed block record {i}: {e}")

    return blocks


class GeminiLayoutClient:
    """Layout OCR through the Gemini generateContent REST API."""

    def __init__(
        self,
        config: Optional[OCRServiceConfig] = None,
        session: Optional[requests.Session] = None
    ):
        self.config = config or OCRServiceConfig()
        self.session = session or requests.Session()

        if not self.config.api_key:
            logger.warning("No OCR API key configured (set GEMINI_API_KEY)")

    @property
    def url(self) -> str:
        return f"{self.config.endpoint.rstrip('/')}/models/{self.config.model}:generateContent"

    def build_request(self, image_bytes: bytes, mime_type: str) -> Dict[str, Any]:
        return {
            "systemInstruction": {
                "parts": [{"text": self.config.system_instruction}]
            },
            "contents": [{
                "parts": [
                    {
                        "inlineData": {
                            "mimeType": mime_type,
                            "data": base64.b64encode(image_bytes).decode("ascii")
                        }
                    },
                    {"text": self.config.prompt}
                ]
            }],
            "generationConfig": {
                "responseMimeType": "application/json",
                "responseSchema": RESPONSE_SCHEMA
            }
        }

    def analyze(self, image_bytes: bytes, mime_type: str) -> List[Block]:
        """
        Recognize the layout blocks of one page image.

        Args:
            image_bytes: Encoded page image
            mime_type: e.g. 'image/jpeg'

        Returns:
            Blocks in the order the service returned them

        Raises:
            OCRServiceError: On any network, HTTP or decoding failure
        """
        headers = {
            "x-goog-api-key": self.config.api_key,
            "Content-Type": "application/json"
        }

        try:
            response = self.session.post(
                self.url,
                headers=headers,
                json=self.build_request(image_bytes, mime_type),
                timeout=self.config.timeout
            )
            response.raise_for_status()
            payload = response.json()
        except requests.exceptions.RequestException as e:
            raise OCRServiceError(f"OCR request failed: {e}")
        except ValueError as e:
            raise OCRServiceError(f"OCR response is not JSON: {e}")

        text = self._response_text(payload)
        try:
            records = json.loads(text or "[]")
        except json.JSONDecodeError as e:
            raise OCRServiceError(f"Model output is not valid JSON: {e}")

        blocks = decode_blocks(records)
        logger.debug(f"OCR returned {len(blocks)} blocks")
        return blocks

    def _response_text(self, payload: Dict[str, Any]) -> str:
        """Concatenate the text parts of the first candidate."""
        candidates = payload.get("candidates") if isinstance(payload, dict) else None
        if not candidates:
            feedback = payload.get("promptFeedback") if isinstance(payload, dict) else None
            raise OCRServiceError(f"OCR response has no candidates: {feedback}")

        parts = (candidates[0].get("content") or {}).get("parts") or []
        return "".join(part.get("text", "") for part in parts)
