"""
Extraction Client Module.

HTTP client for the document-understanding relay. The relay accepts a
multipart upload and answers with the extracted entity list.

Response shape::

    {
        "text": "...",
        "entities": [...],
        "confidence": 0.93,
        "storagePath": "gs://bucket/documents/<name>",
        "aiResponsePath": "gs://bucket/ai-responses/<name>.json"
    }

Author: ML Engineering Team
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests

from config import get_config
from invoice_review.entities import Entity, normalize_ai_response
from invoice_review.utils.logger import get_logger
from invoice_review.utils.helpers import get_file_extension
from invoice_review.utils.exceptions import ExtractionServiceError, UnsupportedFileTypeError

logger = get_logger(__name__)

DEFAULT_MIME_TYPES = {
    '.pdf': 'application/pdf',
    '.png': 'image/png',
    '.jpg': 'image/jpeg',
    '.jpeg': 'image/jpeg',
}


@dataclass
class ExtractionResponse:
    """
    Result of one extraction call.

    Attributes:
        entities: Extracted entities
        raw: Decoded JSON body, stored verbatim as the AI response
        text: Full document text
        storage_path: Where the relay stored the document, if it did
        ai_response_path: Where the relay stored the response, if it did
    """
    entities: List[Entity]
    raw: Dict[str, Any] = field(default_factory=dict)
    text: str = ''
    storage_path: Optional[str] = None
    ai_response_path: Optional[str] = None


class ExtractionClient:
    """
    Posts documents to the extraction relay.

    Every request carries an explicit timeout; a stuck call fails the item
    instead of hanging the batch.

    Example:
        >>> client = ExtractionClient()
        >>> response = client.process("inv.pdf", data, "application/pdf")
        >>> len(response.entities)
        14
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None
    ) -> None:
        url = base_url or get_config("extraction.base_url", "http://localhost:3001")
        self.base_url = url.rstrip('/')
        self.endpoint = get_config("extraction.endpoint", "/api/process-invoice")
        self.timeout = timeout or float(get_config("extraction.timeout_seconds", 120))
        self.mime_types = get_config("extraction.supported_mime_types", DEFAULT_MIME_TYPES)
        self._session = session or requests.Session()

        logger.debug(f"ExtractionClient initialized ({self.base_url}{self.endpoint})")

    def mime_type_for(self, filename: str) -> str:
        """
        MIME type for an upload, based on its extension.

        Raises:
            UnsupportedFileTypeError: If the extension is not accepted.
        """
        extension = get_file_extension(filename)
        if extension not in self.mime_types:
            raise UnsupportedFileTypeError(extension, sorted(self.mime_types))
        return self.mime_types[extension]

    def process(
        self,
        filename: str,
        data: bytes,
        mime_type: Optional[str] = None
    ) -> ExtractionResponse:
        """
        Extract entities from a document.

        Args:
            filename: Original filename, sent with the upload.
            data: File contents.
            mime_type: MIME type; derived from the extension when None.

        Returns:
            ExtractionResponse.

        Raises:
            ExtractionServiceError: If the request fails or the body has
                no entity list.
        """
        mime_type = mime_type or self.mime_type_for(filename)
        url = f"{self.base_url}{self.endpoint}"
        logger.info(f"Sending {filename} ({len(data)} bytes, {mime_type}) for extraction")

        try:
            response = self._session.post(
                url,
                files={'file': (filename, data, mime_type)},
                timeout=self.timeout,
            )
            response.raise_for_status()
            body = response.json()
        except requests.HTTPError as exc:
            status_code = exc.response.status_code if exc.response is not None else None
            reason = self._error_message(exc.response) or str(exc)
            raise ExtractionServiceError(filename, reason, status_code) from exc
        except requests.RequestException as exc:
            raise ExtractionServiceError(filename, str(exc)) from exc
        except ValueError as exc:
            raise ExtractionServiceError(filename, f"Invalid JSON response: {exc}") from exc

        entities = normalize_ai_response(body)
        if entities is None:
            raise ExtractionServiceError(filename, "Response contains no entities")

        logger.info(f"Extracted {len(entities)} entities from {filename}")
        return ExtractionResponse(
            entities=entities,
            raw=body,
            text=body.get('text') or '',
            storage_path=body.get('storagePath'),
            ai_response_path=body.get('aiResponsePath'),
        )

    @staticmethod
    def _error_message(response: Optional[requests.Response]) -> Optional[str]:
        if response is None:
            return None
        try:
            return response.json().get('error')
        except (ValueError, AttributeError):
            return response.text or None
