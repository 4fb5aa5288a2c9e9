"""
Document Intake Module.

One upload through the extraction collaborators: the document is stored,
sent for extraction, and the extraction response is stored next to it.

Author: ML Engineering Team
"""

from dataclasses import dataclass
from typing import List, Optional

from invoice_review.entities import Entity
from invoice_review.utils.logger import get_logger
from invoice_review.utils.helpers import unique_filename
from .blob_store import LocalBlobStore
from .extraction_client import ExtractionClient

logger = get_logger(__name__)


@dataclass
class IntakeResult:
    """Entities of an upload plus where its blobs live."""
    filename: str
    entities: List[Entity]
    document_url: Optional[str] = None
    ai_response_url: Optional[str] = None


class DocumentIntake:
    """
    Stores, extracts and records one document.

    Blob paths reported by the extraction relay take precedence; when the
    relay does not store anything, both blobs are written to the local store.

    Example:
        >>> intake = DocumentIntake(ExtractionClient(), LocalBlobStore())
        >>> result = intake.process("inv.pdf", data)
        >>> result.ai_response_url
        'local://invoices/ai-responses/2026-01-21T10-00-00-000000+00-00_inv.json'
    """

    def __init__(self, client: ExtractionClient, blob_store: LocalBlobStore) -> None:
        self.client = client
        self.blob_store = blob_store

    def process(self, filename: str, data: bytes, mime_type: Optional[str] = None) -> IntakeResult:
        """
        Raises:
            ExtractionServiceError: If extraction fails.
            StorageError: If a blob cannot be written.
        """
        stored_name = unique_filename(filename)
        response = self.client.process(filename, data, mime_type)

        document_url = response.storage_path or self.blob_store.put_document(data, stored_name)
        ai_response_url = (
            response.ai_response_path
            or self.blob_store.put_json({**response.raw, 'storagePath': document_url}, stored_name)
        )

        logger.info(f"Intake complete for {filename}: {len(response.entities)} entities")
        return IntakeResult(
            filename=filename,
            entities=response.entities,
            document_url=document_url,
            ai_response_url=ai_response_url,
        )
