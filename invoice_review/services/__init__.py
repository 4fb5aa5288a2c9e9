"""
External Collaborator Adapters for the Invoice Review Engine.

This module provides:
    - ExtractionClient: HTTP client for the document-understanding relay
    - LocalBlobStore: filesystem object store for documents and responses
    - PageRenderer: page geometry for highlight placement
    - DocumentIntake: store + extract + record for one upload

Author: ML Engineering Team
"""

from .extraction_client import ExtractionClient, ExtractionResponse
from .blob_store import LocalBlobStore, filename_from_uri
from .page_renderer import Document, PageRenderer, PageSize
from .intake import DocumentIntake, IntakeResult

__all__ = [
    'ExtractionClient',
    'ExtractionResponse',
    'LocalBlobStore',
    'filename_from_uri',
    'Document',
    'PageRenderer',
    'PageSize',
    'DocumentIntake',
    'IntakeResult',
]
