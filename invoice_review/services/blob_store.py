"""
Blob Store Module.

Filesystem-backed object store for uploaded documents and stored
extraction responses. Objects are addressed by opaque paths of the form
``scheme://bucket/folder/name`` that are threaded through invoice records
as ``document_url`` and ``ai_response_url``.

Author: ML Engineering Team
"""

import json
import re
from pathlib import Path
from typing import Any, Optional, Tuple

from config import get_config
from invoice_review.utils.logger import get_logger
from invoice_review.utils.helpers import ensure_directory
from invoice_review.utils.exceptions import BlobNotFoundError, StorageError

logger = get_logger(__name__)

URI_PATTERN = re.compile(r'^(?P<scheme>[a-zA-Z][\w+.-]*)://(?P<bucket>[^/]+)/(?P<key>.+)$')


def filename_from_uri(path: Optional[str]) -> Optional[str]:
    """
    Filename suffix of a ``scheme://bucket/prefix/name`` path.

    Example:
        >>> filename_from_uri("gs://invoices/documents/2026-01-21T10-00-00-000Z_inv.pdf")
        '2026-01-21T10-00-00-000Z_inv.pdf'
        >>> filename_from_uri("not a uri") is None
        True
    """
    if not path:
        return None
    match = URI_PATTERN.match(path)
    if not match:
        return None
    return match.group('key').rsplit('/', 1)[-1] or None


class LocalBlobStore:
    """
    Stores blobs under ``root_dir/bucket/folder/name``.

    Attributes:
        root_dir: Base directory
        bucket: Bucket name, the first path segment under root_dir
        scheme: URI scheme used in returned paths

    Example:
        >>> store = LocalBlobStore("data/blobs")
        >>> path = store.put(b"%PDF...", "inv.pdf", "documents")
        >>> path
        'local://invoices/documents/inv.pdf'
        >>> store.get(path)[:4]
        b'%PDF'
    """

    def __init__(
        self,
        root_dir: Optional[str] = None,
        bucket: Optional[str] = None,
        scheme: Optional[str] = None
    ) -> None:
        self.root_dir = Path(root_dir or get_config("storage.root_dir", "data/blobs"))
        self.bucket = bucket or get_config("storage.bucket", "invoices")
        self.scheme = scheme or get_config("storage.scheme", "local")
        self.documents_folder = get_config("storage.documents_folder", "documents")
        self.ai_responses_folder = get_config("storage.ai_responses_folder", "ai-responses")

        logger.debug(f"LocalBlobStore initialized ({self.root_dir}, bucket: {self.bucket})")

    def _split(self, path: str) -> Tuple[str, str]:
        match = URI_PATTERN.match(path or '')
        if not match or match.group('scheme') != self.scheme:
            raise BlobNotFoundError(path)
        return match.group('bucket'), match.group('key')

    def _local_path(self, bucket: str, key: str) -> Path:
        local = (self.root_dir / bucket / key).resolve()
        if self.root_dir.resolve() not in local.parents:
            raise StorageError(f"Blob key escapes the store: {key}", {"key": key})
        return local

    def put(self, data: bytes, filename: str, folder: str = '') -> str:
        """
        Store bytes.

        Returns:
            Opaque path of the stored object.
        """
        key = f"{folder.strip('/')}/{filename}" if folder else filename
        local = self._local_path(self.bucket, key)
        ensure_directory(local.parent)

        try:
            local.write_bytes(data)
        except OSError as e:
            raise StorageError(f"Could not write blob: {key}", {"reason": str(e)})

        path = f"{self.scheme}://{self.bucket}/{key}"
        logger.debug(f"Stored {len(data)} bytes at {path}")
        return path

    def get(self, path: str) -> bytes:
        """
        Read a stored object.

        Raises:
            BlobNotFoundError: If the path is foreign or nothing is stored there.
        """
        bucket, key = self._split(path)
        local = self._local_path(bucket, key)
        if not local.is_file():
            raise BlobNotFoundError(path)
        return local.read_bytes()

    def put_document(self, data: bytes, filename: str) -> str:
        return self.put(data, filename, self.documents_folder)

    def put_json(self, payload: Any, filename: str) -> str:
        """Store a JSON document under the AI response folder, as ``<stem>.json``."""
        json_name = re.sub(r'\.[^/.]+$', '', filename) + '.json'
        data = json.dumps(payload, indent=2, ensure_ascii=False).encode('utf-8')
        return self.put(data, json_name, self.ai_responses_folder)

    def get_json(self, path: str) -> Any:
        try:
            return json.loads(self.get(path).decode('utf-8'))
        except ValueError as e:
            raise StorageError(f"Stored object is not valid JSON: {path}", {"reason": str(e)})
