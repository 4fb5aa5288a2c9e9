import copy

import pytest

from config import ConfigurationManager
from invoice_review.entities import normalize_ai_response
from invoice_review.output_handler import InvoiceStore
from invoice_review.services import LocalBlobStore
from invoice_review.services.extraction_client import ExtractionResponse
from invoice_review.utils.exceptions import ExtractionServiceError


def entity(entity_id, entity_type, text, confidence=0.9, page=0, vertices=None, properties=None):
    """Entity dict in the service's camelCase shape."""
    data = {"id": entity_id, "type": entity_type, "mentionText": text}
    if confidence is not None:
        data["confidence"] = confidence
    if page is not None:
        ref = {"page": str(page)}
        if vertices is not None:
            ref["boundingPoly"] = {"normalizedVertices": [{"x": x, "y": y} for x, y in vertices]}
        data["pageAnchor"] = {"pageRefs": [ref]}
    if properties is not None:
        data["properties"] = properties
    return data


SAMPLE_ENTITIES = [
    entity("0", "supplier_name", "Acme Corp", 0.9),
    entity("1", "supplier_address", "1 Main St", 0.8),
    entity("2", "invoice_id", "INV-1001", 0.95),
    entity("3", "invoice_date", "03/04/2024", 0.9),
    entity("4", "due_date", "04/04/2024", 0.7),
    entity("5", "receiver_name", "Globex", 0.85),
    entity("6", "total_amount", "$120.00", 0.9),
    entity("7", "total_tax_amount", "$20.00", 0.9),
    entity("8", "net_amount", "$100.00", 0.9),
    entity("9", "line_item", "Widget 2 $50.00 $100.00", 0.8, properties=[
        entity("9a", "line_item/description", "Widget", 0.9, page=None),
        entity("9b", "line_item/quantity", "2", None, page=None),
        entity("9c", "line_item/unit_price", "$50.00", 0.8, page=None),
        entity("9d", "line_item/amount", "$100.00", 0.85, page=None),
        entity("9e", "description", "stray", 0.99, page=None),
    ]),
    entity("10", "currency", "USD", 0.99, page=1),
]

# supplier 2, invoice 2, receiver 1, totals 3, line item 1, properties 4 (quantity at default 0.5)
SAMPLE_CONFIDENCE = (0.9 + 0.8 + 0.95 + 0.9 + 0.85 + 0.9 * 3 + 0.8 + 0.9 + 0.5 + 0.8 + 0.85) / 13


@pytest.fixture(autouse=True)
def reset_config():
    ConfigurationManager.reset()
    yield
    ConfigurationManager.reset()


@pytest.fixture
def sample_payload():
    return {"text": "INVOICE", "entities": copy.deepcopy(SAMPLE_ENTITIES)}


@pytest.fixture
def sample_entities(sample_payload):
    return normalize_ai_response(sample_payload)


@pytest.fixture
def store(tmp_path):
    return InvoiceStore(str(tmp_path / "invoices.db"))


@pytest.fixture
def blob_store(tmp_path):
    return LocalBlobStore(root_dir=str(tmp_path / "blobs"), bucket="invoices", scheme="local")


class StubExtractionClient:
    """Answers with canned payloads; filenames in ``failures`` raise."""

    def __init__(self, payloads=None, default=None, failures=()):
        self.payloads = payloads or {}
        self.default = default
        self.failures = set(failures)
        self.calls = []

    def process(self, filename, data, mime_type=None):
        self.calls.append(filename)
        if filename in self.failures:
            raise ExtractionServiceError(filename, "service unavailable", 503)
        payload = copy.deepcopy(self.payloads.get(filename, self.default))
        return ExtractionResponse(
            entities=normalize_ai_response(payload),
            raw=payload,
            text=payload.get("text", ""),
            storage_path=payload.get("storagePath"),
            ai_response_path=payload.get("aiResponsePath"),
        )


@pytest.fixture
def stub_client(sample_payload):
    return StubExtractionClient(default=sample_payload)
