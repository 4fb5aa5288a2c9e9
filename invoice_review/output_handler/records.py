"""
Persisted Record Data Classes.

This module defines the invoice and line item records written to and
read back from the record store.

Author: ML Engineering Team
"""

from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, List, Optional
import json

from invoice_review.utils.helpers import utc_now_iso

# Invoice lifecycle
STATUS_NOT_REVIEWED = 'not_reviewed'
STATUS_REVIEWED = 'reviewed'
STATUS_VERIFIED = 'verified'
INVOICE_STATUSES = (STATUS_NOT_REVIEWED, STATUS_REVIEWED, STATUS_VERIFIED)

# Export state
SYNC_NOT_SYNCED = 'not_synced'
SYNC_SYNCED = 'synced'


@dataclass
class InvoiceRecord:
    """
    Represents a persisted invoice.

    Created by batch or single upload; ``status`` moves to ``reviewed`` on
    single-upload submit and to ``verified`` from the review queue.
    ``sync_status`` flips to ``synced`` only on export.

    Attributes:
        invoice_number: Invoice identifier printed on the document
        invoice_date: ISO date or None
        due_date: ISO date or None
        supplier_name: Seller name
        supplier_address: Seller address
        receiver_name: Buyer name
        receiver_address: Buyer address
        total_amount: Parsed total amount
        tax_amount: Parsed tax amount
        net_amount: Parsed net amount
        confidence_score: Aggregate document confidence (0-1)
        status: One of INVOICE_STATUSES
        document_url: Blob path of the source document
        ai_response_url: Blob path of the stored extraction response
        sync_status: Export state
        processed_at: ISO timestamp of creation
        id: Store-assigned identifier

    Example:
        >>> record = InvoiceRecord(invoice_number="INV-1", supplier_name="Acme")
        >>> record.status
        'not_reviewed'
    """
    invoice_number: Optional[str] = None
    invoice_date: Optional[str] = None
    due_date: Optional[str] = None
    supplier_name: Optional[str] = None
    supplier_address: Optional[str] = None
    receiver_name: Optional[str] = None
    receiver_address: Optional[str] = None
    total_amount: float = 0.0
    tax_amount: float = 0.0
    net_amount: float = 0.0
    confidence_score: float = 0.0
    status: str = STATUS_NOT_REVIEWED
    document_url: Optional[str] = None
    ai_response_url: Optional[str] = None
    sync_status: str = SYNC_NOT_SYNCED
    processed_at: Optional[str] = None
    id: Optional[int] = None

    def __post_init__(self):
        """Initialize timestamp if not provided."""
        if self.processed_at is None:
            self.processed_at = utc_now_iso()

    @classmethod
    def column_names(cls) -> List[str]:
        """Stored columns, excluding the identifier."""
        return [f.name for f in fields(cls) if f.name != 'id']

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'InvoiceRecord':
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in row.items() if k in known})

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)


@dataclass
class LineItemRecord:
    """
    Represents a persisted line item owned by one invoice.

    Attributes:
        invoice_id: Owning invoice identifier
        description: Item description
        quantity: Parsed quantity
        unit_price: Parsed unit price
        amount: Parsed line amount
        line_number: One-based position within the invoice
    """
    invoice_id: Optional[int] = None
    description: str = ''
    quantity: float = 0.0
    unit_price: float = 0.0
    amount: float = 0.0
    line_number: int = 0
    id: Optional[int] = None

    @classmethod
    def column_names(cls) -> List[str]:
        return [f.name for f in fields(cls) if f.name != 'id']

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'LineItemRecord':
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in row.items() if k in known})

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class InvoiceDraft:
    """An invoice and its line items, ready to persist."""
    invoice: InvoiceRecord
    line_items: List[LineItemRecord] = field(default_factory=list)
