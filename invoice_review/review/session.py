"""
Review Session Module.

The state of one document under review, as an immutable value object.
Every edit produces a new ReviewSession; nothing mutates shared maps, so
resolvers and validators can be exercised without a controller.

Author: ML Engineering Team
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, Mapping, Optional, Tuple

from invoice_review.entities import Buckets, Entity
from invoice_review.output_handler.records import InvoiceRecord


class SessionState(Enum):
    """Lifecycle of a review session."""
    IDLE = "idle"
    LOADING = "loading"
    LOADED = "loaded"
    SUBMITTING = "submitting"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class DuplicateWarning:
    """An existing invoice that matches the one under review."""
    message: str
    invoice: InvoiceRecord

    @classmethod
    def for_invoice(cls, invoice: InvoiceRecord) -> 'DuplicateWarning':
        return cls(
            message=(
                f"Warning: This invoice appears to be a duplicate. "
                f"Invoice #{invoice.invoice_number} from {invoice.supplier_name} "
                f"on {invoice.invoice_date} already exists in the database. "
                f"You can edit the fields if you believe this is incorrect."
            ),
            invoice=invoice,
        )


@dataclass(frozen=True)
class ReviewSession:
    """
    Immutable snapshot of a review.

    Attributes:
        state: Current lifecycle state
        filename: Name of the document under review
        entities: Extracted entities, never modified after load
        buckets: Classification of ``entities``
        confidence: Aggregate document confidence
        overrides: Reviewer values by field key
        errors: Validation messages by field key
        duplicate_warning: Non-blocking duplicate notice
        message: Last user-facing status or error message
        invoice_id: Stored invoice being reviewed, or the one just saved
        document_url: Blob path of the document
        ai_response_url: Blob path of the stored extraction response
        has_document: Whether extraction results are loaded

    Example:
        >>> session = ReviewSession().with_override("3", "$105.00")
        >>> session.overrides
        {'3': '$105.00'}
    """
    state: SessionState = SessionState.IDLE
    filename: Optional[str] = None
    entities: Tuple[Entity, ...] = ()
    buckets: Buckets = field(default_factory=dict)
    confidence: float = 0.0
    overrides: Mapping[str, str] = field(default_factory=dict)
    errors: Mapping[str, str] = field(default_factory=dict)
    duplicate_warning: Optional[DuplicateWarning] = None
    message: Optional[str] = None
    invoice_id: Optional[int] = None
    document_url: Optional[str] = None
    ai_response_url: Optional[str] = None
    has_document: bool = False

    def with_state(self, state: SessionState, message: Optional[str] = None) -> 'ReviewSession':
        return replace(self, state=state, message=message)

    def with_override(self, key: str, value: str) -> 'ReviewSession':
        """Set one override and drop only that key's validation error."""
        overrides: Dict[str, str] = dict(self.overrides)
        overrides[key] = value
        errors = {k: v for k, v in self.errors.items() if k != key}
        return replace(self, overrides=overrides, errors=errors)

    def with_errors(self, errors: Mapping[str, str]) -> 'ReviewSession':
        return replace(self, errors=dict(errors))

    def with_duplicate_warning(self, warning: Optional[DuplicateWarning]) -> 'ReviewSession':
        return replace(self, duplicate_warning=warning)

    def display_value(self, key: str, source_text: str = '') -> str:
        """Override for ``key`` if present, otherwise the extracted text."""
        if key in self.overrides:
            return self.overrides[key]
        return source_text
