"""
Main Post-Processor Module.

This module provides the PostProcessor class that turns classified
buckets plus reviewer overrides into a persistable invoice draft.

Operations:
    - Resolve header fields and the totals triad
    - Apply overrides (override wins over extracted text)
    - Normalize dates and amounts
    - Flatten line items across pages
    - Aggregate document confidence

Author: ML Engineering Team
"""

from typing import Dict, List, Mapping, Optional

from invoice_review.entities import Buckets, pooled
from invoice_review.output_handler.records import (
    InvoiceDraft,
    InvoiceRecord,
    LineItemRecord,
    STATUS_NOT_REVIEWED,
)
from invoice_review.utils.logger import get_logger
from .confidence import ConfidenceAggregator
from .normalizers import AmountParser, DateParser
from .resolver import FieldResolver, effective_text

# Initialize module logger
logger = get_logger(__name__)

DATE_FIELDS = ('invoice_date', 'due_date')


class PostProcessor:
    """
    Builds invoice drafts from classified entities.

    Example:
        >>> processor = PostProcessor()
        >>> draft = processor.build_draft(buckets, overrides={"7": "INV-9"})
        >>> draft.invoice.invoice_number
        'INV-9'
    """

    def __init__(
        self,
        resolver: Optional[FieldResolver] = None,
        aggregator: Optional[ConfidenceAggregator] = None
    ) -> None:
        """Initialize the post-processor with all sub-components."""
        self.resolver = resolver or FieldResolver()
        self.aggregator = aggregator or ConfidenceAggregator()
        self.amount_parser = AmountParser()
        self.date_parser = DateParser()

    def header_values(
        self,
        buckets: Buckets,
        overrides: Optional[Mapping[str, str]] = None
    ) -> Dict[str, Optional[str]]:
        """
        Header field values as the reviewer sees them.

        Dates are normalized to ISO; other fields are returned as text.
        """
        overrides = overrides or {}
        values: Dict[str, Optional[str]] = {}
        for name, entity in self.resolver.header_fields(buckets).items():
            text = effective_text(entity, overrides)
            values[name] = self.date_parser.parse(text) if name in DATE_FIELDS else text
        return values

    def total_values(
        self,
        buckets: Buckets,
        overrides: Optional[Mapping[str, str]] = None
    ) -> Dict[str, float]:
        overrides = overrides or {}
        totals = self.resolver.resolve_totals(buckets)
        return {
            f"{slot}_amount": self.amount_parser.parse(effective_text(entity, overrides))
            for slot, entity in totals.items()
        }

    def line_item_records(
        self,
        buckets: Buckets,
        overrides: Optional[Mapping[str, str]] = None
    ) -> List[LineItemRecord]:
        """Line items from every page in page order; ``invoice_id`` left unset."""
        overrides = overrides or {}
        records = []

        for number, item in enumerate(pooled(buckets, 'line_items'), start=1):
            def value(prop: str) -> str:
                key = item.field_key(prop)
                return overrides[key] if key in overrides else item.property_text(prop)

            records.append(LineItemRecord(
                description=value('description'),
                quantity=self.amount_parser.parse(value('quantity')),
                unit_price=self.amount_parser.parse(value('unit_price')),
                amount=self.amount_parser.parse(value('amount')),
                line_number=number,
            ))

        return records

    def build_draft(
        self,
        buckets: Buckets,
        overrides: Optional[Mapping[str, str]] = None,
        status: str = STATUS_NOT_REVIEWED,
        document_url: Optional[str] = None,
        ai_response_url: Optional[str] = None,
        fallbacks: Optional[Mapping[str, str]] = None
    ) -> InvoiceDraft:
        """
        Build an invoice draft ready to persist.

        Args:
            buckets: Classified buckets.
            overrides: Reviewer overrides by field key.
            status: Invoice status to record.
            document_url: Blob path of the source document.
            ai_response_url: Blob path of the stored extraction response.
            fallbacks: Values for header fields that resolved empty.

        Returns:
            InvoiceDraft with invoice and line items.
        """
        header = self.header_values(buckets, overrides)
        for name, fallback in (fallbacks or {}).items():
            if not header.get(name):
                header[name] = fallback

        invoice = InvoiceRecord(
            **header,
            **self.total_values(buckets, overrides),
            confidence_score=self.aggregator.aggregate(buckets),
            status=status,
            document_url=document_url,
            ai_response_url=ai_response_url,
        )
        line_items = self.line_item_records(buckets, overrides)

        logger.info(
            f"Built draft for invoice {invoice.invoice_number!r}: "
            f"total {invoice.total_amount:.2f}, {len(line_items)} line item(s), "
            f"confidence {invoice.confidence_score:.2f}"
        )
        return InvoiceDraft(invoice=invoice, line_items=line_items)
