"""
Review Queue Module.

Lists invoices waiting for review (``status = not_reviewed``), newest
upload first, with filtering, sorting and pagination.

Sort options:
    confidence-asc, confidence-desc, invoice-date-asc, invoice-date-desc,
    amount-asc, amount-desc, upload-date-asc, upload-date-desc

Author: ML Engineering Team
"""

import math
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Tuple

from dateutil import parser as date_parser

from config import get_config
from invoice_review.output_handler.database_handler import InvoiceStore
from invoice_review.output_handler.records import InvoiceRecord, STATUS_NOT_REVIEWED
from invoice_review.utils.logger import get_logger

logger = get_logger(__name__)

SORT_KEYS: Dict[str, Callable[[InvoiceRecord], Any]] = {
    'confidence': lambda inv: inv.confidence_score,
    'invoice-date': lambda inv: _to_date(inv.invoice_date),
    'amount': lambda inv: inv.total_amount,
    'upload-date': lambda inv: inv.processed_at and date_parser.parse(inv.processed_at),
}

SORT_OPTIONS = tuple(
    f"{key}-{direction}" for key in SORT_KEYS for direction in ('asc', 'desc')
)


def _to_date(value: Optional[str]) -> Optional[date]:
    """Calendar date of an ISO or free-form date string; None if unreadable."""
    if not value:
        return None
    try:
        return date_parser.parse(value).date()
    except (ValueError, OverflowError):
        logger.debug(f"Unreadable date in queue filter: {value!r}")
        return None


@dataclass
class QueueFilters:
    """
    Inclusive bounds; None means unbounded.

    Date bounds accept anything python-dateutil reads (``2024-01-31``,
    ``Jan 31 2024``); ``*_to`` bounds include the whole day.
    """
    confidence_min: Optional[float] = None
    confidence_max: Optional[float] = None
    amount_min: Optional[float] = None
    amount_max: Optional[float] = None
    invoice_date_from: Optional[str] = None
    invoice_date_to: Optional[str] = None
    upload_date_from: Optional[str] = None
    upload_date_to: Optional[str] = None

    def matches(self, invoice: InvoiceRecord) -> bool:
        if self.confidence_min is not None and invoice.confidence_score < self.confidence_min:
            return False
        if self.confidence_max is not None and invoice.confidence_score > self.confidence_max:
            return False
        if self.amount_min is not None and invoice.total_amount < self.amount_min:
            return False
        if self.amount_max is not None and invoice.total_amount > self.amount_max:
            return False
        if not self._within(invoice.invoice_date, self.invoice_date_from, self.invoice_date_to):
            return False
        return self._within(invoice.processed_at, self.upload_date_from, self.upload_date_to)

    @staticmethod
    def _within(value: Optional[str], lower: Optional[str], upper: Optional[str]) -> bool:
        lower_day, upper_day = _to_date(lower), _to_date(upper)
        if lower_day is None and upper_day is None:
            return True
        day = _to_date(value)
        if day is None:
            return False
        if lower_day is not None and day < lower_day:
            return False
        if upper_day is not None and day > upper_day:
            return False
        return True


@dataclass
class QueuePage:
    """One page of the queue."""
    items: List[InvoiceRecord]
    page: int
    total_pages: int
    total: int


def sort_invoices(invoices: List[InvoiceRecord], option: Optional[str]) -> List[InvoiceRecord]:
    """
    Sort by one of SORT_OPTIONS; records missing the sort value go last.

    An empty option keeps the input order.
    """
    if not option:
        return list(invoices)
    if option not in SORT_OPTIONS:
        raise ValueError(f"Unknown sort option: {option!r}. Choose from {', '.join(SORT_OPTIONS)}")

    name, direction = option.rsplit('-', 1)
    key = SORT_KEYS[name]
    present = [inv for inv in invoices if key(inv) is not None]
    missing = [inv for inv in invoices if key(inv) is None]
    present.sort(key=key, reverse=(direction == 'desc'))
    return present + missing


class ReviewQueue:
    """
    Not-reviewed invoices as the reviewer walks through them.

    ``refresh`` takes a snapshot; ``next_after`` walks that snapshot so the
    invoice just verified (and no longer pending) still has a position.

    Example:
        >>> queue = ReviewQueue(store)
        >>> queue.refresh(QueueFilters(confidence_max=0.5), sort="confidence-asc")
        >>> first = queue.page(1).items[0]
        >>> queue.next_after(first.id)
    """

    def __init__(self, store: InvoiceStore, page_size: Optional[int] = None) -> None:
        self.store = store
        self.page_size = int(page_size or get_config("review.review_queue.page_size", 15))
        self.filters = QueueFilters()
        self.sort: Optional[str] = None
        self.items: List[InvoiceRecord] = []

    def refresh(
        self,
        filters: Optional[QueueFilters] = None,
        sort: Optional[str] = None
    ) -> List[InvoiceRecord]:
        """Reload pending invoices, applying and remembering filters and sort."""
        if filters is not None:
            self.filters = filters
        if sort is not None:
            self.sort = sort

        pending = self.store.select(
            status=STATUS_NOT_REVIEWED, order_by="processed_at DESC, id DESC"
        )
        filtered = [inv for inv in pending if self.filters.matches(inv)]
        self.items = sort_invoices(filtered, self.sort)

        logger.debug(f"Review queue: {len(self.items)} of {len(pending)} pending invoice(s)")
        return self.items

    @property
    def total_pages(self) -> int:
        return math.ceil(len(self.items) / self.page_size)

    def page(self, number: int = 1) -> QueuePage:
        """One-based page of the current snapshot; out-of-range pages fall back to 1."""
        if number < 1 or number > max(self.total_pages, 1):
            number = 1
        start = (number - 1) * self.page_size
        return QueuePage(
            items=self.items[start:start + self.page_size],
            page=number,
            total_pages=self.total_pages,
            total=len(self.items),
        )

    def first(self) -> Optional[InvoiceRecord]:
        return self.items[0] if self.items else None

    def next_after(self, invoice_id: int) -> Optional[InvoiceRecord]:
        """Invoice following ``invoice_id`` in the snapshot, or None at the end."""
        ids: Tuple[int, ...] = tuple(inv.id for inv in self.items)
        if invoice_id not in ids:
            return None
        index = ids.index(invoice_id)
        return self.items[index + 1] if index + 1 < len(self.items) else None
