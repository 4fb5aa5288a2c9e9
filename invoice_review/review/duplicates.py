"""
Duplicate Detection Module.

An invoice is a duplicate when a stored invoice has the same invoice
number, supplier name and invoice date. Matching is exact; OCR noise in
any of the three fields defeats it.

Author: ML Engineering Team
"""

from typing import Optional

from invoice_review.output_handler.database_handler import InvoiceStore
from invoice_review.output_handler.records import InvoiceRecord
from invoice_review.utils.logger import get_logger
from invoice_review.utils.exceptions import DatabaseError
from .session import DuplicateWarning

logger = get_logger(__name__)


def submit_conflict_message(invoice: InvoiceRecord) -> str:
    return (
        f"This invoice has already been submitted. "
        f"Invoice #{invoice.invoice_number} from {invoice.supplier_name} "
        f"on {invoice.invoice_date} already exists in the database."
    )


class DuplicateDetector:
    """
    Looks up existing invoices with the same identity.

    Used twice per review: eagerly after extraction for a non-blocking
    warning, and again at submit time where a match blocks unless forced.

    Example:
        >>> detector = DuplicateDetector(store)
        >>> detector.find_duplicate("INV-1", "Acme", "2024-01-01")
        InvoiceRecord(invoice_number='INV-1', ...)
    """

    def __init__(self, store: InvoiceStore) -> None:
        self.store = store

    def find_duplicate(
        self,
        invoice_number: Optional[str],
        supplier_name: Optional[str],
        invoice_date: Optional[str],
        exclude_id: Optional[int] = None
    ) -> Optional[InvoiceRecord]:
        """
        First stored invoice matching all three fields, or None.

        Raises:
            DatabaseError: If the store cannot be queried.
        """
        duplicate = self.store.find_duplicate(
            invoice_number, supplier_name, invoice_date, exclude_id=exclude_id
        )
        if duplicate is not None:
            logger.info(
                f"Duplicate of invoice {duplicate.id}: {invoice_number!r} from "
                f"{supplier_name!r} on {invoice_date}"
            )
        return duplicate

    def eager_warning(
        self,
        invoice_number: Optional[str],
        supplier_name: Optional[str],
        invoice_date: Optional[str],
        exclude_id: Optional[int] = None
    ) -> Optional[DuplicateWarning]:
        """
        Warning for a freshly extracted document.

        Only checked when all three values are present. Store failures are
        logged and reported as no duplicate.
        """
        if not (invoice_number and supplier_name and invoice_date):
            return None

        try:
            duplicate = self.find_duplicate(
                invoice_number, supplier_name, invoice_date, exclude_id=exclude_id
            )
        except DatabaseError as e:
            logger.error(f"Error checking for duplicate during processing: {e}")
            return None

        return DuplicateWarning.for_invoice(duplicate) if duplicate else None
