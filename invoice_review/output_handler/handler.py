"""
Main Output Handler Module.

Coordinates the record store and the Excel exporter. Verified invoices
are listed by export state, exported, and then marked as synced.

Author: ML Engineering Team
"""

from typing import Any, Dict, Iterable, List, Optional

from invoice_review.utils.logger import get_logger
from .database_handler import InvoiceStore
from .excel_exporter import VerifiedInvoiceExporter
from .records import InvoiceRecord, STATUS_VERIFIED, SYNC_NOT_SYNCED, SYNC_SYNCED

logger = get_logger(__name__)


class OutputHandler:
    """
    Export and analytics over the invoice store.

    Example:
        >>> handler = OutputHandler(store)
        >>> result = handler.export_verified()
        >>> print(result['excel_path'], result['exported'])
    """

    def __init__(
        self,
        store: Optional[InvoiceStore] = None,
        exporter: Optional[VerifiedInvoiceExporter] = None
    ) -> None:
        self.store = store or InvoiceStore()
        self.exporter = exporter or VerifiedInvoiceExporter()

    def history(self, synced: bool = False) -> List[InvoiceRecord]:
        """Verified invoices, newest first, either not yet exported or already exported."""
        return self.store.select(
            status=STATUS_VERIFIED,
            sync_status=SYNC_SYNCED if synced else SYNC_NOT_SYNCED,
            order_by="processed_at DESC, id DESC",
        )

    def export_verified(
        self,
        invoice_ids: Optional[Iterable[int]] = None,
        filename: Optional[str] = None,
        include_synced: bool = False
    ) -> Dict[str, Any]:
        """
        Export verified invoices and flip their sync status.

        Args:
            invoice_ids: Restrict to these ids; every candidate if None.
                Ids outside the candidate set are ignored.
            filename: Workbook name; generated if None.
            include_synced: Also consider invoices exported before. By
                default only verified invoices not yet synced are candidates.

        Returns:
            ``{'excel_path': str, 'exported': int}``

        Raises:
            ExportError: If nothing matches or the workbook cannot be written.
            DatabaseError: If the store cannot be read or updated.
        """
        filters = {'status': STATUS_VERIFIED}
        if not include_synced:
            filters['sync_status'] = SYNC_NOT_SYNCED

        invoices = self.store.select(order_by="id ASC", **filters)
        if invoice_ids is not None:
            wanted = set(invoice_ids)
            invoices = [inv for inv in invoices if inv.id in wanted]

        line_items = {inv.id: self.store.get_line_items(inv.id) for inv in invoices}
        path = self.exporter.export(invoices, line_items, filename)

        # Only flipped once the workbook is on disk.
        exported = self.store.update_many([inv.id for inv in invoices], sync_status=SYNC_SYNCED)
        logger.info(f"Marked {exported} invoice(s) as {SYNC_SYNCED}")
        return {'excel_path': path, 'exported': exported}

    def get_statistics(self) -> Dict[str, Any]:
        return self.store.get_statistics()
