"""
Output Handler Module for the Invoice Review System.

This module provides functionality for:
    - Invoice and line-item records
    - Database storage (SQLite)
    - Excel export of verified invoices
    - Analytics over verified invoices

Author: ML Engineering Team
"""

from .records import (
    InvoiceRecord,
    LineItemRecord,
    InvoiceDraft,
    STATUS_NOT_REVIEWED,
    STATUS_REVIEWED,
    STATUS_VERIFIED,
    INVOICE_STATUSES,
    SYNC_NOT_SYNCED,
    SYNC_SYNCED,
)
from .database_handler import InvoiceStore
from .excel_exporter import VerifiedInvoiceExporter
from .handler import OutputHandler

__all__ = [
    'InvoiceRecord',
    'LineItemRecord',
    'InvoiceDraft',
    'STATUS_NOT_REVIEWED',
    'STATUS_REVIEWED',
    'STATUS_VERIFIED',
    'INVOICE_STATUSES',
    'SYNC_NOT_SYNCED',
    'SYNC_SYNCED',
    'InvoiceStore',
    'VerifiedInvoiceExporter',
    'OutputHandler',
]
