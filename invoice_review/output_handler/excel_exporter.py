"""
Excel Exporter Module.

Writes verified invoices and their line items to an xlsx workbook with
openpyxl: one "Invoices" sheet and one "Line Items" sheet.

Author: ML Engineering Team
"""

from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from config import get_config
from invoice_review.utils.logger import get_logger
from invoice_review.utils.helpers import ensure_directory, generate_timestamp
from invoice_review.utils.exceptions import ExportError
from .records import InvoiceRecord, LineItemRecord

logger = get_logger(__name__)

Columns = Sequence[Tuple[str, str]]


class VerifiedInvoiceExporter:
    """
    Exports verified invoices to Excel.

    Example:
        >>> exporter = VerifiedInvoiceExporter()
        >>> path = exporter.export(invoices, {invoice.id: items})
    """

    INVOICE_COLUMNS: Columns = [
        ('Invoice ID', 'id'),
        ('Invoice Number', 'invoice_number'),
        ('Invoice Date', 'invoice_date'),
        ('Due Date', 'due_date'),
        ('Supplier Name', 'supplier_name'),
        ('Supplier Address', 'supplier_address'),
        ('Receiver Name', 'receiver_name'),
        ('Receiver Address', 'receiver_address'),
        ('Net Amount', 'net_amount'),
        ('Tax Amount', 'tax_amount'),
        ('Total Amount', 'total_amount'),
        ('Confidence', 'confidence_score'),
        ('Processed At', 'processed_at'),
        ('Document', 'document_url'),
    ]

    LINE_ITEM_COLUMNS: Columns = [
        ('Invoice ID', 'invoice_id'),
        ('Line', 'line_number'),
        ('Description', 'description'),
        ('Quantity', 'quantity'),
        ('Unit Price', 'unit_price'),
        ('Amount', 'amount'),
    ]

    HEADER_FILL = "4472C4"

    def __init__(self, output_dir: Optional[str] = None) -> None:
        self.output_dir = Path(output_dir or get_config("paths.output_dir", "outputs"))
        self.invoices_sheet = get_config("output.excel.invoices_sheet", "Invoices")
        self.line_items_sheet = get_config("output.excel.line_items_sheet", "Line Items")
        self.filename_pattern = get_config(
            "output.excel.filename_pattern", "verified_invoices_{timestamp}.xlsx"
        )

    def default_filename(self) -> str:
        return self.filename_pattern.format(timestamp=generate_timestamp())

    def export(
        self,
        invoices: List[InvoiceRecord],
        line_items: Dict[int, List[LineItemRecord]],
        filename: Optional[str] = None
    ) -> str:
        """
        Write the workbook.

        Args:
            invoices: Invoices to export, one row each.
            line_items: Line items keyed by invoice id.
            filename: Output file name; generated from the pattern if None.

        Returns:
            Path of the written workbook.

        Raises:
            ExportError: If there is nothing to export or the file cannot be written.
        """
        filepath = self.output_dir / (filename or self.default_filename())
        if not invoices:
            raise ExportError(str(filepath), "No verified invoices to export")

        items = [item for invoice in invoices for item in line_items.get(invoice.id, [])]

        try:
            ensure_directory(self.output_dir)
            workbook = Workbook()
            sheet = workbook.active
            sheet.title = self.invoices_sheet
            self._fill_sheet(sheet, self.INVOICE_COLUMNS, [inv.to_dict() for inv in invoices])
            self._fill_sheet(
                workbook.create_sheet(title=self.line_items_sheet),
                self.LINE_ITEM_COLUMNS,
                [item.to_dict() for item in items],
            )
            workbook.save(filepath)
        except OSError as e:
            logger.error(f"Excel export failed: {e}")
            raise ExportError(str(filepath), str(e))

        logger.info(
            f"Excel file saved: {filepath} "
            f"({len(invoices)} invoices, {len(items)} line items)"
        )
        return str(filepath)

    def _fill_sheet(self, sheet, columns: Columns, rows: List[dict]) -> None:
        header_font = Font(bold=True, color="FFFFFF")
        header_fill = PatternFill(
            start_color=self.HEADER_FILL, end_color=self.HEADER_FILL, fill_type="solid"
        )
        thin = Side(style='thin')
        border = Border(left=thin, right=thin, top=thin, bottom=thin)

        for col, (header, _) in enumerate(columns, 1):
            cell = sheet.cell(row=1, column=col, value=header)
            cell.font = header_font
            cell.fill = header_fill
            cell.alignment = Alignment(horizontal="center", vertical="center")
            cell.border = border

        for row_num, row in enumerate(rows, 2):
            for col, (_, key) in enumerate(columns, 1):
                value = row.get(key)
                sheet.cell(row=row_num, column=col, value=value if value is not None else '').border = border

        for col, (header, key) in enumerate(columns, 1):
            width = max([len(header)] + [len(str(row.get(key) or '')) for row in rows])
            sheet.column_dimensions[get_column_letter(col)].width = min(width + 2, 50)

        sheet.freeze_panes = 'A2'
