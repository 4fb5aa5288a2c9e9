"""
Database Handler Module.

This module provides the record store for reviewed invoices and their
line items, backed by SQLite.

Features:
    - Automatic schema creation
    - Equality selects and partial updates
    - Duplicate lookup on (invoice_number, supplier_name, invoice_date)
    - Analytics over verified invoices

The store is last-write-wins: there is no optimistic concurrency token, so
two reviewers saving the same invoice race and the later write is kept.

Author: ML Engineering Team
"""

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional

from config import get_config
from invoice_review.utils.logger import get_logger
from invoice_review.utils.helpers import ensure_directory
from invoice_review.utils.exceptions import DatabaseError
from .records import (
    InvoiceDraft,
    InvoiceRecord,
    LineItemRecord,
    STATUS_VERIFIED,
)

# Initialize module logger
logger = get_logger(__name__)

INVOICES_TABLE = 'invoices'
LINE_ITEMS_TABLE = 'line_items'


class InvoiceStore:
    """
    Handles persistence of invoices and line items.

    Attributes:
        db_path: Path to the SQLite database file

    Example:
        >>> store = InvoiceStore("outputs/invoices.db")
        >>> saved = store.insert_invoice(InvoiceRecord(invoice_number="INV-1"))
        >>> store.get(saved.id).invoice_number
        'INV-1'
    """

    def __init__(self, db_path: Optional[str] = None) -> None:
        """
        Initialize the store.

        Args:
            db_path: Path to database file. If None, uses configuration.
        """
        if db_path:
            self.db_path = Path(db_path)
        else:
            output_dir = Path(get_config("paths.output_dir", "outputs"))
            db_name = get_config("output.database.name", "invoices.db")
            self.db_path = output_dir / db_name

        ensure_directory(self.db_path.parent)
        self._create_tables()

        logger.info(f"InvoiceStore initialized (db: {self.db_path})")

    @contextmanager
    def _connect(self, operation: str) -> Iterator[sqlite3.Connection]:
        """Open a connection, commit on success, wrap sqlite errors."""
        try:
            conn = sqlite3.connect(self.db_path)
        except sqlite3.Error as e:
            raise DatabaseError(operation, str(e))

        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise DatabaseError(operation, str(e))
        finally:
            conn.close()

    def _create_tables(self) -> None:
        """Create the required database tables."""
        with self._connect("create tables") as conn:
            conn.execute(f"""
            CREATE TABLE IF NOT EXISTS {INVOICES_TABLE} (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                invoice_number TEXT,
                invoice_date TEXT,
                due_date TEXT,
                supplier_name TEXT,
                supplier_address TEXT,
                receiver_name TEXT,
                receiver_address TEXT,
                total_amount REAL DEFAULT 0,
                tax_amount REAL DEFAULT 0,
                net_amount REAL DEFAULT 0,
                confidence_score REAL DEFAULT 0,
                status TEXT NOT NULL DEFAULT 'not_reviewed',
                document_url TEXT,
                ai_response_url TEXT,
                sync_status TEXT NOT NULL DEFAULT 'not_synced',
                processed_at TEXT
            )
            """)
            conn.execute(f"""
            CREATE TABLE IF NOT EXISTS {LINE_ITEMS_TABLE} (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                invoice_id INTEGER NOT NULL REFERENCES {INVOICES_TABLE}(id) ON DELETE CASCADE,
                description TEXT,
                quantity REAL DEFAULT 0,
                unit_price REAL DEFAULT 0,
                amount REAL DEFAULT 0,
                line_number INTEGER DEFAULT 0
            )
            """)

            # Indexes for duplicate lookups and queue listing
            conn.execute(f"""
                CREATE INDEX IF NOT EXISTS idx_invoice_identity
                ON {INVOICES_TABLE} (invoice_number, supplier_name, invoice_date)
            """)
            conn.execute(f"""
                CREATE INDEX IF NOT EXISTS idx_invoice_status
                ON {INVOICES_TABLE} (status)
            """)
            conn.execute(f"""
                CREATE INDEX IF NOT EXISTS idx_line_item_invoice
                ON {LINE_ITEMS_TABLE} (invoice_id)
            """)

        logger.debug("Database tables created/verified")

    # =========================================================================
    # INVOICES
    # =========================================================================

    def insert_invoice(self, invoice: InvoiceRecord) -> InvoiceRecord:
        """
        Insert an invoice.

        Args:
            invoice: Record to insert; its ``id`` is ignored.

        Returns:
            A copy of the record with the assigned ``id``.

        Raises:
            DatabaseError: If insertion fails.
        """
        columns = InvoiceRecord.column_names()
        values = [getattr(invoice, name) for name in columns]
        placeholders = ', '.join('?' for _ in columns)

        with self._connect("insert invoice") as conn:
            cursor = conn.execute(
                f"INSERT INTO {INVOICES_TABLE} ({', '.join(columns)}) VALUES ({placeholders})",
                values,
            )
            invoice_id = cursor.lastrowid

        logger.debug(f"Inserted invoice {invoice.invoice_number!r} as id {invoice_id}")
        return InvoiceRecord.from_row({**invoice.to_dict(), 'id': invoice_id})

    def get(self, invoice_id: int) -> Optional[InvoiceRecord]:
        rows = self.select(id=invoice_id)
        return rows[0] if rows else None

    def select(
        self,
        order_by: str = "id DESC",
        limit: Optional[int] = None,
        **equals: Any
    ) -> List[InvoiceRecord]:
        """
        Select invoices where every given column equals its value.

        Args:
            order_by: SQL ordering clause.
            limit: Maximum number of records.
            **equals: Column name to required value.

        Returns:
            Matching invoice records.

        Example:
            >>> store.select(status="verified", sync_status="not_synced")
        """
        allowed = set(InvoiceRecord.column_names()) | {'id'}
        unknown = set(equals) - allowed
        if unknown:
            raise DatabaseError("select", f"Unknown columns: {sorted(unknown)}")

        conditions = [f"{name} = ?" for name in equals]
        query = f"SELECT * FROM {INVOICES_TABLE}"
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        query += f" ORDER BY {order_by}"
        if limit:
            query += f" LIMIT {int(limit)}"

        with self._connect("select invoices") as conn:
            rows = conn.execute(query, list(equals.values())).fetchall()

        return [InvoiceRecord.from_row(dict(row)) for row in rows]

    def update(self, invoice_id: int, **fields: Any) -> Optional[InvoiceRecord]:
        """
        Update columns of one invoice.

        Returns:
            The updated record, or None if no invoice has that id.
        """
        allowed = set(InvoiceRecord.column_names())
        unknown = set(fields) - allowed
        if unknown:
            raise DatabaseError("update", f"Unknown columns: {sorted(unknown)}")
        if not fields:
            return self.get(invoice_id)

        assignments = ', '.join(f"{name} = ?" for name in fields)
        with self._connect("update invoice") as conn:
            cursor = conn.execute(
                f"UPDATE {INVOICES_TABLE} SET {assignments} WHERE id = ?",
                [*fields.values(), invoice_id],
            )
            updated = cursor.rowcount > 0

        if not updated:
            logger.warning(f"Update matched no invoice with id {invoice_id}")
            return None

        logger.debug(f"Updated invoice {invoice_id}: {sorted(fields)}")
        return self.get(invoice_id)

    def update_many(self, invoice_ids: Iterable[int], **fields: Any) -> int:
        """Apply the same update to several invoices; returns rows changed."""
        ids = list(invoice_ids)
        if not ids or not fields:
            return 0

        unknown = set(fields) - set(InvoiceRecord.column_names())
        if unknown:
            raise DatabaseError("update", f"Unknown columns: {sorted(unknown)}")

        assignments = ', '.join(f"{name} = ?" for name in fields)
        placeholders = ', '.join('?' for _ in ids)
        with self._connect("update invoices") as conn:
            cursor = conn.execute(
                f"UPDATE {INVOICES_TABLE} SET {assignments} WHERE id IN ({placeholders})",
                [*fields.values(), *ids],
            )
            return cursor.rowcount

    def find_duplicate(
        self,
        invoice_number: Optional[str],
        supplier_name: Optional[str],
        invoice_date: Optional[str],
        exclude_id: Optional[int] = None
    ) -> Optional[InvoiceRecord]:
        """
        First invoice matching all three identity fields exactly.

        Args:
            invoice_number: Invoice number.
            supplier_name: Supplier name.
            invoice_date: ISO invoice date.
            exclude_id: Invoice to ignore (the one being re-reviewed).
        """
        query = f"""
        SELECT * FROM {INVOICES_TABLE}
        WHERE invoice_number = ? AND supplier_name = ? AND invoice_date = ?
        """
        params: List[Any] = [invoice_number, supplier_name, invoice_date]
        if exclude_id is not None:
            query += " AND id != ?"
            params.append(exclude_id)
        query += " ORDER BY id LIMIT 1"

        with self._connect("find duplicate") as conn:
            row = conn.execute(query, params).fetchone()

        return InvoiceRecord.from_row(dict(row)) if row else None

    # =========================================================================
    # LINE ITEMS
    # =========================================================================

    def insert_line_items(self, items: List[LineItemRecord]) -> int:
        """
        Insert line items; every item must carry its owning ``invoice_id``.

        Returns:
            Number of rows inserted.
        """
        if not items:
            return 0

        columns = LineItemRecord.column_names()
        placeholders = ', '.join('?' for _ in columns)
        rows = [[getattr(item, name) for name in columns] for item in items]

        with self._connect("insert line items") as conn:
            conn.executemany(
                f"INSERT INTO {LINE_ITEMS_TABLE} ({', '.join(columns)}) VALUES ({placeholders})",
                rows,
            )

        logger.debug(f"Inserted {len(rows)} line item(s)")
        return len(rows)

    def save_draft(self, draft: InvoiceDraft) -> InvoiceRecord:
        """
        Insert an invoice and its line items in one transaction.

        Either both are stored or neither is, so a failed save can be
        retried without leaving an orphan invoice behind.

        Returns:
            The stored invoice with its ``id``.
        """
        invoice_columns = InvoiceRecord.column_names()
        item_columns = LineItemRecord.column_names()

        with self._connect("save invoice") as conn:
            cursor = conn.execute(
                f"INSERT INTO {INVOICES_TABLE} ({', '.join(invoice_columns)}) "
                f"VALUES ({', '.join('?' for _ in invoice_columns)})",
                [getattr(draft.invoice, name) for name in invoice_columns],
            )
            invoice_id = cursor.lastrowid

            rows = []
            for item in draft.line_items:
                values = item.to_dict()
                values['invoice_id'] = invoice_id
                rows.append([values[name] for name in item_columns])
            if rows:
                conn.executemany(
                    f"INSERT INTO {LINE_ITEMS_TABLE} ({', '.join(item_columns)}) "
                    f"VALUES ({', '.join('?' for _ in item_columns)})",
                    rows,
                )

        logger.info(
            f"Saved invoice {draft.invoice.invoice_number!r} as id {invoice_id} "
            f"with {len(rows)} line item(s)"
        )
        return InvoiceRecord.from_row({**draft.invoice.to_dict(), 'id': invoice_id})

    def get_line_items(self, invoice_id: int) -> List[LineItemRecord]:
        with self._connect("get line items") as conn:
            rows = conn.execute(
                f"SELECT * FROM {LINE_ITEMS_TABLE} WHERE invoice_id = ? ORDER BY line_number, id",
                (invoice_id,),
            ).fetchall()
        return [LineItemRecord.from_row(dict(row)) for row in rows]

    # =========================================================================
    # ANALYTICS
    # =========================================================================

    def get_statistics(self) -> Dict[str, Any]:
        """
        KPIs over verified invoices.

        Returns:
            Dictionary with totals, averages, confidence distribution and
            monthly counts/amounts keyed by ``YYYY-MM`` of ``processed_at``.
        """
        low = float(get_config("postprocessing.confidence.low_threshold", 0.5))
        high = float(get_config("postprocessing.confidence.high_threshold", 0.8))
        stats: Dict[str, Any] = {}

        with self._connect("get statistics") as conn:
            row = conn.execute(f"""
                SELECT COUNT(*), COALESCE(SUM(total_amount), 0), COALESCE(AVG(confidence_score), 0)
                FROM {INVOICES_TABLE} WHERE status = ?
            """, (STATUS_VERIFIED,)).fetchone()
            stats['total_invoices'] = row[0]
            stats['total_amount'] = round(row[1], 2)
            stats['average_confidence'] = row[2]

            stats['total_line_items'] = conn.execute(f"""
                SELECT COUNT(*) FROM {LINE_ITEMS_TABLE} li
                JOIN {INVOICES_TABLE} inv ON inv.id = li.invoice_id
                WHERE inv.status = ?
            """, (STATUS_VERIFIED,)).fetchone()[0]
            stats['average_line_items_per_invoice'] = (
                stats['total_line_items'] / stats['total_invoices']
                if stats['total_invoices'] else 0
            )

            bands = conn.execute(f"""
                SELECT
                    COALESCE(SUM(CASE WHEN confidence_score >= ? THEN 1 ELSE 0 END), 0),
                    COALESCE(SUM(CASE WHEN confidence_score >= ? AND confidence_score < ? THEN 1 ELSE 0 END), 0),
                    COALESCE(SUM(CASE WHEN confidence_score < ? THEN 1 ELSE 0 END), 0)
                FROM {INVOICES_TABLE} WHERE status = ?
            """, (high, low, high, low, STATUS_VERIFIED)).fetchone()
            stats['confidence_distribution'] = {
                'high': bands[0], 'medium': bands[1], 'low': bands[2],
            }

            monthly = conn.execute(f"""
                SELECT substr(processed_at, 1, 7) AS month, COUNT(*), COALESCE(SUM(total_amount), 0)
                FROM {INVOICES_TABLE}
                WHERE status = ? AND processed_at IS NOT NULL
                GROUP BY month ORDER BY month
            """, (STATUS_VERIFIED,)).fetchall()
            stats['monthly'] = [
                {'month': m[0], 'count': m[1], 'amount': round(m[2], 2)} for m in monthly
            ]

        return stats
