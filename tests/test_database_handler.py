import pytest

from invoice_review.output_handler import (
    InvoiceDraft,
    InvoiceRecord,
    LineItemRecord,
    STATUS_NOT_REVIEWED,
    STATUS_VERIFIED,
    SYNC_NOT_SYNCED,
    SYNC_SYNCED,
)
from invoice_review.utils.exceptions import DatabaseError


def test_insert_and_get(store):
    saved = store.insert_invoice(InvoiceRecord(invoice_number="INV-1", supplier_name="Acme", total_amount=10.5))

    fetched = store.get(saved.id)
    assert fetched.invoice_number == "INV-1"
    assert fetched.total_amount == 10.5
    assert fetched.status == STATUS_NOT_REVIEWED
    assert fetched.sync_status == SYNC_NOT_SYNCED
    assert fetched.processed_at == saved.processed_at
    assert store.get(saved.id + 1) is None


def test_select_by_equality(store):
    store.insert_invoice(InvoiceRecord(invoice_number="A", status=STATUS_VERIFIED))
    store.insert_invoice(InvoiceRecord(invoice_number="B"))
    store.insert_invoice(InvoiceRecord(invoice_number="C", status=STATUS_VERIFIED))

    verified = store.select(status=STATUS_VERIFIED)
    assert [inv.invoice_number for inv in verified] == ["C", "A"]
    assert [inv.invoice_number for inv in store.select(order_by="id ASC", limit=2)] == ["A", "B"]


def test_select_rejects_unknown_columns(store):
    with pytest.raises(DatabaseError):
        store.select(color="red")


def test_update(store):
    saved = store.insert_invoice(InvoiceRecord(invoice_number="A"))

    updated = store.update(saved.id, status=STATUS_VERIFIED, total_amount=99.0)
    assert updated.status == STATUS_VERIFIED
    assert updated.total_amount == 99.0
    assert store.update(saved.id + 100, status=STATUS_VERIFIED) is None
    with pytest.raises(DatabaseError):
        store.update(saved.id, id=5)


def test_update_many(store):
    ids = [store.insert_invoice(InvoiceRecord(invoice_number=n)).id for n in "ABC"]

    assert store.update_many(ids[:2], sync_status=SYNC_SYNCED) == 2
    assert [inv.sync_status for inv in store.select(order_by="id ASC")] == [SYNC_SYNCED, SYNC_SYNCED, SYNC_NOT_SYNCED]
    assert store.update_many([], sync_status=SYNC_SYNCED) == 0


def test_find_duplicate(store):
    first = store.insert_invoice(InvoiceRecord(invoice_number="INV-1", supplier_name="Acme", invoice_date="2024-03-04"))

    assert store.find_duplicate("INV-1", "Acme", "2024-03-04").id == first.id
    assert store.find_duplicate("INV-1", "Acme", "2024-03-05") is None
    assert store.find_duplicate("INV-1", "ACME", "2024-03-04") is None
    assert store.find_duplicate("INV-2", "Acme", "2024-03-04") is None
    assert store.find_duplicate("INV-1", "Acme", "2024-03-04", exclude_id=first.id) is None


def test_find_duplicate_never_matches_missing_values(store):
    store.insert_invoice(InvoiceRecord(invoice_number="INV-1", supplier_name="Acme", invoice_date=None))
    assert store.find_duplicate("INV-1", "Acme", None) is None


def test_save_draft_stores_invoice_and_line_items(store):
    draft = InvoiceDraft(
        invoice=InvoiceRecord(invoice_number="INV-1"),
        line_items=[
            LineItemRecord(description="Widget", quantity=2, unit_price=5, amount=10, line_number=1),
            LineItemRecord(description="Gadget", quantity=1, unit_price=3, amount=3, line_number=2),
        ],
    )
    saved = store.save_draft(draft)

    items = store.get_line_items(saved.id)
    assert [(i.description, i.invoice_id, i.line_number) for i in items] == [
        ("Widget", saved.id, 1),
        ("Gadget", saved.id, 2),
    ]


def test_insert_line_items_requires_owner(store):
    with pytest.raises(DatabaseError):
        store.insert_line_items([LineItemRecord(description="orphan")])


def test_statistics_cover_verified_invoices(store):
    a = store.insert_invoice(InvoiceRecord(
        status=STATUS_VERIFIED, total_amount=100.0, confidence_score=0.9,
        processed_at="2024-01-05T10:00:00+00:00",
    ))
    store.insert_invoice(InvoiceRecord(
        status=STATUS_VERIFIED, total_amount=50.0, confidence_score=0.6,
        processed_at="2024-02-01T10:00:00+00:00",
    ))
    store.insert_invoice(InvoiceRecord(
        status=STATUS_VERIFIED, total_amount=25.0, confidence_score=0.2,
        processed_at="2024-02-20T10:00:00+00:00",
    ))
    pending = store.insert_invoice(InvoiceRecord(total_amount=1000.0, confidence_score=0.99))
    store.insert_line_items([
        LineItemRecord(invoice_id=a.id, description="x", line_number=1),
        LineItemRecord(invoice_id=a.id, description="y", line_number=2),
        LineItemRecord(invoice_id=pending.id, description="z", line_number=1),
    ])

    stats = store.get_statistics()
    assert stats["total_invoices"] == 3
    assert stats["total_amount"] == 175.0
    assert stats["average_confidence"] == pytest.approx((0.9 + 0.6 + 0.2) / 3)
    assert stats["total_line_items"] == 2
    assert stats["average_line_items_per_invoice"] == pytest.approx(2 / 3)
    assert stats["confidence_distribution"] == {"high": 1, "medium": 1, "low": 1}
    assert stats["monthly"] == [
        {"month": "2024-01", "count": 1, "amount": 100.0},
        {"month": "2024-02", "count": 2, "amount": 75.0},
    ]


def test_statistics_on_empty_store(store):
    stats = store.get_statistics()
    assert stats["total_invoices"] == 0
    assert stats["average_line_items_per_invoice"] == 0
    assert stats["monthly"] == []
