import copy

import pytest

from invoice_review.output_handler import (
    InvoiceRecord,
    InvoiceStore,
    STATUS_NOT_REVIEWED,
    STATUS_REVIEWED,
    STATUS_VERIFIED,
)
from invoice_review.review import (
    BatchProcessor,
    FlowConfig,
    ReviewQueue,
    ReviewSessionController,
    SessionState,
    VALIDATION_REFUSED_MESSAGE,
)
from invoice_review.services import DocumentIntake
from invoice_review.utils.exceptions import DatabaseError, SessionStateError

from conftest import SAMPLE_ENTITIES, StubExtractionClient


class FlakyStore(InvoiceStore):
    """Fails the next ``failures`` saves."""

    def __init__(self, db_path, failures=1):
        super().__init__(db_path)
        self.failures = failures

    def save_draft(self, draft):
        if self.failures:
            self.failures -= 1
            raise DatabaseError("save invoice", "disk I/O error")
        return super().save_draft(draft)


@pytest.fixture
def intake(stub_client, blob_store):
    return DocumentIntake(stub_client, blob_store)


@pytest.fixture
def controller(store, intake):
    return ReviewSessionController(FlowConfig.single_upload(), store, intake=intake)


def existing_duplicate(store):
    return store.insert_invoice(InvoiceRecord(
        invoice_number="INV-1001", supplier_name="Acme Corp", invoice_date="2024-03-04",
        status=STATUS_REVIEWED,
    ))


# -----------------------------------------------------------------------------
# Flow switches
# -----------------------------------------------------------------------------

def test_flow_defaults():
    single, queue, batch = FlowConfig.single_upload(), FlowConfig.review_queue(), FlowConfig.batch()

    assert (single.status, single.success_delay_seconds, single.update_existing) == (STATUS_REVIEWED, 3, False)
    assert (queue.status, queue.success_delay_seconds, queue.update_existing) == (STATUS_VERIFIED, 2, True)
    assert (batch.status, batch.run_totals_validation, batch.check_duplicates) == (STATUS_NOT_REVIEWED, False, False)


# -----------------------------------------------------------------------------
# Single upload
# -----------------------------------------------------------------------------

def test_load_classifies_and_scores(controller):
    session = controller.load("inv.pdf", b"%PDF")

    assert session.state is SessionState.LOADED
    assert session.has_document
    assert session.duplicate_warning is None
    assert sorted(session.buckets) == [1, 2]
    assert session.confidence > 0
    assert session.document_url.startswith("local://")
    assert controller.header_fields()["invoice_number"] == "INV-1001"
    assert controller.resolved_totals().total.id == "6"
    assert [item.id for item in controller.line_items()] == ["9"]


def test_extraction_failure_moves_to_error(store, blob_store):
    client = StubExtractionClient(failures={"bad.pdf"})
    controller = ReviewSessionController(
        FlowConfig.single_upload(), store, intake=DocumentIntake(client, blob_store)
    )

    session = controller.load("bad.pdf", b"%PDF")

    assert session.state is SessionState.ERROR
    assert session.message == "Extraction failed for: bad.pdf"
    assert not session.has_document
    with pytest.raises(SessionStateError):
        controller.submit()
    assert controller.dismiss_error().state is SessionState.IDLE


def test_edits_require_a_loaded_document(controller):
    with pytest.raises(SessionStateError):
        controller.change_field("6", "$1.00")


def test_display_value_prefers_override(controller):
    controller.load("inv.pdf", b"%PDF")
    controller.change_field("9_quantity", "3")

    assert controller.display_value("6") == "$120.00"
    assert controller.display_value("9_quantity") == "3"
    assert controller.display_value("9_amount") == "$100.00"
    assert controller.display_value("unknown") == ""


def test_submit_persists_reviewed_invoice(store, controller):
    controller.load("inv.pdf", b"%PDF")
    controller.change_field("9_quantity", "3")

    session = controller.submit()

    assert session.state is SessionState.SUCCESS
    saved = store.get(session.invoice_id)
    assert saved.status == STATUS_REVIEWED
    assert saved.invoice_number == "INV-1001"
    assert saved.total_amount == 120.0
    assert saved.document_url == session.document_url
    [item] = store.get_line_items(saved.id)
    assert item.quantity == 3.0

    assert controller.advance().state is SessionState.IDLE


def test_validation_refuses_submit(store, controller):
    controller.load("inv.pdf", b"%PDF")
    controller.change_field("6", "$125.00")

    session = controller.submit()

    assert session.state is SessionState.LOADED
    assert session.message == VALIDATION_REFUSED_MESSAGE
    assert set(session.errors) == {"6", "7", "8"}
    assert session.errors["6"] == (
        "Total amount (125.00) does not match Net Amount (100.00) + Tax Amount (20.00) = 120.00"
    )
    assert store.select() == []


def test_editing_clears_only_that_fields_error(controller):
    controller.load("inv.pdf", b"%PDF")
    controller.change_field("6", "$125.00")
    controller.submit()

    session = controller.change_field("6", "$120.00")

    assert set(session.errors) == {"7", "8"}
    assert controller.submit().state is SessionState.SUCCESS


def test_duplicate_warning_after_load(store, controller):
    existing_duplicate(store)

    session = controller.load("inv.pdf", b"%PDF")

    assert session.state is SessionState.LOADED
    assert session.duplicate_warning.message == (
        "Warning: This invoice appears to be a duplicate. Invoice #INV-1001 from Acme Corp "
        "on 2024-03-04 already exists in the database. You can edit the fields if you "
        "believe this is incorrect."
    )


def test_duplicate_blocks_submit_unless_forced(store, controller):
    original = existing_duplicate(store)
    controller.load("inv.pdf", b"%PDF")

    blocked = controller.submit()
    assert blocked.state is SessionState.LOADED
    assert blocked.message == (
        "This invoice has already been submitted. Invoice #INV-1001 from Acme Corp "
        "on 2024-03-04 already exists in the database."
    )
    assert [inv.id for inv in store.select()] == [original.id]

    forced = controller.submit(force=True)
    assert forced.state is SessionState.SUCCESS
    assert len(store.select()) == 2


def test_reconciled_totals_clear_errors_before_duplicate_refusal(store, controller):
    existing_duplicate(store)
    controller.load("inv.pdf", b"%PDF")
    controller.change_field("6", "$125.00")
    assert set(controller.submit().errors) == {"6", "7", "8"}

    controller.change_field("6", "$120.00")
    session = controller.submit()

    assert session.state is SessionState.LOADED
    assert session.message.startswith("This invoice has already been submitted.")
    assert session.errors == {}


def test_reconciled_totals_clear_errors_before_persistence_failure(tmp_path, intake):
    store = FlakyStore(str(tmp_path / "flaky.db"))
    controller = ReviewSessionController(FlowConfig.single_upload(), store, intake=intake)
    controller.load("inv.pdf", b"%PDF")
    controller.change_field("6", "$125.00")
    controller.submit()

    controller.change_field("6", "$120.00")
    session = controller.submit()

    assert session.state is SessionState.ERROR
    assert session.errors == {}


def test_editing_identity_clears_duplicate_conflict(store, controller):
    existing_duplicate(store)
    controller.load("inv.pdf", b"%PDF")
    controller.change_field("2", "INV-1002")

    assert controller.submit().state is SessionState.SUCCESS


def test_persistence_failure_keeps_overrides(tmp_path, intake):
    store = FlakyStore(str(tmp_path / "flaky.db"))
    controller = ReviewSessionController(FlowConfig.single_upload(), store, intake=intake)
    controller.load("inv.pdf", b"%PDF")
    controller.change_field("0", "Acme Corporation")

    failed = controller.submit()
    assert failed.state is SessionState.ERROR
    assert failed.message == "Database operation failed: save invoice"
    assert failed.overrides == {"0": "Acme Corporation"}
    assert store.select() == []

    retried = controller.submit()
    assert retried.state is SessionState.SUCCESS
    assert store.get(retried.invoice_id).supplier_name == "Acme Corporation"


def test_dismiss_error_returns_to_editing(tmp_path, intake):
    store = FlakyStore(str(tmp_path / "flaky.db"))
    controller = ReviewSessionController(FlowConfig.single_upload(), store, intake=intake)
    controller.load("inv.pdf", b"%PDF")
    controller.change_field("0", "Acme Corporation")
    controller.submit()

    session = controller.dismiss_error()

    assert session.state is SessionState.LOADED
    assert session.overrides == {"0": "Acme Corporation"}


def test_reset_discards_everything(controller):
    controller.load("inv.pdf", b"%PDF")
    controller.change_field("6", "$1.00")

    session = controller.reset()

    assert session.state is SessionState.IDLE
    assert session.overrides == {}
    assert not session.has_document


# -----------------------------------------------------------------------------
# Review queue
# -----------------------------------------------------------------------------

def payload_for(number, total="$120.00"):
    entities = copy.deepcopy(SAMPLE_ENTITIES)
    for e in entities:
        if e["type"] == "invoice_id":
            e["mentionText"] = number
        if e["type"] == "total_amount":
            e["mentionText"] = total
    return {"entities": entities}


@pytest.fixture
def queued(store, blob_store):
    client = StubExtractionClient(payloads={
        "a.pdf": payload_for("INV-A"),
        "b.pdf": payload_for("INV-B", total="$130.00"),
    })
    report = BatchProcessor(DocumentIntake(client, blob_store), store).process(
        [("a.pdf", b"%PDF-a"), ("b.pdf", b"%PDF-b")]
    )
    assert not report.has_errors
    return {item.filename: item.invoice_id for item in report.items}


@pytest.fixture
def queue_controller(store, blob_store, queued):
    queue = ReviewQueue(store)
    queue.refresh(sort="upload-date-asc")
    return ReviewSessionController(FlowConfig.review_queue(), store, blob_store=blob_store, queue=queue)


def test_open_invoice_from_stored_response(queue_controller, queued):
    record = queue_controller.queue.first()

    session = queue_controller.open_invoice(record)

    assert session.state is SessionState.LOADED
    assert session.invoice_id == queued["a.pdf"]
    assert session.duplicate_warning is None
    assert queue_controller.header_fields()["invoice_number"] == "INV-A"


def test_open_invoice_with_missing_response(store, blob_store):
    record = store.insert_invoice(InvoiceRecord(invoice_number="X", ai_response_url="local://invoices/ai-responses/gone.json"))
    controller = ReviewSessionController(FlowConfig.review_queue(), store, blob_store=blob_store)

    session = controller.open_invoice(record)

    assert session.state is SessionState.ERROR
    assert "gone.json" in session.message


def test_verify_updates_existing_invoice_and_advances(store, queue_controller, queued):
    queue_controller.open_invoice(queue_controller.queue.first())
    queue_controller.change_field("0", "Acme Corporation")

    session = queue_controller.submit()

    assert session.state is SessionState.SUCCESS
    assert session.invoice_id == queued["a.pdf"]
    verified = store.get(queued["a.pdf"])
    assert verified.status == STATUS_VERIFIED
    assert verified.supplier_name == "Acme Corporation"
    assert len(store.select()) == 2
    assert len(store.get_line_items(verified.id)) == 1

    following = queue_controller.advance()
    assert following.state is SessionState.LOADED
    assert following.invoice_id == queued["b.pdf"]
    assert [inv.id for inv in queue_controller.queue.items] == [queued["b.pdf"]]


def test_queue_runs_totals_validation(queue_controller, queued):
    queue_controller.open_invoice(queue_controller.queue.items[1])

    session = queue_controller.submit()

    assert session.state is SessionState.LOADED
    assert session.message == VALIDATION_REFUSED_MESSAGE


def test_advance_goes_idle_when_queue_is_exhausted(queue_controller, queued):
    queue_controller.open_invoice(queue_controller.queue.items[1])
    queue_controller.change_field("6", "$120.00")
    assert queue_controller.submit().state is SessionState.SUCCESS

    assert queue_controller.advance().state is SessionState.IDLE
