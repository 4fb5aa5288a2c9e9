"""
Review Session Controller Module.

Orchestrates one document review across extraction, user edits and
submission. The controller is the only mutator of the session: each
operation replaces ``self.session`` with a new ReviewSession.

State machine::

    IDLE --load/open--> LOADING --ok--> LOADED --submit--> SUBMITTING --ok--> SUCCESS
                           |                ^                  |                |
                           +--fail--> ERROR +--dismiss_error   +--fail--> ERROR |
                                                                                |
    IDLE <------------------------------ advance (single upload) ---------------+
    LOADING <--------------------------- advance (review queue) ----------------+

Submission gates, in order:
    1. Totals validation (when the flow runs it): any error refuses submit.
    2. Duplicate re-check: a match refuses submit unless ``force=True``.

Author: ML Engineering Team
"""

from dataclasses import dataclass, replace
from typing import Dict, Optional

from config import get_config
from invoice_review.entities import EntityClassifier, pooled
from invoice_review.entities.entity import normalize_ai_response
from invoice_review.output_handler.database_handler import InvoiceStore
from invoice_review.output_handler.records import (
    InvoiceRecord,
    STATUS_NOT_REVIEWED,
    STATUS_REVIEWED,
    STATUS_VERIFIED,
)
from invoice_review.postprocessor import (
    ConfidenceAggregator,
    PostProcessor,
    ResolvedTotals,
    TotalsValidator,
)
from invoice_review.services.blob_store import LocalBlobStore
from invoice_review.services.intake import DocumentIntake
from invoice_review.utils.logger import get_logger
from invoice_review.utils.exceptions import (
    InvoiceReviewError,
    PersistenceError,
    SessionStateError,
)
from .duplicates import DuplicateDetector, submit_conflict_message
from .queue import ReviewQueue
from .session import ReviewSession, SessionState

logger = get_logger(__name__)

VALIDATION_REFUSED_MESSAGE = "Please fix the validation errors before submitting."

# Invoice columns the review queue rewrites on verification
QUEUE_UPDATE_FIELDS = (
    'invoice_number', 'invoice_date', 'due_date',
    'supplier_name', 'supplier_address', 'receiver_name', 'receiver_address',
    'total_amount', 'tax_amount', 'net_amount', 'confidence_score',
)


@dataclass(frozen=True)
class FlowConfig:
    """
    Behavior switches for one review flow.

    Attributes:
        name: Flow identifier
        status: Status recorded on submit
        run_totals_validation: Whether submit is gated on totals
        check_duplicates: Whether duplicates are looked up
        success_delay_seconds: Pause before ``advance`` after a submit
        update_existing: Update the opened invoice instead of inserting
    """
    name: str
    status: str
    run_totals_validation: bool = True
    check_duplicates: bool = True
    success_delay_seconds: float = 0.0
    update_existing: bool = False

    @classmethod
    def single_upload(cls) -> 'FlowConfig':
        return cls(
            name='single_upload',
            status=STATUS_REVIEWED,
            run_totals_validation=get_config("review.single_upload.run_totals_validation", True),
            check_duplicates=get_config("review.single_upload.check_duplicates", True),
            success_delay_seconds=float(get_config("review.single_upload.success_delay_seconds", 3)),
        )

    @classmethod
    def review_queue(cls) -> 'FlowConfig':
        return cls(
            name='review_queue',
            status=STATUS_VERIFIED,
            run_totals_validation=get_config("review.review_queue.run_totals_validation", True),
            check_duplicates=get_config("review.review_queue.check_duplicates", True),
            success_delay_seconds=float(get_config("review.review_queue.success_delay_seconds", 2)),
            update_existing=True,
        )

    @classmethod
    def batch(cls) -> 'FlowConfig':
        return cls(
            name='batch',
            status=STATUS_NOT_REVIEWED,
            run_totals_validation=get_config("review.batch.run_totals_validation", False),
            check_duplicates=False,
        )


class ReviewSessionController:
    """
    Drives a ReviewSession through its lifecycle.

    Attributes:
        flow: FlowConfig in effect
        session: Current ReviewSession snapshot

    Example:
        >>> controller = ReviewSessionController(FlowConfig.single_upload(), store, intake=intake)
        >>> controller.load("inv.pdf", data)
        >>> controller.change_field(totals.total.id, "$100.00")
        >>> controller.submit().state
        <SessionState.SUCCESS: 'success'>
    """

    def __init__(
        self,
        flow: FlowConfig,
        store: InvoiceStore,
        intake: Optional[DocumentIntake] = None,
        blob_store: Optional[LocalBlobStore] = None,
        queue: Optional[ReviewQueue] = None,
        classifier: Optional[EntityClassifier] = None,
        processor: Optional[PostProcessor] = None
    ) -> None:
        self.flow = flow
        self.store = store
        self.intake = intake
        self.blob_store = blob_store
        self.queue = queue
        self.classifier = classifier or EntityClassifier()
        self.processor = processor or PostProcessor()
        self.aggregator = ConfidenceAggregator()
        self.validator = TotalsValidator(self.processor.resolver)
        self.detector = DuplicateDetector(store)
        self.session = ReviewSession()

    # =========================================================================
    # LOADING
    # =========================================================================

    def _require(self, operation: str, *states: SessionState) -> None:
        if self.session.state not in states:
            raise SessionStateError(operation, self.session.state.value)

    def _loaded_session(self, filename: str, entities, **extra) -> ReviewSession:
        buckets = self.classifier.classify(entities)
        session = ReviewSession(
            state=SessionState.LOADED,
            filename=filename,
            entities=tuple(entities),
            buckets=buckets,
            confidence=self.aggregator.aggregate(buckets),
            has_document=True,
            **extra,
        )
        if self.flow.check_duplicates:
            header = self.processor.header_values(buckets)
            session = session.with_duplicate_warning(self.detector.eager_warning(
                header['invoice_number'],
                header['supplier_name'],
                header['invoice_date'],
                exclude_id=session.invoice_id,
            ))
        return session

    def load(self, filename: str, data: bytes, mime_type: Optional[str] = None) -> ReviewSession:
        """
        Extract a freshly uploaded document.

        Extraction failures move the session to ERROR with the failure
        message; they are not raised.
        """
        self._require("load a document", SessionState.IDLE, SessionState.SUCCESS, SessionState.ERROR)
        if self.intake is None:
            raise InvoiceReviewError("No extraction service configured")

        self.session = ReviewSession(state=SessionState.LOADING, filename=filename)
        logger.info(f"Loading {filename}")

        try:
            result = self.intake.process(filename, data, mime_type)
        except InvoiceReviewError as e:
            logger.error(f"Extraction failed for {filename}: {e}")
            self.session = self.session.with_state(SessionState.ERROR, e.message)
            return self.session

        self.session = self._loaded_session(
            filename,
            result.entities,
            document_url=result.document_url,
            ai_response_url=result.ai_response_url,
        )
        return self.session

    def open_invoice(self, record: InvoiceRecord) -> ReviewSession:
        """Open a stored invoice from its saved extraction response."""
        self._require("open an invoice", SessionState.IDLE, SessionState.SUCCESS, SessionState.ERROR)
        if self.blob_store is None:
            raise InvoiceReviewError("No blob store configured")

        self.session = ReviewSession(
            state=SessionState.LOADING,
            filename=record.invoice_number,
            invoice_id=record.id,
        )
        logger.info(f"Opening invoice {record.id} ({record.invoice_number})")

        try:
            payload = self.blob_store.get_json(record.ai_response_url)
        except InvoiceReviewError as e:
            logger.error(f"Could not load AI response for invoice {record.id}: {e}")
            self.session = self.session.with_state(SessionState.ERROR, e.message)
            return self.session

        entities = normalize_ai_response(payload)
        if entities is None:
            self.session = self.session.with_state(
                SessionState.ERROR, f"Unrecognized AI response for invoice {record.id}"
            )
            return self.session

        self.session = self._loaded_session(
            record.invoice_number,
            entities,
            invoice_id=record.id,
            document_url=record.document_url,
            ai_response_url=record.ai_response_url,
        )
        return self.session

    # =========================================================================
    # EDITING
    # =========================================================================

    def change_field(self, key: str, value: str) -> ReviewSession:
        """Set an override; clears that field's validation error only."""
        self._require("edit a field", SessionState.LOADED)
        self.session = self.session.with_override(key, value)
        return self.session

    def display_value(self, key: str) -> str:
        """Value shown for a field key: override, else extracted text."""
        return self.session.display_value(key, self._source_texts().get(key, ''))

    def _source_texts(self) -> Dict[str, str]:
        texts: Dict[str, str] = {}
        for bucket in self.session.buckets.values():
            for entity in bucket.entities():
                texts[entity.id] = entity.mention_text
            for item in bucket.line_items:
                texts[item.id] = item.mention_text
                for prop in item.properties:
                    texts[item.field_key(prop)] = item.property_text(prop)
        return texts

    def header_fields(self) -> Dict[str, Optional[str]]:
        return self.processor.header_values(self.session.buckets, self.session.overrides)

    def resolved_totals(self) -> ResolvedTotals:
        return self.processor.resolver.resolve_totals(self.session.buckets)

    def line_items(self):
        return pooled(self.session.buckets, 'line_items')

    # =========================================================================
    # SUBMISSION
    # =========================================================================

    def submit(self, force: bool = False) -> ReviewSession:
        """
        Validate, re-check duplicates and persist.

        Args:
            force: Submit even if a duplicate invoice exists.

        Returns:
            The resulting session. Refusals return to LOADED with a message;
            persistence failures go to ERROR with overrides kept for retry.
        """
        if not (self.session.state is SessionState.LOADED
                or (self.session.state is SessionState.ERROR and self.session.has_document)):
            raise SessionStateError("submit", self.session.state.value)

        session = self.session.with_state(SessionState.LOADED)

        if self.flow.run_totals_validation:
            errors = self.validator.validate_buckets(session.buckets, session.overrides)
            if errors:
                self.session = session.with_errors(errors).with_state(
                    SessionState.LOADED, VALIDATION_REFUSED_MESSAGE
                )
                return self.session
            session = session.with_errors({})

        draft = self.processor.build_draft(
            session.buckets,
            session.overrides,
            status=self.flow.status,
            document_url=session.document_url,
            ai_response_url=session.ai_response_url,
        )
        invoice = draft.invoice

        if self.flow.check_duplicates:
            try:
                duplicate = self.detector.find_duplicate(
                    invoice.invoice_number,
                    invoice.supplier_name,
                    invoice.invoice_date,
                    exclude_id=session.invoice_id,
                )
            except PersistenceError as e:
                self.session = session.with_state(SessionState.ERROR, e.message)
                return self.session

            if duplicate is not None and not force:
                self.session = session.with_state(
                    SessionState.LOADED, submit_conflict_message(duplicate)
                )
                return self.session
            if duplicate is not None:
                logger.warning(f"Submitting despite duplicate invoice {duplicate.id}")

        self.session = session.with_state(SessionState.SUBMITTING)

        try:
            if self.flow.update_existing and session.invoice_id is not None:
                fields = {name: getattr(invoice, name) for name in QUEUE_UPDATE_FIELDS}
                saved = self.store.update(session.invoice_id, status=self.flow.status, **fields)
                if saved is None:
                    raise PersistenceError(f"Invoice {session.invoice_id} no longer exists")
            else:
                saved = self.store.save_draft(draft)
        except PersistenceError as e:
            logger.error(f"Submit failed for {session.filename}: {e}")
            self.session = session.with_state(SessionState.ERROR, e.message)
            return self.session

        self.session = replace(
            session.with_errors({}),
            state=SessionState.SUCCESS,
            invoice_id=saved.id,
            message=f"Invoice {saved.invoice_number} saved as {saved.status}",
        )
        logger.info(f"Invoice {saved.id} submitted ({self.flow.name})")
        return self.session

    def dismiss_error(self) -> ReviewSession:
        """Return to editing after a failed submit."""
        self._require("dismiss an error", SessionState.ERROR)
        if not self.session.has_document:
            return self.reset()
        self.session = self.session.with_state(SessionState.LOADED)
        return self.session

    # =========================================================================
    # NAVIGATION
    # =========================================================================

    def advance(self) -> ReviewSession:
        """
        Move on after a successful submit.

        The single-upload flow resets; the review-queue flow opens the next
        invoice in the queue, or goes idle when the queue is exhausted.
        """
        self._require("advance", SessionState.SUCCESS)
        finished_id = self.session.invoice_id

        if self.flow.update_existing and self.queue is not None:
            following = self.queue.next_after(finished_id)
            self.queue.refresh()
            if following is not None:
                self.session = ReviewSession()
                return self.open_invoice(following)
            logger.info("Review queue exhausted")

        return self.reset()

    def reset(self) -> ReviewSession:
        """Discard the session, overrides and errors included."""
        self.session = ReviewSession()
        return self.session
