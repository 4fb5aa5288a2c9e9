"""
Batch Processing Module.

Sequential batch upload: each file is extracted, reconciled and stored as
a ``not_reviewed`` invoice before the next file starts. A failing file is
recorded with its name and message and the batch moves on.

Author: ML Engineering Team
"""

import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Tuple, Union

from config import get_config
from invoice_review.entities import EntityClassifier
from invoice_review.output_handler.database_handler import InvoiceStore
from invoice_review.postprocessor import PostProcessor, TotalsValidator
from invoice_review.services.intake import DocumentIntake
from invoice_review.utils.logger import get_logger
from invoice_review.utils.exceptions import InvoiceReviewError
from .controller import FlowConfig

logger = get_logger(__name__)

STATUS_PROCESSING = 'processing'
STATUS_COMPLETED = 'completed'
STATUS_ERROR = 'error'


@dataclass
class BatchItemStatus:
    """Outcome for one file of a batch."""
    filename: str
    status: str = STATUS_PROCESSING
    error: Optional[str] = None
    invoice_id: Optional[int] = None


@dataclass
class BatchReport:
    """
    Summary of a batch run.

    Example:
        >>> report = processor.process(files)
        >>> report.has_errors
        True
        >>> [item.filename for item in report.failed]
        ['broken.pdf']
    """
    items: List[BatchItemStatus] = field(default_factory=list)
    processing_time: float = 0.0

    @property
    def completed(self) -> List[BatchItemStatus]:
        return [item for item in self.items if item.status == STATUS_COMPLETED]

    @property
    def failed(self) -> List[BatchItemStatus]:
        return [item for item in self.items if item.status == STATUS_ERROR]

    @property
    def has_errors(self) -> bool:
        return bool(self.failed)

    def summary(self) -> str:
        return (
            f"{len(self.completed)} of {len(self.items)} file(s) processed, "
            f"{len(self.failed)} failed ({self.processing_time:.1f}s)"
        )


ProgressCallback = Callable[[int, int, BatchItemStatus], None]
BatchInput = Union[Path, str, Tuple[str, bytes]]


def fallback_invoice_number(filename: str) -> str:
    """Filename up to its first dot (``inv.2024.pdf`` -> ``inv``)."""
    return Path(filename).name.split('.')[0]


class BatchProcessor:
    """
    Runs the batch-upload flow.

    Totals validation is skipped unless the batch flow enables it; invoice
    numbers fall back to the file name and suppliers to a placeholder.

    Example:
        >>> processor = BatchProcessor(intake, store)
        >>> report = processor.process(["a.pdf", "b.pdf"], progress=print)
    """

    def __init__(
        self,
        intake: DocumentIntake,
        store: InvoiceStore,
        flow: Optional[FlowConfig] = None,
        classifier: Optional[EntityClassifier] = None,
        processor: Optional[PostProcessor] = None
    ) -> None:
        self.intake = intake
        self.store = store
        self.flow = flow or FlowConfig.batch()
        self.classifier = classifier or EntityClassifier()
        self.processor = processor or PostProcessor()
        self.validator = TotalsValidator(self.processor.resolver)
        self.unknown_supplier = get_config("review.batch.unknown_supplier", "Unknown Supplier")

    def process(
        self,
        files: Iterable[BatchInput],
        progress: Optional[ProgressCallback] = None
    ) -> BatchReport:
        """
        Process files one after another.

        Args:
            files: Paths, or ``(filename, bytes)`` pairs.
            progress: Called after each file with (done, total, status).

        Returns:
            BatchReport covering every file.
        """
        files = list(files)
        report = BatchReport(items=[BatchItemStatus(self._name(f)) for f in files])
        start = time.time()
        logger.info(f"Starting batch of {len(files)} file(s)")

        for index, (source, status) in enumerate(zip(files, report.items), start=1):
            try:
                filename, data = self._read(source)
                status.invoice_id = self.process_one(filename, data)
                status.status = STATUS_COMPLETED
            except (InvoiceReviewError, OSError) as e:
                status.status = STATUS_ERROR
                status.error = getattr(e, 'message', None) or str(e)
                if isinstance(e, InvoiceReviewError) and e.details.get('reason'):
                    status.error = f"{status.error}: {e.details['reason']}"
                logger.error(f"Batch item {status.filename} failed: {status.error}")

            if progress is not None:
                progress(index, len(files), status)

        report.processing_time = time.time() - start
        logger.info(f"Batch complete: {report.summary()}")
        return report

    def process_one(self, filename: str, data: bytes) -> int:
        """
        Extract and store one file; returns the new invoice id.

        Raises:
            InvoiceReviewError: On extraction, validation or store failure.
        """
        result = self.intake.process(filename, data)
        buckets = self.classifier.classify(result.entities)

        if self.flow.run_totals_validation:
            errors = self.validator.validate_buckets(buckets)
            if errors:
                raise InvoiceReviewError(
                    f"Totals do not add up for {filename}",
                    {"reason": "; ".join(errors.values())},
                )

        draft = self.processor.build_draft(
            buckets,
            status=self.flow.status,
            document_url=result.document_url,
            ai_response_url=result.ai_response_url,
            fallbacks={
                'invoice_number': fallback_invoice_number(filename),
                'supplier_name': self.unknown_supplier,
            },
        )
        return self.store.save_draft(draft).id

    @staticmethod
    def _name(source: BatchInput) -> str:
        if isinstance(source, tuple):
            return source[0]
        return Path(source).name

    @staticmethod
    def _read(source: BatchInput) -> Tuple[str, bytes]:
        if isinstance(source, tuple):
            return source
        path = Path(source)
        return path.name, path.read_bytes()
