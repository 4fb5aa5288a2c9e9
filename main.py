#!/usr/bin/env python3
"""
Invoice Review System - Main Entry Point.

Command-line access to the review flows: single upload, batch upload,
the review queue, export of verified invoices and analytics.

Usage:
    python main.py process invoice.pdf
    python main.py process invoice.pdf --set 3=105.00 --submit
    python main.py batch ./invoices/
    python main.py queue --confidence-max 0.5 --sort confidence-asc
    python main.py verify 12 --set invoice_id=INV-1 --next
    python main.py export
    python main.py stats

Author: ML Engineering Team
Version: 1.0.0
"""

import argparse
import json
import logging
import sys
import time
from pathlib import Path
from typing import Dict, List, Optional

# Add project root to path for imports
PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

from config import ConfigurationManager, get_config
from invoice_review.utils.logger import setup_logger_from_config, get_logger
from invoice_review.utils.exceptions import InvoiceReviewError
from invoice_review.output_handler import InvoiceStore, OutputHandler
from invoice_review.postprocessor import confidence_level
from invoice_review.services import DocumentIntake, ExtractionClient, LocalBlobStore
from invoice_review.review import (
    BatchProcessor,
    FlowConfig,
    QueueFilters,
    ReviewQueue,
    ReviewSessionController,
    SessionState,
    SORT_OPTIONS,
)


def parse_overrides(pairs: Optional[List[str]]) -> Dict[str, str]:
    """
    Turn ``KEY=VALUE`` arguments into an override map.

    Raises:
        ValueError: If a pair has no ``=``.
    """
    overrides: Dict[str, str] = {}
    for pair in pairs or []:
        key, sep, value = pair.partition('=')
        if not sep or not key:
            raise ValueError(f"Expected KEY=VALUE, got: {pair!r}")
        overrides[key] = value
    return overrides


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed argument namespace.
    """
    parser = argparse.ArgumentParser(
        description="Invoice Review System",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    Review a single upload:
        python main.py process invoice.pdf --set 3=105.00 --submit

    Upload a directory for later review:
        python main.py batch ./invoices/

    Verify the next invoice in the queue:
        python main.py verify 12 --next

    List verified invoices that were already exported:
        python main.py history --synced
        """
    )
    parser.add_argument("--config", "-c", type=str, default=None,
                        help="Path to custom configuration file")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    commands = parser.add_subparsers(dest="command", required=True)

    process = commands.add_parser("process", help="Extract and review one document")
    process.add_argument("file", type=str, help="Invoice PDF or image")
    process.add_argument("--set", dest="overrides", action="append", metavar="KEY=VALUE",
                         help="Override a field by entity id or line-item key")
    process.add_argument("--submit", action="store_true", help="Submit after applying overrides")
    process.add_argument("--force", action="store_true", help="Submit even if a duplicate exists")

    batch = commands.add_parser("batch", help="Upload files for later review")
    batch.add_argument("inputs", nargs="+", help="Files or directories")

    queue = commands.add_parser("queue", help="List invoices waiting for review")
    queue.add_argument("--confidence-min", type=float)
    queue.add_argument("--confidence-max", type=float)
    queue.add_argument("--amount-min", type=float)
    queue.add_argument("--amount-max", type=float)
    queue.add_argument("--invoice-date-from")
    queue.add_argument("--invoice-date-to")
    queue.add_argument("--upload-date-from")
    queue.add_argument("--upload-date-to")
    queue.add_argument("--sort", choices=SORT_OPTIONS)
    queue.add_argument("--page", type=int, default=1)

    verify = commands.add_parser("verify", help="Review and verify a queued invoice")
    verify.add_argument("invoice_id", type=int)
    verify.add_argument("--set", dest="overrides", action="append", metavar="KEY=VALUE")
    verify.add_argument("--force", action="store_true")
    verify.add_argument("--next", action="store_true",
                        help="Open the next queued invoice after a successful verify")

    export = commands.add_parser("export", help="Export verified invoices to Excel")
    export.add_argument("--ids", type=int, nargs="*", help="Only these invoice ids")
    export.add_argument("--output", "-o", type=str, default=None, help="Workbook file name")
    export.add_argument("--include-synced", action="store_true",
                        help="Also export invoices that were exported before")

    history = commands.add_parser("history", help="List verified invoices by export state")
    history.add_argument("--synced", action="store_true", help="Show exported invoices instead")

    commands.add_parser("stats", help="Show analytics over verified invoices")

    return parser.parse_args(argv)


def initialize_system(args: argparse.Namespace) -> ConfigurationManager:
    """
    Initialize configuration and logging.

    Returns:
        Initialized configuration manager.
    """
    config = ConfigurationManager(args.config)
    logger = setup_logger_from_config()

    if args.debug:
        logger.setLevel(logging.DEBUG)
        for handler in logger.handlers:
            handler.setLevel(logging.DEBUG)

    logger.debug(f"Version: {config.get('project.version', '1.0.0')}")
    return config


def build_intake() -> DocumentIntake:
    return DocumentIntake(ExtractionClient(), LocalBlobStore())


def collect_files(inputs: List[str]) -> List[Path]:
    """Expand directories into their supported documents."""
    extensions = set(get_config("extraction.supported_mime_types", {}).keys())
    files: List[Path] = []
    for item in inputs:
        path = Path(item)
        if path.is_dir():
            files.extend(sorted(p for p in path.iterdir() if p.suffix.lower() in extensions))
        elif path.is_file():
            files.append(path)
        else:
            raise FileNotFoundError(f"Input path not found: {path}")
    return files


def print_session(controller: ReviewSessionController) -> None:
    session = controller.session
    print(f"State: {session.state.value}")
    if session.message:
        print(f"  {session.message}")
    if not session.has_document:
        return

    print(f"Confidence: {session.confidence:.2f} ({confidence_level(session.confidence)})")
    if session.duplicate_warning:
        print(f"  {session.duplicate_warning.message}")

    print("Header:")
    for name, value in controller.header_fields().items():
        print(f"  {name:<18} {value if value is not None else '-'}")

    print("Totals:")
    for name, entity in controller.resolved_totals().items():
        if entity is None:
            print(f"  {name:<6} -")
            continue
        marker = f"  ! {session.errors[entity.id]}" if entity.id in session.errors else ''
        print(f"  {name:<6} [{entity.id}] {controller.display_value(entity.id)}{marker}")

    items = controller.line_items()
    if items:
        print("Line items:")
        for item in items:
            values = ', '.join(
                f"{prop}={controller.display_value(item.field_key(prop))}" for prop in item.properties
            )
            print(f"  [{item.id}] {values}")


def cmd_process(args: argparse.Namespace, store: InvoiceStore) -> int:
    path = Path(args.file)
    if not path.is_file():
        raise FileNotFoundError(f"Input path not found: {path}")

    controller = ReviewSessionController(FlowConfig.single_upload(), store, intake=build_intake())
    controller.load(path.name, path.read_bytes())

    if controller.session.state is SessionState.LOADED:
        for key, value in parse_overrides(args.overrides).items():
            controller.change_field(key, value)
        if args.submit:
            controller.submit(force=args.force)

    print_session(controller)
    return 0 if controller.session.state in (SessionState.LOADED, SessionState.SUCCESS) else 1


def cmd_batch(args: argparse.Namespace, store: InvoiceStore) -> int:
    files = collect_files(args.inputs)
    if not files:
        print("No files to process", file=sys.stderr)
        return 1

    def progress(done, total, status):
        detail = f" ({status.error})" if status.error else ''
        print(f"[{done}/{total}] {status.filename}: {status.status}{detail}")

    report = BatchProcessor(build_intake(), store).process(files, progress)
    print(report.summary())
    return 1 if report.has_errors else 0


def cmd_queue(args: argparse.Namespace, store: InvoiceStore) -> int:
    queue = ReviewQueue(store)
    queue.refresh(
        QueueFilters(
            confidence_min=args.confidence_min,
            confidence_max=args.confidence_max,
            amount_min=args.amount_min,
            amount_max=args.amount_max,
            invoice_date_from=args.invoice_date_from,
            invoice_date_to=args.invoice_date_to,
            upload_date_from=args.upload_date_from,
            upload_date_to=args.upload_date_to,
        ),
        sort=args.sort,
    )
    page = queue.page(args.page)
    print(f"Page {page.page} of {max(page.total_pages, 1)} ({page.total} invoice(s))")
    for inv in page.items:
        print(
            f"  {inv.id:>5}  {inv.invoice_number or '-':<16} {inv.supplier_name or '-':<24} "
            f"{inv.invoice_date or '-':<10} {inv.total_amount:>10.2f}  "
            f"{inv.confidence_score:.2f}  {inv.processed_at}"
        )
    return 0


def cmd_verify(args: argparse.Namespace, store: InvoiceStore) -> int:
    record = store.get(args.invoice_id)
    if record is None:
        print(f"Error: No invoice with id {args.invoice_id}", file=sys.stderr)
        return 1

    queue = ReviewQueue(store)
    queue.refresh()
    flow = FlowConfig.review_queue()
    controller = ReviewSessionController(
        flow, store, blob_store=LocalBlobStore(), queue=queue
    )
    controller.open_invoice(record)

    if controller.session.state is SessionState.LOADED:
        for key, value in parse_overrides(args.overrides).items():
            controller.change_field(key, value)
        controller.submit(force=args.force)

    print_session(controller)
    if controller.session.state is not SessionState.SUCCESS:
        return 1

    if args.next:
        time.sleep(flow.success_delay_seconds)
        controller.advance()
        print_session(controller)
    return 0


def cmd_export(args: argparse.Namespace, store: InvoiceStore) -> int:
    result = OutputHandler(store).export_verified(args.ids, args.output, args.include_synced)
    print(f"Exported {result['exported']} invoice(s) to {result['excel_path']}")
    return 0


def cmd_history(args: argparse.Namespace, store: InvoiceStore) -> int:
    invoices = OutputHandler(store).history(synced=args.synced)
    label = "exported" if args.synced else "unexported"
    print(f"{len(invoices)} {label} verified invoice(s)")
    for inv in invoices:
        print(
            f"  {inv.id:>5}  {inv.invoice_number or '-':<16} {inv.supplier_name or '-':<24} "
            f"{inv.invoice_date or '-':<10} {inv.total_amount:>10.2f}  {inv.processed_at}"
        )
    return 0


def cmd_stats(args: argparse.Namespace, store: InvoiceStore) -> int:
    print(json.dumps(OutputHandler(store).get_statistics(), indent=2))
    return 0


COMMANDS = {
    'process': cmd_process,
    'batch': cmd_batch,
    'queue': cmd_queue,
    'verify': cmd_verify,
    'export': cmd_export,
    'history': cmd_history,
    'stats': cmd_stats,
}


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main function - entry point for command-line execution.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    try:
        args = parse_arguments(argv)
        initialize_system(args)
        logger = get_logger(__name__)
        logger.debug(f"Running command: {args.command}")

        store = InvoiceStore()
        return COMMANDS[args.command](args, store)

    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    except InvoiceReviewError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    except KeyboardInterrupt:
        print("\nOperation cancelled by user")
        return 130


if __name__ == "__main__":
    sys.exit(main())
