"""
Invoice Review System - Source Package.

This package contains the modules of the invoice entity-reconciliation
engine: extracted entities are classified, reconciled into invoice
fields, reviewed by a person and persisted.

Modules:
    - entities: Entity model, line-item assembly and classification
    - postprocessor: Normalization, field resolution, confidence and validation
    - services: Extraction client, blob store and page geometry
    - review: Review sessions, duplicates, queue, highlights and batches
    - output_handler: SQLite record store and Excel export
    - utils: Logging, exceptions and helpers

Architecture:
    Upload → Extraction → Classification → Reconciliation → Review → Store
                                                                       ↓
                                                                    Export
"""

__version__ = "1.0.0"
__author__ = "ML Engineering Team"

__all__ = [
    'entities',
    'postprocessor',
    'services',
    'review',
    'output_handler',
    'utils'
]
