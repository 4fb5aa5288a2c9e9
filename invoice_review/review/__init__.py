"""
Review Module for the Invoice Review System.

This module provides:
    - ReviewSession and ReviewSessionController: one document under review
    - FlowConfig: single-upload, review-queue and batch behavior
    - DuplicateDetector: identity-triple duplicate lookup
    - ReviewQueue: filtered, sorted, paginated not-reviewed invoices
    - CoordinateMapper and HighlightNavigator: entity highlight placement
    - BatchProcessor: sequential batch upload

Author: ML Engineering Team
"""

from .session import DuplicateWarning, ReviewSession, SessionState
from .duplicates import DuplicateDetector, submit_conflict_message
from .queue import QueueFilters, QueuePage, ReviewQueue, SORT_OPTIONS, sort_invoices
from .highlight import CoordinateMapper, HighlightNavigator, PixelRect, scroll_target
from .controller import FlowConfig, ReviewSessionController, VALIDATION_REFUSED_MESSAGE
from .batch import BatchItemStatus, BatchProcessor, BatchReport

__all__ = [
    'DuplicateWarning',
    'ReviewSession',
    'SessionState',
    'DuplicateDetector',
    'submit_conflict_message',
    'QueueFilters',
    'QueuePage',
    'ReviewQueue',
    'SORT_OPTIONS',
    'sort_invoices',
    'CoordinateMapper',
    'HighlightNavigator',
    'PixelRect',
    'scroll_target',
    'FlowConfig',
    'ReviewSessionController',
    'VALIDATION_REFUSED_MESSAGE',
    'BatchItemStatus',
    'BatchProcessor',
    'BatchReport',
]
