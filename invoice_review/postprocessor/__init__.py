"""
Post-Processing Module for the Invoice Review Engine.

This module provides functionality for:
    - Field resolution (exact-then-fuzzy type matching)
    - Amount and date normalization
    - Document confidence aggregation
    - Totals cross-validation
    - Invoice draft assembly

Author: ML Engineering Team
"""

from .normalizers import AmountParser, DateParser, parse_amount, parse_date
from .resolver import (
    FieldResolver,
    FieldRule,
    ResolvedTotals,
    HEADER_FIELDS,
    NET_AMOUNT,
    TAX_AMOUNT,
    TOTAL_AMOUNT,
    effective_text,
)
from .confidence import ConfidenceAggregator, confidence_level
from .validators import TotalsValidator
from .processor import PostProcessor

__all__ = [
    'AmountParser',
    'DateParser',
    'parse_amount',
    'parse_date',
    'FieldResolver',
    'FieldRule',
    'ResolvedTotals',
    'HEADER_FIELDS',
    'NET_AMOUNT',
    'TAX_AMOUNT',
    'TOTAL_AMOUNT',
    'effective_text',
    'ConfidenceAggregator',
    'confidence_level',
    'TotalsValidator',
    'PostProcessor',
]
