"""
Entity Model Module for the Invoice Review Engine.

This module provides:
    - Immutable Entity / PageRef / Vertex records read from the
      document-understanding service's JSON
    - AI response normalization for stored responses
    - Category routing and per-page bucketing (EntityClassifier)
    - Line item assembly from parent/child entities

Author: ML Engineering Team
"""

from .entity import (
    DEFAULT_UI_PAGE,
    Entity,
    PageRef,
    Vertex,
    entities_from_dicts,
    normalize_ai_response,
)
from .line_items import LineItem, LineItemAssembler, LineItemProperty
from .classifier import (
    Buckets,
    EntityCategory,
    EntityClassifier,
    PageBucket,
    categorize,
    pooled,
)

__all__ = [
    'DEFAULT_UI_PAGE',
    'Entity',
    'PageRef',
    'Vertex',
    'entities_from_dicts',
    'normalize_ai_response',
    'LineItem',
    'LineItemAssembler',
    'LineItemProperty',
    'Buckets',
    'EntityCategory',
    'EntityClassifier',
    'PageBucket',
    'categorize',
    'pooled',
]
