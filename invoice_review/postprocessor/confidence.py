"""
Confidence Aggregation Module.

Computes the single document-level confidence score that is displayed to
the reviewer and stored as ``confidence_score``.

Author: ML Engineering Team
"""

from dataclasses import dataclass
from typing import List

from config import get_config
from invoice_review.entities import Buckets
from invoice_review.utils.logger import get_logger

logger = get_logger(__name__)

LINE_ITEM_PROPERTY_TYPE = 'line_item_property'


@dataclass(frozen=True)
class ScoredItem:
    """One contribution to the aggregate score."""
    type: str
    confidence: float


class ConfidenceAggregator:
    """
    Unweighted mean confidence over a classified document.

    Contributions:
        - every supplier, invoice, receiver and totals entity
        - every line item
        - one pseudo-entity per line item property with non-empty text,
          scored with the property confidence or the configured default

    Entities in the ``other`` bucket do not contribute.

    Example:
        >>> ConfidenceAggregator().aggregate({})
        0.0
    """

    def __init__(self) -> None:
        self.property_default = float(get_config("postprocessing.confidence.property_default", 0.5))

    def collect(self, buckets: Buckets) -> List[ScoredItem]:
        items: List[ScoredItem] = []

        for page in sorted(buckets):
            bucket = buckets[page]
            for entity in bucket.supplier + bucket.invoice + bucket.receiver + bucket.totals:
                items.append(ScoredItem(entity.type, entity.confidence))

            for line_item in bucket.line_items:
                items.append(ScoredItem('line_item', line_item.confidence))
                for prop in line_item.properties.values():
                    if prop.text:
                        items.append(ScoredItem(
                            LINE_ITEM_PROPERTY_TYPE,
                            prop.confidence or self.property_default,
                        ))

        return items

    def aggregate(self, buckets: Buckets) -> float:
        items = self.collect(buckets)
        if not items:
            return 0.0

        score = sum(item.confidence for item in items) / len(items)
        logger.debug(f"Aggregate confidence {score:.3f} over {len(items)} item(s)")
        return score


def confidence_level(score: float) -> str:
    """
    Band a confidence score.

    Example:
        >>> confidence_level(0.42)
        'low'
        >>> confidence_level(0.8)
        'high'
    """
    low = float(get_config("postprocessing.confidence.low_threshold", 0.5))
    high = float(get_config("postprocessing.confidence.high_threshold", 0.8))

    if score < low:
        return 'low'
    if score < high:
        return 'medium'
    return 'high'
