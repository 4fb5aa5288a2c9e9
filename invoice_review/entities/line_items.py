"""
Line Item Assembly Module.

Merges a ``line_item`` parent entity with its child property entities
into one structured row.

Author: ML Engineering Team
"""

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from invoice_review.utils.logger import get_logger
from .entity import Anchored, Entity, PageRef

logger = get_logger(__name__)


@dataclass(frozen=True)
class LineItemProperty:
    """Text and confidence of one line item sub-field."""
    text: str = ''
    confidence: Optional[float] = None


@dataclass(frozen=True)
class LineItem(Anchored):
    """
    A structured line item row.

    Attributes:
        id: Identifier of the parent entity.
        mention_text: Full text of the row.
        confidence: Confidence of the parent entity.
        page_refs: Page anchors copied from the parent.
        properties: Property name to LineItemProperty.
    """
    id: str
    mention_text: str = ''
    confidence: float = 0.0
    page_refs: Tuple[PageRef, ...] = ()
    properties: Dict[str, LineItemProperty] = field(default_factory=dict)

    def field_key(self, prop: str) -> str:
        """Override key for one of this row's properties."""
        return f"{self.id}_{prop}"

    def property_text(self, prop: str) -> str:
        value = self.properties.get(prop)
        return value.text if value else ''


class LineItemAssembler:
    """
    Build LineItem rows from ``line_item`` entities.

    A child whose type is ``line_item/amount`` is stored under ``amount``.
    Children without a ``/`` in their type are malformed and dropped.

    Example:
        >>> item = LineItemAssembler().assemble(entity)
        >>> item.properties['amount'].text
        '$40.00'
    """

    def assemble(self, parent: Entity) -> LineItem:
        properties: Dict[str, LineItemProperty] = {}

        for child in parent.properties:
            parts = child.type.split('/')
            if len(parts) < 2:
                logger.debug(f"Dropping line item property without '/': {child.type!r}")
                continue
            properties[parts[1]] = LineItemProperty(
                text=child.mention_text,
                confidence=child.confidence,
            )

        return LineItem(
            id=parent.id,
            mention_text=parent.mention_text,
            confidence=parent.confidence,
            page_refs=parent.page_refs,
            properties=properties,
        )
