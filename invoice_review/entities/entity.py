"""
Entity Data Classes.

Immutable representations of the labeled, positioned, confidence-scored
text spans returned by the document-understanding service, plus the
helpers that read them out of the service's camelCase JSON.

Author: ML Engineering Team
"""

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from invoice_review.utils.logger import get_logger

logger = get_logger(__name__)

# One-based page assumed for entities without a page anchor
DEFAULT_UI_PAGE = 1


def as_float(value: Any, default: float = 0.0) -> float:
    """Read a numeric field, falling back to ``default`` when it is not a number."""
    try:
        number = float(value) if value is not None else default
    except (TypeError, ValueError):
        number = math.nan
    if not math.isfinite(number):
        logger.debug(f"Ignoring non-numeric value: {value!r}")
        return default
    return number


def as_dicts(items: Any) -> List[Dict[str, Any]]:
    """Keep only the JSON objects of a list field."""
    if not isinstance(items, list):
        return []
    return [item for item in items if isinstance(item, dict)]


@dataclass(frozen=True)
class Vertex:
    """A bounding-box corner as a fraction of page width/height."""
    x: float = 0.0
    y: float = 0.0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Vertex':
        # The service omits zero coordinates
        return cls(x=as_float(data.get('x')), y=as_float(data.get('y')))


@dataclass(frozen=True)
class PageRef:
    """
    Anchor of an entity on a document page.

    Attributes:
        page: Zero-based page index as reported by the service, or None.
        vertices: Normalized bounding polygon vertices.
    """
    page: Optional[int] = None
    vertices: Tuple[Vertex, ...] = ()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PageRef':
        page = data.get('page')
        try:
            page = int(page) if page is not None else None
        except (TypeError, ValueError, OverflowError):
            logger.debug(f"Ignoring non-numeric page reference: {page!r}")
            page = None

        poly = data.get('boundingPoly')
        if not isinstance(poly, dict):
            poly = {}
        vertices = tuple(Vertex.from_dict(v) for v in as_dicts(poly.get('normalizedVertices')))
        return cls(page=page, vertices=vertices)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        if self.page is not None:
            result['page'] = self.page
        if self.vertices:
            result['boundingPoly'] = {
                'normalizedVertices': [{'x': v.x, 'y': v.y} for v in self.vertices]
            }
        return result


class Anchored:
    """Page-position accessors shared by entities and line items."""

    page_refs: Tuple[PageRef, ...]

    @property
    def doc_ai_page(self) -> Optional[int]:
        """Zero-based page of the first page reference, if any."""
        if self.page_refs:
            return self.page_refs[0].page
        return None

    @property
    def ui_page(self) -> int:
        """One-based page number used for display and bucketing."""
        page = self.doc_ai_page
        return page + 1 if page is not None else DEFAULT_UI_PAGE

    @property
    def normalized_vertices(self) -> Tuple[Vertex, ...]:
        if self.page_refs:
            return self.page_refs[0].vertices
        return ()


@dataclass(frozen=True)
class Entity(Anchored):
    """
    A single extracted entity.

    Attributes:
        id: Entity identifier; also the key for user overrides.
        type: Slash-delimited taxonomy string (e.g. ``line_item/amount``).
        mention_text: Raw text span before any user override.
        confidence: Service confidence in [0, 1].
        page_refs: Page anchors, first one is authoritative.
        properties: Child entities (line item properties).

    Example:
        >>> entity = Entity.from_dict({
        ...     "id": "3", "type": "total_amount", "mentionText": "$100.00",
        ...     "confidence": 0.93,
        ...     "pageAnchor": {"pageRefs": [{"page": "0"}]}
        ... })
        >>> entity.ui_page
        1
    """
    id: str
    type: str
    mention_text: str = ''
    confidence: float = 0.0
    page_refs: Tuple[PageRef, ...] = ()
    properties: Tuple['Entity', ...] = field(default_factory=tuple)

    @property
    def type_lower(self) -> str:
        return self.type.lower()

    @classmethod
    def from_dict(cls, data: Dict[str, Any], fallback_id: str = '') -> 'Entity':
        """
        Build an Entity from the service's JSON representation.

        Args:
            data: Entity dictionary (camelCase keys).
            fallback_id: Identifier used when the payload carries none.

        Returns:
            Entity instance.
        """
        entity_id = str(data.get('id') or fallback_id)
        anchor = data.get('pageAnchor')
        if not isinstance(anchor, dict):
            anchor = {}
        page_refs = tuple(PageRef.from_dict(ref) for ref in as_dicts(anchor.get('pageRefs')))
        properties = tuple(
            cls.from_dict(child, fallback_id=f"{entity_id}.{index}")
            for index, child in enumerate(as_dicts(data.get('properties')))
        )
        return cls(
            id=entity_id,
            type=str(data.get('type') or ''),
            mention_text=str(data.get('mentionText') or ''),
            confidence=as_float(data.get('confidence')),
            page_refs=page_refs,
            properties=properties,
        )

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            'id': self.id,
            'type': self.type,
            'mentionText': self.mention_text,
            'confidence': self.confidence,
        }
        if self.page_refs:
            result['pageAnchor'] = {'pageRefs': [ref.to_dict() for ref in self.page_refs]}
        if self.properties:
            result['properties'] = [prop.to_dict() for prop in self.properties]
        return result


def entities_from_dicts(items: Any) -> List[Entity]:
    """
    Convert a list of entity dictionaries, assigning positional ids where missing.

    Items that are not JSON objects are dropped; positional ids still count them.
    """
    if not isinstance(items, list):
        return []

    entities = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            logger.warning(f"Skipping malformed entity at position {index}")
            continue
        entities.append(Entity.from_dict(item, fallback_id=str(index)))
    return entities


def normalize_ai_response(data: Any) -> Optional[List[Entity]]:
    """
    Extract the entity list from a stored AI response.

    Three shapes are accepted:
        - ``{"entities": [...]}`` (relay response)
        - ``{"document": {"entities": [...]}}`` (raw service document)
        - ``{"document": {"pages": [{"pageNumber": n, "entities": [...]}]}}``
          where entities are anchored to ``pageNumber - 1``

    Args:
        data: Decoded JSON payload.

    Returns:
        List of entities, or None when the payload has no recognizable shape.
    """
    if not isinstance(data, dict):
        logger.error("AI response is not a JSON object")
        return None

    if 'entities' in data:
        return entities_from_dicts(data.get('entities') or [])

    document = data.get('document')
    if isinstance(document, dict):
        if 'entities' in document:
            return entities_from_dicts(document.get('entities') or [])

        if 'pages' in document:
            items = []
            for page in as_dicts(document.get('pages')):
                page_index = int(as_float(page.get('pageNumber'), 1.0)) - 1
                for entity in as_dicts(page.get('entities')):
                    anchored = dict(entity)
                    anchored['pageAnchor'] = {'pageRefs': [{'page': page_index}]}
                    items.append(anchored)
            return entities_from_dicts(items)

    logger.error(f"Could not normalize AI response with keys: {sorted(data.keys())}")
    return None
