"""
Entity Classifier Module.

Partitions a flat entity list into page-scoped semantic buckets.

Routing is decided by ``categorize``, a fixed priority list of predicates
over the lower-cased entity type. The first predicate that matches wins:

    1. type == 'line_item'          -> LINE_ITEM
    2. contains 'supplier'          -> SUPPLIER
    3. contains 'invoice'           -> INVOICE
    4. contains 'receiver'          -> RECEIVER
    5. contains 'amount' or 'total' -> TOTALS
    6. anything else                -> OTHER

Author: ML Engineering Team
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterable, Iterator, List, Tuple

from invoice_review.utils.logger import get_logger
from .entity import Entity
from .line_items import LineItem, LineItemAssembler

logger = get_logger(__name__)


class EntityCategory(Enum):
    """Semantic bucket an entity is routed to."""
    LINE_ITEM = "line_item"
    SUPPLIER = "supplier"
    INVOICE = "invoice"
    RECEIVER = "receiver"
    TOTALS = "totals"
    OTHER = "other"


# Ordered (predicate, category) pairs; evaluated top to bottom
CATEGORY_RULES: Tuple[Tuple[Callable[[str], bool], EntityCategory], ...] = (
    (lambda t: t == 'line_item', EntityCategory.LINE_ITEM),
    (lambda t: 'supplier' in t, EntityCategory.SUPPLIER),
    (lambda t: 'invoice' in t, EntityCategory.INVOICE),
    (lambda t: 'receiver' in t, EntityCategory.RECEIVER),
    (lambda t: 'amount' in t or 'total' in t, EntityCategory.TOTALS),
)


def categorize(entity_type: str) -> EntityCategory:
    """
    Route an entity type string to its category.

    Example:
        >>> categorize("total_tax_amount")
        <EntityCategory.TOTALS: 'totals'>
        >>> categorize("supplier_tax_id")
        <EntityCategory.SUPPLIER: 'supplier'>
    """
    lowered = (entity_type or '').lower()
    for predicate, category in CATEGORY_RULES:
        if predicate(lowered):
            return category
    return EntityCategory.OTHER


@dataclass(frozen=True)
class PageBucket:
    """
    Entities of one page grouped by category.

    Buckets are rebuilt on every classification pass; fields are tuples
    so consumers cannot mutate them in place.
    """
    page: int
    supplier: Tuple[Entity, ...] = ()
    invoice: Tuple[Entity, ...] = ()
    receiver: Tuple[Entity, ...] = ()
    line_items: Tuple[LineItem, ...] = ()
    totals: Tuple[Entity, ...] = ()
    other: Tuple[Entity, ...] = ()

    def entities(self) -> Iterator[Entity]:
        """Yield every non-line-item entity in the bucket."""
        for group in (self.supplier, self.invoice, self.receiver, self.totals, self.other):
            yield from group

    @property
    def count(self) -> int:
        return sum(1 for _ in self.entities()) + len(self.line_items)


Buckets = Dict[int, PageBucket]

_FIELD_BY_CATEGORY = {
    EntityCategory.SUPPLIER: 'supplier',
    EntityCategory.INVOICE: 'invoice',
    EntityCategory.RECEIVER: 'receiver',
    EntityCategory.TOTALS: 'totals',
    EntityCategory.OTHER: 'other',
}


class EntityClassifier:
    """
    Build per-page buckets from a flat entity list.

    Every entity lands in exactly one bucket on exactly one page, and a
    bucket exists for every page an entity was seen on.

    Example:
        >>> classifier = EntityClassifier()
        >>> buckets = classifier.classify(entities)
        >>> buckets[1].supplier
    """

    def __init__(self, assembler: LineItemAssembler = None) -> None:
        self.assembler = assembler or LineItemAssembler()

    def classify(self, entities: Iterable[Entity]) -> Buckets:
        groups: Dict[int, Dict[str, List]] = {}

        for entity in entities:
            page = entity.ui_page
            slots = groups.setdefault(page, {name: [] for name in
                                             ('supplier', 'invoice', 'receiver',
                                              'line_items', 'totals', 'other')})
            category = categorize(entity.type)

            if category is EntityCategory.LINE_ITEM:
                slots['line_items'].append(self.assembler.assemble(entity))
            else:
                slots[_FIELD_BY_CATEGORY[category]].append(entity)

        buckets = {
            page: PageBucket(page=page, **{name: tuple(items) for name, items in slots.items()})
            for page, slots in sorted(groups.items())
        }
        logger.debug(f"Classified entities onto {len(buckets)} page(s)")
        return buckets


def pooled(buckets: Buckets, field_name: str) -> List:
    """
    Concatenate one bucket field across all pages in page order.

    Example:
        >>> pooled(buckets, 'totals')
    """
    items: List = []
    for page in sorted(buckets):
        items.extend(getattr(buckets[page], field_name))
    return items
