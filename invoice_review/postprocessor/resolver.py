"""
Field Resolver Module.

Picks the entity that backs a semantic invoice field out of a list of
candidates, using exact-then-fuzzy type matching.

Two resolution scopes are used:
    - Totals triad (total, tax, net): candidates pooled across every page
      in page order, exact type first, then fuzzy predicates.
    - Header fields (supplier/receiver name and address, invoice id and
      dates): exact type on page 1 only, first match wins.

Author: ML Engineering Team
"""

from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Iterator, Mapping, Optional, Sequence, Tuple

from invoice_review.entities import Buckets, Entity, pooled
from invoice_review.utils.logger import get_logger

logger = get_logger(__name__)

Predicate = Callable[[str], bool]

HEADER_PAGE = 1


@dataclass(frozen=True)
class FieldRule:
    """Exact type plus ordered fuzzy predicates over the lower-cased type."""
    exact: str
    fuzzy: Tuple[Predicate, ...] = ()


TOTAL_AMOUNT = FieldRule(
    exact='total_amount',
    fuzzy=(
        lambda t: 'total_amount' in t,
        lambda t: 'total' in t and 'amount' in t,
    ),
)

TAX_AMOUNT = FieldRule(
    exact='total_tax_amount',
    fuzzy=(
        lambda t: 'tax_amount' in t,
        lambda t: 'tax' in t,
    ),
)

NET_AMOUNT = FieldRule(
    exact='net_amount',
    fuzzy=(
        lambda t: 'net_amount' in t,
        lambda t: 'subtotal' in t,
        lambda t: 'net' in t,
    ),
)

# Invoice record column -> entity type on page 1
HEADER_FIELDS: Dict[str, str] = {
    'supplier_name': 'supplier_name',
    'supplier_address': 'supplier_address',
    'receiver_name': 'receiver_name',
    'receiver_address': 'receiver_address',
    'invoice_number': 'invoice_id',
    'invoice_date': 'invoice_date',
    'due_date': 'due_date',
}


@dataclass(frozen=True)
class ResolvedTotals:
    """Entities backing the total, tax and net amount slots."""
    total: Optional[Entity] = None
    tax: Optional[Entity] = None
    net: Optional[Entity] = None

    def items(self) -> Iterator[Tuple[str, Optional[Entity]]]:
        yield 'total', self.total
        yield 'tax', self.tax
        yield 'net', self.net


def effective_text(entity: Optional[Entity], overrides: Mapping[str, str]) -> Optional[str]:
    """
    Value of an entity as the reviewer sees it.

    An override for the entity id wins over the extracted mention text.
    """
    if entity is None:
        return None
    if entity.id in overrides:
        return overrides[entity.id]
    return entity.mention_text


class FieldResolver:
    """
    Resolves semantic fields from classified buckets.

    Example:
        >>> resolver = FieldResolver()
        >>> totals = resolver.resolve_totals(buckets)
        >>> totals.total.mention_text
        '$100.00'
        >>> resolver.resolve_header(buckets, 'invoice_number').mention_text
        'INV-1'
    """

    def resolve(
        self,
        candidates: Iterable[Entity],
        exact_type: str,
        fuzzy_predicates: Sequence[Predicate] = ()
    ) -> Optional[Entity]:
        """
        Two-phase search over candidates.

        Args:
            candidates: Entities to search, in priority order.
            exact_type: Type matched case-insensitively in the first phase.
            fuzzy_predicates: Tried in order against each candidate's
                lower-cased type when the first phase finds nothing.

        Returns:
            Matching entity or None.
        """
        candidates = list(candidates)
        exact = exact_type.lower()

        for entity in candidates:
            if entity.type_lower == exact:
                return entity

        for entity in candidates:
            lowered = entity.type_lower
            if any(predicate(lowered) for predicate in fuzzy_predicates):
                logger.debug(f"Fuzzy match for {exact_type!r}: {entity.type!r}")
                return entity

        return None

    def resolve_rule(self, candidates: Iterable[Entity], rule: FieldRule) -> Optional[Entity]:
        return self.resolve(candidates, rule.exact, rule.fuzzy)

    def resolve_totals(self, buckets: Buckets) -> ResolvedTotals:
        """Resolve the totals triad from totals entities of every page."""
        candidates = pooled(buckets, 'totals')
        return ResolvedTotals(
            total=self.resolve_rule(candidates, TOTAL_AMOUNT),
            tax=self.resolve_rule(candidates, TAX_AMOUNT),
            net=self.resolve_rule(candidates, NET_AMOUNT),
        )

    def resolve_header(self, buckets: Buckets, field_name: str) -> Optional[Entity]:
        """
        Resolve a header field by exact type on page 1.

        Args:
            buckets: Classified buckets.
            field_name: Invoice column name (key of HEADER_FIELDS).
        """
        bucket = buckets.get(HEADER_PAGE)
        if bucket is None:
            return None
        return self.resolve(bucket.entities(), HEADER_FIELDS[field_name])

    def header_fields(self, buckets: Buckets) -> Dict[str, Optional[Entity]]:
        return {name: self.resolve_header(buckets, name) for name in HEADER_FIELDS}
