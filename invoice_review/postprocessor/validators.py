"""
Cross-Field Validators Module.

Arithmetic checks across resolved invoice fields. Errors are returned as
a mapping from field key (entity id) to message; nothing here raises.

Author: ML Engineering Team
"""

from typing import Dict, Mapping, Optional

from config import get_config
from invoice_review.entities import Buckets
from invoice_review.utils.logger import get_logger
from .normalizers import AmountParser
from .resolver import FieldResolver, ResolvedTotals, effective_text

logger = get_logger(__name__)


class TotalsValidator:
    """
    Checks that net + tax matches total within tolerance.

    On mismatch one message is produced for each resolved slot, keyed by
    that slot's entity id. Unresolved slots are skipped.

    Attributes:
        tolerance: Maximum allowed absolute difference.

    Example:
        >>> validator = TotalsValidator()
        >>> errors = validator.validate(totals, overrides={})
        >>> errors.get(totals.total.id)
        'Total amount (105.00) does not match Net Amount (80.00) + Tax Amount (20.00) = 100.00'
    """

    def __init__(self, resolver: Optional[FieldResolver] = None) -> None:
        self.resolver = resolver or FieldResolver()
        self.amount_parser = AmountParser()
        self.tolerance = float(get_config("postprocessing.validation.totals_tolerance", 0.01))

    def validate(
        self,
        totals: ResolvedTotals,
        overrides: Optional[Mapping[str, str]] = None
    ) -> Dict[str, str]:
        """
        Validate a resolved totals triad.

        Args:
            totals: Entities backing total/tax/net.
            overrides: Reviewer overrides keyed by entity id.

        Returns:
            Field key to error message; empty when the totals add up.
        """
        overrides = overrides or {}
        total = self.amount_parser.parse(effective_text(totals.total, overrides))
        tax = self.amount_parser.parse(effective_text(totals.tax, overrides))
        net = self.amount_parser.parse(effective_text(totals.net, overrides))

        calculated = net + tax
        difference = abs(calculated - total)

        errors: Dict[str, str] = {}
        if difference <= self.tolerance:
            return errors

        if totals.total is not None:
            errors[totals.total.id] = (
                f"Total amount ({total:.2f}) does not match Net Amount ({net:.2f}) "
                f"+ Tax Amount ({tax:.2f}) = {calculated:.2f}"
            )
        if totals.tax is not None:
            errors[totals.tax.id] = (
                f"Tax amount ({tax:.2f}) does not match Total Amount ({total:.2f}) "
                f"- Net Amount ({net:.2f}) = {total - net:.2f}"
            )
        if totals.net is not None:
            errors[totals.net.id] = (
                f"Net amount ({net:.2f}) does not match Total Amount ({total:.2f}) "
                f"- Tax Amount ({tax:.2f}) = {total - tax:.2f}"
            )

        logger.info(
            f"Totals mismatch: net {net:.2f} + tax {tax:.2f} = {calculated:.2f}, "
            f"total {total:.2f}"
        )
        return errors

    def validate_buckets(
        self,
        buckets: Buckets,
        overrides: Optional[Mapping[str, str]] = None
    ) -> Dict[str, str]:
        """Resolve the totals triad across all pages and validate it."""
        return self.validate(self.resolver.resolve_totals(buckets), overrides)
