"""
Data Normalizers Module.

This module turns free-text values read off an invoice into canonical forms:
    - Monetary strings to floats rounded to cents
    - Date strings to ISO ``YYYY-MM-DD``

Neither parser raises. Unparseable input degrades to ``0`` (amounts) or
``None`` (dates) so the pipeline never halts on malformed text.

Author: ML Engineering Team
"""

import re
from decimal import Context, Decimal, ROUND_HALF_UP
from typing import Optional

from config import get_config
from invoice_review.utils.logger import get_logger

# Initialize module logger
logger = get_logger(__name__)


class AmountParser:
    """
    Parses monetary strings to floats.

    Every character other than digits, ``.`` and ``-`` is stripped, then
    the longest leading numeric prefix is read (``"12.3.4"`` reads as
    ``12.3``). The value is rounded half away from zero to cents.

    Example:
        >>> parser = AmountParser()
        >>> parser.parse("$1,234.56")
        1234.56
        >>> parser.parse("N/A")
        0.0
    """

    # Leading number in the cleaned string
    NUMBER_PREFIX = re.compile(r'^-?(?:\d+\.?\d*|\.\d+)')

    def __init__(self) -> None:
        self.decimals = int(get_config("postprocessing.amount.decimals", 2))
        self.quantum = Decimal(1).scaleb(-self.decimals)

    def parse(self, amount_str: Optional[str]) -> float:
        """
        Parse an amount string.

        Args:
            amount_str: Raw amount text, possibly None.

        Returns:
            Amount as float, 0.0 when nothing numeric can be read.
        """
        if not amount_str:
            return 0.0

        cleaned = re.sub(r'[^0-9.\-]+', '', str(amount_str))
        match = self.NUMBER_PREFIX.match(cleaned)
        if not match:
            logger.debug(f"Could not parse amount: {amount_str!r}")
            return 0.0

        number = match.group(0)
        # Precision must cover every integer digit plus the cents
        context = Context(prec=max(28, len(number) + self.decimals + 1))
        value = Decimal(number).quantize(self.quantum, rounding=ROUND_HALF_UP, context=context)
        return float(value)


class DateParser:
    """
    Parses invoice date strings to ISO format.

    Separator rules:
        - ``/``: month/day/year (US convention)
        - ``-`` with a four-character first token: year-month-day
        - ``-`` otherwise: day-month-year

    Two-digit years are promoted by the configured base (2000). Month must
    be 1-12 and day 1-31; there is no per-month or leap-year check.

    Example:
        >>> parser = DateParser()
        >>> parser.parse("03/04/2024")
        '2024-03-04'
        >>> parser.parse("05-06-07")
        '2007-06-05'
    """

    # Leading integer of a component, read the way a lenient integer parse does
    INT_PREFIX = re.compile(r'^\s*([-+]?\d+)')

    def __init__(self) -> None:
        self.min_year = int(get_config("postprocessing.date.min_year", 1900))
        self.max_year = int(get_config("postprocessing.date.max_year", 2100))
        self.two_digit_base = int(get_config("postprocessing.date.two_digit_year_base", 2000))

    def parse(self, date_str: Optional[str]) -> Optional[str]:
        if not date_str:
            return None

        date_str = str(date_str).strip()

        if '/' in date_str:
            parts = date_str.split('/')
            if len(parts) != 3:
                return self._reject(date_str, "expected three components")
            month, day, year = parts
        elif '-' in date_str:
            parts = date_str.split('-')
            if len(parts) != 3:
                return self._reject(date_str, "expected three components")
            if len(parts[0]) == 4:
                year, month, day = parts
            else:
                day, month, year = parts
        else:
            return self._reject(date_str, "unsupported separator")

        day_num = self._to_int(day)
        month_num = self._to_int(month)
        year_num = self._to_int(year)

        if day_num is None or month_num is None or year_num is None:
            return self._reject(date_str, "non-numeric component")
        if not 1 <= month_num <= 12:
            return self._reject(date_str, f"invalid month {month_num}")
        if not 1 <= day_num <= 31:
            return self._reject(date_str, f"invalid day {day_num}")

        if year_num < 100:
            year_num += self.two_digit_base

        if not self.min_year <= year_num <= self.max_year:
            return self._reject(date_str, f"invalid year {year_num}")

        return f"{year_num:04d}-{month_num:02d}-{day_num:02d}"

    def _to_int(self, component: str) -> Optional[int]:
        match = self.INT_PREFIX.match(component)
        return int(match.group(1)) if match else None

    @staticmethod
    def _reject(date_str: str, reason: str) -> None:
        logger.debug(f"Could not parse date {date_str!r}: {reason}")
        return None


def parse_amount(amount_str: Optional[str]) -> float:
    """Parse an amount string with the configured parser."""
    return AmountParser().parse(amount_str)


def parse_date(date_str: Optional[str]) -> Optional[str]:
    """Parse a date string to ``YYYY-MM-DD`` or None."""
    return DateParser().parse(date_str)
