"""
Helper Utilities Module.

Small, generic helpers shared across the engine.

Functions:
    - ensure_directory: Create directory if it doesn't exist
    - get_file_extension: Extract file extension safely
    - generate_timestamp: Generate formatted timestamps
    - safe_filename: Sanitize filenames for blob storage
    - unique_filename: Timestamp-prefixed storage name for an upload
    - utc_now_iso: Current UTC time as an ISO-8601 string
"""

import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Union


def ensure_directory(path: Union[str, Path]) -> Path:
    """
    Ensure a directory exists, creating it if necessary.

    Args:
        path: Directory path to ensure exists.

    Returns:
        Path object pointing to the directory.

    Example:
        >>> ensure_directory("outputs/exports")
        PosixPath('outputs/exports')
    """
    dir_path = Path(path)
    dir_path.mkdir(parents=True, exist_ok=True)
    return dir_path


def get_file_extension(filepath: Union[str, Path]) -> str:
    """
    Extract the lowercase file extension, including the dot.

    Example:
        >>> get_file_extension("invoice.PDF")
        '.pdf'
        >>> get_file_extension("noextension")
        ''
    """
    return Path(filepath).suffix.lower()


def generate_timestamp(format_str: str = "%Y%m%d_%H%M%S") -> str:
    """
    Generate a formatted local timestamp string.

    Example:
        >>> generate_timestamp("%Y-%m-%d")
        '2026-01-21'
    """
    return datetime.now().strftime(format_str)


def safe_filename(filename: str, replacement: str = "_") -> str:
    """
    Replace every character other than letters, digits, dots and hyphens.

    Args:
        filename: Original filename.
        replacement: Character to substitute.

    Returns:
        Sanitized filename, never empty.

    Example:
        >>> safe_filename("acme invoice #12.pdf")
        'acme_invoice__12.pdf'
    """
    sanitized = re.sub(r'[^a-zA-Z0-9.\-]', replacement, filename)
    return sanitized or "unnamed"


def unique_filename(original: str) -> str:
    """
    Build a collision-resistant storage name for an uploaded file.

    The UTC timestamp prefix has ``:`` and ``.`` replaced so it is safe in
    object-store keys.

    Example:
        >>> unique_filename("inv 1.pdf")
        '2026-01-21T14-30-22-123456+00-00_inv_1.pdf'
    """
    stamp = re.sub(r'[:.]', '-', utc_now_iso())
    return f"{stamp}_{safe_filename(original)}"


def utc_now_iso() -> str:
    """Return the current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()
