"""
Utility Module for the Invoice Review Engine.

Common utilities used across all other modules:
    - Logging configuration
    - Exception hierarchy
    - File and timestamp helpers
"""

from .logger import setup_logger, get_logger
from .helpers import ensure_directory, get_file_extension, generate_timestamp

__all__ = [
    'setup_logger',
    'get_logger',
    'ensure_directory',
    'get_file_extension',
    'generate_timestamp'
]
