"""
Utilities package for qobuz-sync

- logger.py: colored console output, rotating file log, get_logger()
- helpers.py: duration formatting, id list encoding, query tokenizing
"""

from .logger import get_logger, setup_logging, configure_from_settings
from .helpers import format_duration, ids_to_param, tokenize_query, remove_first_occurrences

__all__ = [
    'get_logger',
    'setup_logging',
    'configure_from_settings',
    'format_duration',
    'ids_to_param',
    'tokenize_query',
    'remove_first_occurrences',
]
